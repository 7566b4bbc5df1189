"""Tests for the extension build pipeline."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from extbuild.build import ExtensionBuilder
from extbuild.bundler import BuildError, CompilationStats, CompiledModule, Reason, parse_stats, user_request
from extbuild.models import BrowserContext, Environment, ExtensionContext, Module
from extbuild.validation import UnusedDependency, ValidationError

EXTENSION = "@radon-extension/browser-chrome"
LASTFM = "@radon-extension/destination-lastfm"


class FakeBundler:
    def __init__(self, stats: CompilationStats) -> None:
        self.stats = stats
        self.configs: list[Path] = []

    async def compile(self, config: Path) -> CompilationStats:
        self.configs.append(config)
        return self.stats


@pytest.fixture
def build_tree(workspace):  # type: ignore[no-untyped-def]
    app = workspace.package("app", EXTENSION, dependencies={LASTFM: "1.0.0"})
    lastfm = workspace.package("lastfm", LASTFM, dependencies={"lodash": "^4.17.0"})
    workspace.package("lastfm/node_modules/lodash", "lodash", version="4.17.0")
    workspace.write({"lastfm/src/index.js": "", "lastfm/node_modules/lodash/index.js": ""})
    workspace.link("app/node_modules/@radon-extension/destination-lastfm", lastfm)

    extension = ExtensionContext(name=EXTENSION, path=app, package={"name": EXTENSION, "dependencies": {LASTFM: "1.0.0"}})
    browser = BrowserContext(
        name="chrome",
        package_name=EXTENSION,
        package_path=app,
        extension=extension,
        modules={
            EXTENSION: Module(key="chrome", type="package", path=app, name=EXTENSION),
            LASTFM: Module(
                key="lastfm", type="destination", path=lastfm, name=LASTFM, dependencies={"lodash": "^4.17.0"}
            ),
        },
    )
    environment = Environment("development", app / "Build" / "chrome" / "development", app / "Build" / "chrome" / "development" / "unpacked")
    return browser, environment


def _stats(lastfm: Path, link: Path) -> CompilationStats:
    source = CompiledModule(identifier=str(link / "src" / "index.js"), user_request=str(link / "src" / "index.js"))
    lodash = CompiledModule(
        identifier=str(lastfm / "node_modules" / "lodash" / "index.js"),
        user_request=str(lastfm / "node_modules" / "lodash" / "index.js"),
        reasons=[Reason(module=source)],
    )
    return CompilationStats(modules=[source, lodash], raw={"modules": []})


async def test_build_registers_links_compiles_and_validates(context, build_tree) -> None:  # type: ignore[no-untyped-def]
    browser, environment = build_tree
    lastfm = browser.modules[LASTFM].path
    link = browser.package_path / "node_modules" / "@radon-extension" / "destination-lastfm"
    bundler = FakeBundler(_stats(lastfm, link))

    result = await ExtensionBuilder(context, browser, environment, bundler=bundler).build()

    assert bundler.configs == [browser.package_path / "webpack.config.js"]
    assert result.unused == []
    assert context.links.resolve_link("chrome", "development", str(link / "x.js")).endswith("lastfm/x.js")
    assert json.loads((environment.build_path / "webpack.stats.json").read_text(encoding="utf-8")) == {"modules": []}
    assert environment.output_path.is_dir()


async def test_build_reports_unused_dependencies(context, build_tree) -> None:  # type: ignore[no-untyped-def]
    browser, environment = build_tree
    browser.modules[LASTFM].dependencies["moment"] = "^2.0.0"
    lastfm = browser.modules[LASTFM].path
    link = browser.package_path / "node_modules" / "@radon-extension" / "destination-lastfm"

    result = await ExtensionBuilder(context, browser, environment, bundler=FakeBundler(_stats(lastfm, link))).build()

    assert result.unused == [UnusedDependency(module=LASTFM, dependency="moment")]


async def test_build_fails_on_compilation_errors(context, build_tree) -> None:  # type: ignore[no-untyped-def]
    browser, environment = build_tree
    stats = CompilationStats(modules=[], errors=["Module not found"], raw={"errors": ["Module not found"]})

    with pytest.raises(BuildError, match="Build failed"):
        await ExtensionBuilder(context, browser, environment, bundler=FakeBundler(stats)).build()
    assert (environment.build_path / "webpack.stats.json").exists()


async def test_build_without_validated_edges_fails(context, build_tree) -> None:  # type: ignore[no-untyped-def]
    browser, environment = build_tree

    with pytest.raises(ValidationError):
        await ExtensionBuilder(context, browser, environment, bundler=FakeBundler(CompilationStats(modules=[]))).build()


def test_parse_stats_links_reasons() -> None:
    payload = {
        "modules": [
            {"identifier": "/src/a.js", "reasons": []},
            {
                "identifier": "babel-loader!/node_modules/x/index.js?cache",
                "reasons": [{"moduleIdentifier": "/src/a.js", "userRequest": "x"}],
            },
            {"identifier": "multi ./src", "reasons": [{"moduleIdentifier": "/missing.js"}]},
        ],
        "errors": [{"message": "boom"}],
    }

    stats = parse_stats(payload)

    first, second, third = stats.modules
    assert second.user_request == "/node_modules/x/index.js"
    assert second.reasons[0].module is first
    assert second.reasons[0].request == "x"
    assert third.user_request is None
    assert third.reasons[0].module.identifier == "/missing.js"
    assert stats.errors == ["boom"]
    assert stats.has_errors


def test_user_request_requires_absolute_resource() -> None:
    assert user_request("css-loader!style-loader!/a/b.css?x=1") == "/a/b.css"
    assert user_request("external \"jquery\"") is None
