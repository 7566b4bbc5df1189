"""Tests for package manifest reading and editing."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from extbuild.manifest import (
    ManifestError,
    get_package_modules,
    overlay_module_declaration,
    parse_module_declaration,
    read_contributors,
    read_module_declaration,
    read_package_details,
    update_package,
    update_package_locks,
    write_package,
    write_package_locks,
)

SCOPE = "@radon-extension/"
PRIORITY = ["@radon-extension/build", "@radon-extension/framework", "@radon-extension/core"]


def test_read_package_details_merges_defaults(workspace) -> None:  # type: ignore[no-untyped-def]
    path = workspace.package("pkg", "example", dependencies={"lodash": "^4.0.0"})

    details = read_package_details(path)

    assert details["name"] == "example"
    assert details["dependencies"] == {"lodash": "^4.0.0"}
    assert details["peerDependencies"] == {}
    assert details["license"] is None


def test_read_package_details_requires_object(workspace) -> None:  # type: ignore[no-untyped-def]
    workspace.write_json("pkg/package.json", ["not", "an", "object"])

    with pytest.raises(ManifestError):
        read_package_details(workspace.path("pkg"))


def test_read_module_declaration_missing_yields_empty(tmp_path: Path) -> None:
    assert read_module_declaration(tmp_path) == {}
    assert read_module_declaration(tmp_path, "firefox") == {}


def test_read_module_declaration_rejects_non_object(workspace) -> None:  # type: ignore[no-untyped-def]
    workspace.write_json("pkg/module.json", [1, 2])

    with pytest.raises(ManifestError):
        read_module_declaration(workspace.path("pkg"))


def test_parse_module_declaration_dynamic_origins_are_deduplicated() -> None:
    data = {
        "name": "Last.fm",
        "origins": ["*://a.test/*"],
        "permissions": ["storage", "storage"],
        "content_scripts": [{"matches": ["*://a.test/*", "*://b.test/*"]}],
    }

    manifest = parse_module_declaration(data, "dynamic")

    assert manifest["title"] == "Last.fm"
    assert manifest["origins"] == ["*://a.test/*", "*://b.test/*"]
    assert manifest["permissions"] == ["storage"]
    assert manifest["webpack"] == {"alias": [], "babel": [], "modules": {}}


def test_parse_module_declaration_static_scripts_keep_origins() -> None:
    data = {"content_scripts": [{"matches": ["*://b.test/*"]}]}

    manifest = parse_module_declaration(data, None)

    assert manifest["origins"] == []


def test_parse_module_declaration_rejects_null_origin() -> None:
    data = {"content_scripts": [{"matches": [None]}]}

    with pytest.raises(ManifestError):
        parse_module_declaration(data, "dynamic")


def test_parse_module_declaration_expands_bundle_shorthand() -> None:
    data = {
        "webpack": {
            "modules": {
                "Api": ["api/index"],
                "Core": {"entry": True},
                "Plain": None,
            }
        }
    }

    modules = parse_module_declaration(data)["webpack"]["modules"]

    assert modules["Api"] == {"entry": False, "modules": ["api/index"]}
    assert modules["Core"] == {"entry": True, "modules": ["Core"]}
    assert modules["Plain"] == {"entry": False, "modules": ["Plain"]}


def test_overlay_module_declaration_replaces_top_level_keys() -> None:
    manifest = parse_module_declaration({"permissions": ["tabs"], "title": "Base"})

    overlaid = overlay_module_declaration(manifest, {"permissions": ["cookies", "cookies"]})

    assert overlaid["permissions"] == ["cookies"]
    assert overlaid["title"] == "Base"


def test_read_contributors(workspace) -> None:  # type: ignore[no-untyped-def]
    assert read_contributors(workspace.path()) == []

    workspace.write_json("contributors.json", {"name": "x"})
    with pytest.raises(ManifestError):
        read_contributors(workspace.path())

    workspace.write_json("contributors.json", [{"name": "x"}])
    assert read_contributors(workspace.path()) == [{"name": "x"}]


def test_get_package_modules_orders_priority_first() -> None:
    package = {
        "name": "@radon-extension/browser-chrome",
        "dependencies": {"@radon-extension/source-x": "1.0.0", "lodash": "^4.0.0"},
        "peerDependencies": {"@radon-extension/core": "1.0.0", "@radon-extension/build": "1.0.0"},
    }

    modules = get_package_modules(package, SCOPE, PRIORITY)

    assert modules == [
        "@radon-extension/build",
        "@radon-extension/core",
        "@radon-extension/source-x",
    ]


def test_get_package_modules_rejects_external_package() -> None:
    with pytest.raises(ManifestError):
        get_package_modules({"name": "other"}, SCOPE)


def test_update_package_only_rewrites_declared_entries() -> None:
    package = {
        "dependencies": {"@radon-extension/core": "1.0.0"},
        "peerDependencies": {"@radon-extension/framework": "1.0.0"},
    }

    update_package(
        package,
        {
            "@radon-extension/core": "file:core.tgz",
            "@radon-extension/framework": {"version": "2.0.0", "from": "x"},
            "@radon-extension/other": "3.0.0",
        },
    )

    assert package["dependencies"] == {"@radon-extension/core": "file:core.tgz"}
    assert package["peerDependencies"] == {"@radon-extension/framework": "2.0.0"}


def test_update_package_rejects_missing_version() -> None:
    package = {"dependencies": {"@radon-extension/core": "1.0.0"}}

    with pytest.raises(ManifestError):
        update_package(package, {"@radon-extension/core": {"from": "x"}})


def test_update_package_locks_drops_integrity_of_internal_entries() -> None:
    locks = {
        "name": "@radon-extension/browser-chrome",
        "version": "1.0.0",
        "dependencies": {
            "@radon-extension/core": {"version": "1.0.0", "integrity": "sha512-x", "from": "old"},
            "lodash": {"version": "4.0.0", "integrity": "sha512-y"},
        },
    }

    result = update_package_locks(locks, {"@radon-extension/core": "file:core.tgz"}, scope=SCOPE)

    assert result["dependencies"]["@radon-extension/core"] == {"version": "file:core.tgz"}
    assert result["dependencies"]["lodash"] == {"version": "4.0.0", "integrity": "sha512-y"}
    assert result["version"] == "1.0.0"


def test_update_package_locks_updates_own_version() -> None:
    locks = {"name": "@radon-extension/core", "version": "1.0.0"}

    result = update_package_locks(locks, {"@radon-extension/core": "1.1.0"}, scope=SCOPE)

    assert result["version"] == "1.1.0"
    assert "dependencies" not in result


def test_write_package_unrelated_versions_leave_file_untouched(workspace) -> None:  # type: ignore[no-untyped-def]
    path = workspace.path("package.json")
    original = '{\r\n    "name": "x",\r\n    "dependencies": {"lodash": "^4.0.0"}\r\n}'
    path.write_bytes(original.encode("utf-8"))

    assert write_package(workspace.path(), {"@radon-extension/core": "1.0.0"}) is False
    assert path.read_bytes() == original.encode("utf-8")


def test_write_package_keeps_line_endings(workspace) -> None:  # type: ignore[no-untyped-def]
    path = workspace.path("package.json")
    path.write_bytes(b'{\r\n  "name": "x",\r\n  "dependencies": {\r\n    "@radon-extension/core": "1.0.0"\r\n  }\r\n}\r\n')

    assert write_package(workspace.path(), {"@radon-extension/core": "file:core.tgz"}) is True

    raw = path.read_bytes().decode("utf-8")
    assert raw.endswith("}\r\n")
    assert "\n" not in raw.replace("\r\n", "")
    assert json.loads(raw)["dependencies"]["@radon-extension/core"] == "file:core.tgz"


def test_write_package_locks_without_lockfile_is_noop(tmp_path: Path) -> None:
    assert write_package_locks(tmp_path, {"@radon-extension/core": "1.0.0"}, scope=SCOPE) is False
    assert not (tmp_path / "package-lock.json").exists()


def test_write_package_locks_strips_integrity(workspace) -> None:  # type: ignore[no-untyped-def]
    workspace.write_json(
        "package-lock.json",
        {"name": "x", "dependencies": {"@radon-extension/core": {"version": "1.0.0", "integrity": "sha"}}},
    )

    assert write_package_locks(workspace.path(), scope=SCOPE) is True

    data = json.loads(workspace.path("package-lock.json").read_text(encoding="utf-8"))
    assert data["dependencies"]["@radon-extension/core"] == {"version": "1.0.0"}
