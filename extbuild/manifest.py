"""Package manifest, module declaration and lockfile helpers."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

PACKAGE_FILENAME = "package.json"
LOCKFILE_FILENAME = "package-lock.json"
CONTRIBUTORS_FILENAME = "contributors.json"
MODULE_DECLARATION_FILENAME = "module.json"

_PACKAGE_DEFAULTS: Dict[str, Any] = {
    "name": None,
    "version": None,
    "description": None,
    "keywords": None,
    "homepage": None,
    "author": None,
    "license": None,
    "main": None,
    "private": None,
    "bugs": None,
    "engines": None,
    "repository": None,
    "dependencies": {},
    "devDependencies": {},
    "peerDependencies": {},
    "bin": None,
    "scripts": None,
}

_DECLARATION_DEFAULTS: Dict[str, Any] = {
    "title": None,
    "icons": {},
    "content_scripts": [],
    "web_accessible_resources": [],
    "origins": [],
    "permissions": [],
    "optional_origins": [],
    "optional_permissions": [],
    "webpack": {
        "alias": [],
        "babel": [],
        "modules": {},
    },
}

_UNIQUE_COLLECTIONS = (
    "web_accessible_resources",
    "origins",
    "permissions",
    "optional_origins",
    "optional_permissions",
)


class ManifestError(RuntimeError):
    """Raised when a manifest file has an unexpected structure."""


# Reading


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def read_package_details(path: Path) -> Dict[str, Any]:
    """Read ``package.json`` from the module directory ``path``."""
    data = read_json(Path(path) / PACKAGE_FILENAME)
    if not isinstance(data, dict):
        raise ManifestError(f"Expected {PACKAGE_FILENAME} in {path} to be an object")
    return _deep_merge(_PACKAGE_DEFAULTS, data)


def read_module_declaration(path: Path, browser: Optional[str] = None) -> Dict[str, Any]:
    """Read ``module.json`` (or ``module.<browser>.json``); missing files yield ``{}``."""
    name = MODULE_DECLARATION_FILENAME if browser is None else f"module.{browser}.json"
    try:
        data = read_json(Path(path) / name)
    except (OSError, json.JSONDecodeError):
        return {}
    if not isinstance(data, dict):
        raise ManifestError(f"Expected {name} in {path} to be an object")
    return data


def parse_module_declaration(data: Mapping[str, Any], content_scripts: Optional[str] = None) -> Dict[str, Any]:
    """Normalise a module declaration.

    Defaults are filled in, content-script origins are included when content
    scripts are registered dynamically, collections are de-duplicated and the
    shorthand ``webpack.modules`` entries are expanded to ``{entry, modules}``.
    """
    defaults = dict(_DECLARATION_DEFAULTS, title=data.get("name"))
    manifest = _deep_merge(defaults, data)

    if content_scripts == "dynamic":
        manifest["origins"] = list(manifest["origins"]) + _content_script_origins(
            manifest["content_scripts"]
        )

    _normalise_collections(manifest)

    webpack = manifest["webpack"]
    webpack["modules"] = {
        alias: _expand_bundle(alias, value) for alias, value in (webpack.get("modules") or {}).items()
    }
    return manifest


def overlay_module_declaration(manifest: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Join a browser-specific overlay onto a parsed declaration."""
    result = dict(manifest)
    result.update(overlay)
    _normalise_collections(result)
    return result


def read_contributors(path: Path) -> List[Dict[str, Any]]:
    """Read ``contributors.json``; a missing file yields an empty list."""
    try:
        data = read_json(Path(path) / CONTRIBUTORS_FILENAME)
    except FileNotFoundError:
        return []
    if not isinstance(data, list):
        raise ManifestError("Expected contributors to be an array")
    return data


def _content_script_origins(content_scripts: Iterable[Mapping[str, Any]]) -> List[str]:
    origins: List[str] = []
    for script in content_scripts or []:
        for origin in script.get("matches") or []:
            if origin is None:
                raise ManifestError(f"Invalid content script origin: {origin}")
            origins.append(origin)
    return origins


def _expand_bundle(alias: str, value: Any) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if isinstance(value, list):
        options = {"modules": value}
    elif isinstance(value, dict):
        options = value
    return {"entry": False, "modules": [alias], **options}


def _normalise_collections(manifest: Dict[str, Any]) -> None:
    for key in _UNIQUE_COLLECTIONS:
        if key in manifest and manifest[key] is not None:
            manifest[key] = _unique(manifest[key])


def _unique(values: Iterable[Any]) -> List[Any]:
    result: List[Any] = []
    for value in values:
        if value not in result:
            result.append(value)
    return result


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = _deep_merge(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# Module lists


def order_modules(names: Sequence[str], priority: Sequence[str]) -> List[str]:
    """Move the ``priority`` names (when present) to the front, keeping the rest in order."""
    head = [name for name in priority if name in names]
    return head + [name for name in names if name not in head]


def get_package_modules(package: Mapping[str, Any], scope: str, priority: Sequence[str] = ()) -> List[str]:
    """Return the internal modules a package depends on."""
    name = package.get("name") or ""
    if not name.startswith(scope):
        raise ManifestError(f"Invalid module: {name}")

    names: List[str] = []
    for group in ("dependencies", "peerDependencies"):
        for dependency in (package.get(group) or {}).keys():
            if dependency.startswith(scope) and dependency not in names:
                names.append(dependency)
    return order_modules(names, priority)


# Editing


def parse_package_dependency(value: Any) -> Dict[str, Any]:
    """Normalise a version update into ``{"from": ..., "version": ...}``."""
    if not isinstance(value, dict):
        value = {"version": value}
    return {"from": None, "version": None, **value}


def update_package(package: Dict[str, Any], versions: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    """Rewrite dependency versions that ``package`` already declares."""
    versions = versions or {}

    for group in ("dependencies", "peerDependencies"):
        dependencies = package.get(group)
        if not dependencies:
            continue
        updated = dict(dependencies)
        for name, value in versions.items():
            if name not in dependencies:
                continue
            version = parse_package_dependency(value)["version"]
            if version is None:
                raise ManifestError(f'Invalid version defined for "{name}": {version}')
            updated[name] = version
        package[group] = updated
    return package


def update_package_locks(
    locks: Dict[str, Any], versions: Mapping[str, Any] | None = None, *, scope: str
) -> Dict[str, Any]:
    """Update internal lock entries and drop their ``integrity`` fields."""
    versions = versions or {}
    dependencies = dict(locks.get("dependencies") or {})

    for name, dependency in list(dependencies.items()):
        if not name.startswith(scope) or not isinstance(dependency, dict):
            continue
        dependency = dict(dependency)
        if versions.get(name) is not None:
            update = parse_package_dependency(versions[name])
            if update["version"] is None:
                raise ManifestError(f'Invalid version defined for "{name}": {update["version"]}')
            dependency["version"] = update["version"]
            if update["from"] is not None:
                dependency["from"] = update["from"]
            else:
                dependency.pop("from", None)
        dependency.pop("integrity", None)
        dependencies[name] = dependency

    result = dict(locks)
    if locks.get("name") in versions:
        result["version"] = parse_package_dependency(versions[locks["name"]])["version"]
    if "dependencies" in locks:
        result["dependencies"] = dependencies
    return result


def write_package(path: Path, versions: Mapping[str, Any] | None = None) -> bool:
    """Apply ``versions`` to ``package.json``; return True when the file changed."""
    path = Path(path)
    if path.is_dir():
        path = path / PACKAGE_FILENAME
    return _rewrite_json(path, lambda data: update_package(data, versions))


def write_package_locks(
    path: Path, versions: Mapping[str, Any] | None = None, *, scope: str
) -> bool:
    """Apply ``versions`` to ``package-lock.json``; return True when the file changed."""
    path = Path(path)
    if path.is_dir():
        path = path / LOCKFILE_FILENAME
    if not path.exists():
        return False
    return _rewrite_json(path, lambda data: update_package_locks(data, versions, scope=scope))


def _rewrite_json(path: Path, update) -> bool:  # type: ignore[no-untyped-def]
    raw = path.read_bytes().decode("utf-8")
    previous = json.loads(raw)
    current = update(copy.deepcopy(previous))
    if current == previous:
        return False

    eol = "\r\n" if "\r\n" in raw else "\n"
    text = json.dumps(current, indent=2, ensure_ascii=False)
    path.write_bytes((text.replace("\n", eol) + eol).encode("utf-8"))
    return True


__all__ = [
    "ManifestError",
    "get_package_modules",
    "order_modules",
    "overlay_module_declaration",
    "parse_module_declaration",
    "read_contributors",
    "read_json",
    "read_module_declaration",
    "read_package_details",
    "update_package",
    "update_package_locks",
    "write_package",
    "write_package_locks",
]
