"""Configuration loading for extbuild (.extbuild.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".extbuild.yml"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ValidationConfig:
    """Dependency policy settings."""

    ignored_packages: List[str] = field(
        default_factory=lambda: ["jquery", "react", "react-dom", "webpack"]
    )
    permitted_modules: List[str] = field(
        default_factory=lambda: ["@radon-extension/framework"]
    )


@dataclass
class CIConfig:
    """Continuous integration polling settings (seconds and attempt counts)."""

    status_context: str = "continuous-integration/travis-ci/push"
    status_attempts: int = 20
    status_interval: float = 15.0
    branch_delay: float = 30.0
    tag_delay: float = 15.0
    build_attempts: int = 120
    build_interval: float = 15.0
    build_growth: float = 0.2
    build_max_interval: float = 45.0
    github_api_url: str = "https://api.github.com"
    travis_api_url: str = "https://api.travis-ci.org"


@dataclass
class DeployConfig:
    """Bintray release descriptor settings."""

    subject: str = "radonapp"
    repository: str = "radon-extension"
    licenses: List[str] = field(default_factory=lambda: ["GPL-3.0"])
    archive_prefix: str = "Radon"


@dataclass
class ExtBuildConfig:
    """Represents the settings defined in .extbuild.yml."""

    root: Path
    scope: str = "@radon-extension/"
    repository_prefix: str = "radon-extension-"
    owner: str = "RadonApp"
    build_tool: str = "@radon-extension/build"
    core_modules: List[str] = field(
        default_factory=lambda: [
            "@radon-extension/build",
            "@radon-extension/framework",
            "@radon-extension/core",
        ]
    )
    remotes: List[str] = field(default_factory=lambda: ["bitbucket", "origin"])
    primary_remote: str = "origin"
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    ci: CIConfig = field(default_factory=CIConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)

    def repository_name(self, module_name: str) -> str:
        """Map an internal module name onto its repository name."""
        if not module_name.startswith(self.scope):
            raise ConfigError(f"Invalid module name: {module_name}")
        return self.repository_prefix + module_name[len(self.scope):]

    def is_internal(self, name: str) -> bool:
        return name.startswith(self.scope)


def load_config(config_path: Path) -> ExtBuildConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ExtBuildConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    config = ExtBuildConfig(root=root)

    for name in ("scope", "repository_prefix", "owner", "build_tool", "primary_remote"):
        value = _as_str(data.get(name))
        if value:
            setattr(config, name, value)

    if "core_modules" in data:
        config.core_modules = _as_str_list(data.get("core_modules"))
    if "remotes" in data:
        remotes = _as_str_list(data.get("remotes"))
        if not remotes:
            raise ConfigError("remotes must list at least one remote")
        config.remotes = remotes

    validation_data = _as_dict(data.get("validation"))
    if "ignored_packages" in validation_data:
        config.validation.ignored_packages = _as_str_list(validation_data["ignored_packages"])
    if "permitted_modules" in validation_data:
        config.validation.permitted_modules = _as_str_list(validation_data["permitted_modules"])

    ci_data = _as_dict(data.get("ci"))
    for name in ("status_context", "github_api_url", "travis_api_url"):
        value = _as_str(ci_data.get(name))
        if value:
            setattr(config.ci, name, value)
    for name in ("status_attempts", "build_attempts"):
        value = _as_number(ci_data.get(name), int)
        if value is not None:
            if value < 1:
                raise ConfigError(f"ci.{name} must be at least 1")
            setattr(config.ci, name, value)
    for name in (
        "status_interval",
        "branch_delay",
        "tag_delay",
        "build_interval",
        "build_growth",
        "build_max_interval",
    ):
        value = _as_number(ci_data.get(name), float)
        if value is not None:
            setattr(config.ci, name, value)

    deploy_data = _as_dict(data.get("deploy"))
    for name in ("subject", "repository", "archive_prefix"):
        value = _as_str(deploy_data.get(name))
        if value:
            setattr(config.deploy, name, value)
    if "licenses" in deploy_data:
        config.deploy.licenses = _as_str_list(deploy_data["licenses"])

    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_number(value: Any, kind: type) -> Any:
    """Coerce a YAML scalar to ``kind``; booleans and fractional ints give ``None``."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    if kind is int and isinstance(value, float):
        return None
    try:
        return kind(value)
    except ValueError:
        return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []
