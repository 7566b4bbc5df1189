"""Dependency validation for compiled extension builds."""

from .base import (
    DependencyParseError,
    OwnershipIndex,
    UnusedDependency,
    ValidationError,
    ValidationState,
    dependency_name_from_path,
    parse_dependency,
)
from .links import LinkRegistry
from .validator import DependencyValidator

__all__ = [
    "DependencyParseError",
    "DependencyValidator",
    "LinkRegistry",
    "OwnershipIndex",
    "UnusedDependency",
    "ValidationError",
    "ValidationState",
    "dependency_name_from_path",
    "parse_dependency",
]
