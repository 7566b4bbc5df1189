"""Per-invocation state shared by the orchestration steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .config import ExtBuildConfig
from .logging import get_logger
from .validation.links import LinkRegistry


@dataclass
class BuildContext:
    """Owns the link registry and the error flags of one top-level run."""

    config: ExtBuildConfig
    links: LinkRegistry = field(default_factory=LinkRegistry)
    errors: List[str] = field(default_factory=list)

    def flag_error(self, message: str) -> None:
        """Record a non-fatal error that must fail the run's validation step."""
        get_logger("context").error(message)
        self.errors.append(message)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


__all__ = ["BuildContext"]
