"""Dependency policy enforcement over the bundler's reason graph."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Deque, Dict, List, Mapping, Optional, Set, Tuple

from ..bundler import CompiledModule
from ..logging import get_logger
from ..models import BrowserContext, DependencySpec, Environment, Module
from ..version import is_pinned
from .base import (
    DependencyParseError,
    OwnershipIndex,
    UnusedDependency,
    ValidationError,
    ValidationState,
    parse_dependency,
)

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..context import BuildContext


class DependencyValidator:
    """Validates dependency edges for one (browser, environment) run.

    Every edge from a tracked module to a package is classified as internal
    (checked against ``peerDependencies``) or external (checked against
    ``dependencies``). Passing edges are recorded so that :meth:`finish` can
    report declared dependencies nothing required.
    """

    def __init__(self, context: "BuildContext", browser: BrowserContext, environment: Environment) -> None:
        self.context = context
        self.config = context.config
        self.browser = browser
        self.environment = environment
        self.state = ValidationState()
        self.logger = get_logger("validator")
        self._index = OwnershipIndex(browser.modules.values())
        self._ignored = set(self.config.validation.ignored_packages)
        self._permitted = set(self.config.validation.permitted_modules)

    # ------------------------------------------------------------------
    # Validation

    def validate(self, module: CompiledModule) -> None:
        """Validate every tracked source that (transitively) requested ``module``."""
        if module.user_request is None:
            return

        for requested, source in self.resolve_reasons(module):
            request = requested.user_request
            if request is None or self.state.is_checked(source, request):
                continue
            self.state.mark_checked(source, request)
            self.validate_reason(source, request)

    def resolve_reasons(self, module: CompiledModule) -> List[Tuple[CompiledModule, str]]:
        """Return ``(requested module, source)`` pairs whose source is a tracked module.

        Reasons originating outside tracked modules (bundler wrappers, third
        party packages) are followed until a tracked source is reached.
        """
        results: List[Tuple[CompiledModule, str]] = []
        queue: Deque[CompiledModule] = deque([module])
        visited: Set[int] = {id(module)}

        while queue:
            current = queue.popleft()
            for reason in current.reasons:
                origin = reason.module
                if origin is None or origin.user_request is None:
                    continue

                source = self._resolve_link(origin.user_request)
                if self._index.owner(source, include_packages=False, include_dependencies=False) is not None:
                    results.append((current, source))
                    continue

                if id(origin) not in visited:
                    visited.add(id(origin))
                    queue.append(origin)
        return results

    def validate_reason(self, source: str, request: str) -> bool:
        """Validate that the module owning ``source`` may depend on ``request``."""
        try:
            dependency = parse_dependency(request)
        except DependencyParseError as exc:
            return self._fail(f'Unable to parse dependency "{request}": {exc}')

        if dependency.name in self._ignored:
            return False

        module = self._index.owner(source)
        if module is None:
            return self._fail(f'[{dependency.name}] Unknown source: "{source}"')

        # Modules may always import themselves
        if dependency.name == module.name:
            return True

        if self.config.is_internal(dependency.name) and dependency.name not in self._permitted:
            return self._fail(
                f'Dependency "{dependency.name}" is not permitted for "{module.name}" (request: "{request}")'
            )

        if module.type == "package":
            return self._fail(f'Dependency "{dependency.name}" should be defined (source: "{source}")')

        if not self.validate_dependency(dependency, module):
            self.state.has_error = True
            return False

        self.state.record(self.browser.name, self.environment.name, module.name, dependency.name)
        return True

    def validate_dependency(self, dependency: DependencySpec, module: Module) -> bool:
        """Check how ``module`` declares ``dependency``."""
        name = dependency.name
        internal = self.config.is_internal(name)
        declared = (module.peer_dependencies if internal else module.dependencies).get(name)

        if declared is None:
            self.logger.error('Dependency "%s" should be defined for "%s"', name, module.name)
            return False

        if name in module.dev_dependencies:
            self.logger.error(
                'Dependency "%s" for "%s" shouldn\'t be defined as a development dependency', name, module.name
            )
            return False

        if not internal and name in module.peer_dependencies:
            self.logger.error(
                'Dependency "%s" for "%s" shouldn\'t be defined as a peer dependency', name, module.name
            )
            return False

        if is_pinned(declared):
            self.logger.error(
                'Dependency "%s" for "%s" shouldn\'t be pinned to a version (found: %s)',
                name,
                module.name,
                declared,
            )
            return False

        return True

    # ------------------------------------------------------------------
    # Audit

    def finish(self) -> List[UnusedDependency]:
        """Fail on recorded errors, then report declared dependencies nothing used."""
        if self.state.has_error:
            raise ValidationError("Build didn't pass validation")

        browser_name = self.browser.name
        environment_name = self.environment.name
        if not self.state.dependencies.get(browser_name, {}).get(environment_name):
            raise ValidationError("No dependencies validated")

        self.logger.info("Checked %d source(s)", len(self.state.checked))

        unused: List[UnusedDependency] = []
        extension = self.browser.extension
        unused.extend(
            self._check_dependencies(
                extension.name,
                extension.package.get("dependencies") or {},
                self.state.matched(browser_name, environment_name, extension.name),
                label=None,
            )
        )

        for module in self.browser.modules.values():
            if module.type in ("package", "tool"):
                continue
            unused.extend(
                self._check_dependencies(
                    module.name,
                    module.dependencies,
                    self.state.matched(browser_name, environment_name, module.name),
                    label=module.name,
                )
            )
        return unused

    def _check_dependencies(
        self,
        owner: str,
        declared: Mapping[str, str],
        matched: Dict[str, bool],
        *,
        label: Optional[str],
    ) -> List[UnusedDependency]:
        unused: List[UnusedDependency] = []
        for name in declared:
            if self.config.is_internal(name) or matched.get(name):
                continue
            if label is not None:
                self.logger.warning('Dependency "%s" for "%s" is not required', name, label)
            else:
                self.logger.warning('Dependency "%s" is not required', name)
            unused.append(UnusedDependency(module=owner, dependency=name))
        return unused

    # ------------------------------------------------------------------
    # Helpers

    def _resolve_link(self, path: str) -> str:
        resolved = self.context.links.resolve_link(self.browser.name, self.environment.name, path)
        return resolved if resolved is not None else path

    def _fail(self, message: str) -> bool:
        self.logger.error(message)
        self.state.has_error = True
        return False


__all__ = ["DependencyValidator"]
