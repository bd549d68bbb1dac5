"""Check registry: check-type name → constructor of a default check instance.

Built once at startup, frozen, then handed explicitly to the configuration
decoder and the CLI. Tests build their own isolated registries.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import MappingProxyType

from pcg.checks.base import Check
from pcg.checks.coverage import Coverage
from pcg.checks.definitions import (
    Build,
    Custom,
    Errcheck,
    Gofmt,
    Goimports,
    Golint,
    Govet,
    Test,
)
from pcg.errors import RegistryError

logger = logging.getLogger(__name__)

CheckFactory = Callable[[], Check]

# Registration order is the order used by `help` and by encoded configs.
BUILTIN_CHECKS: tuple[type[Check], ...] = (
    Build,
    Gofmt,
    Test,
    Errcheck,
    Goimports,
    Golint,
    Govet,
    Coverage,
    Custom,
)


class CheckRegistry:
    """Maps check-type names to zero-argument check constructors."""

    def __init__(self) -> None:
        self._factories: dict[str, CheckFactory] = {}
        self._frozen = False

    def register(self, name: str, factory: CheckFactory) -> None:
        if self._frozen:
            raise RegistryError(f"registry is frozen, cannot register \"{name}\"")
        if name in self._factories:
            raise RegistryError(f"check \"{name}\" is already registered")
        self._factories[name] = factory

    def freeze(self) -> CheckRegistry:
        self._frozen = True
        self._factories = MappingProxyType(self._factories)  # type: ignore[assignment]
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, name: str) -> Check | None:
        """Return a fresh default-initialized instance, or None if unknown."""
        factory = self._factories.get(name)
        return factory() if factory else None

    def check_class(self, name: str) -> type[Check] | None:
        check = self.lookup(name)
        return type(check) if check is not None else None

    def names(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def __len__(self) -> int:
        return len(self._factories)


def default_registry() -> CheckRegistry:
    """A frozen registry holding every built-in check variant."""
    registry = CheckRegistry()
    for cls in BUILTIN_CHECKS:
        registry.register(cls.check_type, cls)
    return registry.freeze()
