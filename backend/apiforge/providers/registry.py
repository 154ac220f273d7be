"""
apiforge — Provider Dispatch Table
===================================

What:  Explicit mapping from resource name to the PersistenceProvider that
       stores it, plus the id format that resource accepts.
How:   Resources are bound once during bootstrap. `validate()` runs at
       startup against every resource the app intends to serve, so an
       unknown name fails the boot instead of the first request.

Id formats:
    "uuid"  canonical UUID text (default; matches RecordMixin ids)
    "int"   non-negative integer text
    "any"   any non-empty string
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from apiforge.exceptions import ConfigurationError
from apiforge.providers.base import PersistenceProvider

ID_FORMATS = ("uuid", "int", "any")


@dataclass(frozen=True)
class ResourceBinding:
    name: str
    provider: PersistenceProvider
    id_format: str = "uuid"


class ProviderRegistry:
    def __init__(self) -> None:
        self._bindings: Dict[str, ResourceBinding] = {}

    def register(self, name: str, provider: PersistenceProvider, id_format: str = "uuid") -> ResourceBinding:
        if id_format not in ID_FORMATS:
            raise ConfigurationError(f"Unknown id format '{id_format}' for resource '{name}'")
        binding = ResourceBinding(name=name, provider=provider, id_format=id_format)
        self._bindings[name] = binding
        return binding

    def get(self, name: str) -> ResourceBinding:
        try:
            return self._bindings[name]
        except KeyError:
            raise ConfigurationError(
                f"No persistence provider registered for resource '{name}'. "
                f"Known resources: {', '.join(sorted(self._bindings)) or 'none'}"
            ) from None

    def validate(self, resources: Iterable[str]) -> None:
        """Raise ConfigurationError listing every resource without a provider."""
        missing = sorted(set(resources) - set(self._bindings))
        if missing:
            raise ConfigurationError(
                f"Resources without a persistence provider: {', '.join(missing)}"
            )

    def names(self) -> Tuple[str, ...]:
        return tuple(self._bindings)

    def __contains__(self, name: object) -> bool:
        return name in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)
