"""
apiforge — Persistence Providers
=================================

    - base.py:      PersistenceProvider contract
    - memory.py:    InMemoryProvider (tests, dev, CLI)
    - sql.py:       SqlAlchemyProvider (async SQLAlchemy 2.0)
    - registry.py:  ProviderRegistry dispatch table, validated at startup
"""

from apiforge.providers.base import Entity, OrderBy, PersistenceProvider
from apiforge.providers.memory import InMemoryProvider
from apiforge.providers.registry import ProviderRegistry, ResourceBinding

__all__ = [
    "Entity",
    "OrderBy",
    "PersistenceProvider",
    "InMemoryProvider",
    "ProviderRegistry",
    "ResourceBinding",
]
