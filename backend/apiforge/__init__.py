"""
apiforge — Application Package Initializer
===========================================

What: Runtime framework that synthesizes REST endpoints from resource
      descriptors and runs every request through an ordered pipeline of
      cross-cutting concerns.
Who:  Imported by uvicorn (`apiforge.main:app`), the `apiforge` CLI and pytest.

Architecture Note:

    ┌─────────────────────────────────────┐
    │   Routes (dispatcher, admin, health)│  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Pipeline (version → rate limit →  │  ← per-request stage chain
    │   auth → validate → handler)        │
    ├─────────────────────────────────────┤
    │   Services (registry, CRUD generator│  ← explicitly constructed,
    │   validation, auth, versioning ...) │    wired by the container
    ├─────────────────────────────────────┤
    │   Persistence providers             │  ← in-memory or async SQLAlchemy
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
