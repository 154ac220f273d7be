"""
apiforge — Response Schemas
============================

Pydantic models for the fixed (non-generated) routes: /health and /admin/*.
Generated CRUD endpoints return plain envelopes built by their handlers.
"""
