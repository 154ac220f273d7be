"""
apiforge — HTTP Middleware
===========================

What:  Transport-level concerns wrapped around every request.

    Request → [Request ID] → [Access Log] → [CORS] → route

Endpoint-level concerns (rate limiting, auth, validation, versioning) are
not Starlette middleware; they are pipeline stages attached per endpoint,
see apiforge.pipeline.
"""
