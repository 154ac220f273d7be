"""
apiforge — Services
====================

Stateful collaborators, constructed once per app by the container:

    - registry.py:        EndpointRegistry and EndpointDescriptor
    - crud_generator.py:  CRUD endpoint generation
    - rate_limiter.py:    fixed-window limiter ("rate_limit" stage)
    - auth.py:            authentication strategies ("auth" stage)
    - versioning.py:      version resolution ("version" stage)
    - error_handler.py:   error normalization, redaction, envelopes
    - route_analyzer.py:  endpoint statistics and recommendations
    - docs_generator.py:  OpenAPI / Postman / Markdown output
"""
