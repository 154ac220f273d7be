"""
apiforge — HTTP Routes
=======================

Route Inventory:
    - dispatch.py:  GET/POST/PUT/PATCH/DELETE /api/...   (every registered endpoint)
    - admin.py:     GET  /admin/analysis
                    GET  /admin/health
                    GET  /admin/docs?format=openapi|postman|markdown
                    GET  /admin/versions
                    POST /admin/versions/{version}/deprecate
    - health.py:    GET  /health

Routes stay thin: they translate between HTTP and the container's
services and never format errors themselves.
"""
