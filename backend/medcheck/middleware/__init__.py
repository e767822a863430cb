"""
MedCheck Backend - Middleware Package
=====================================

Execution order for a request (main.py adds them in reverse):
    Rate Limit → Request ID → Logging → GZip → CORS → route

    - rate_limit.py:  per-client sliding window, 429 with Retry-After
    - request_id.py:  X-Request-ID correlation id in a ContextVar
    - logging.py:     one access log line per request on "medcheck.access"
"""
