# Middleware package init
"""
Scrapbook Backend — Middleware Package
=======================================

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    1. Rate Limit: rejects floods on sign-in and score submission early
    2. Request ID: sets the correlation id used by every later log line
    3. Logging: one access-log line per request, with the id
"""
