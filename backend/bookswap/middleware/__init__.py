"""
BookSwap Backend - Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Request ID] → [Rate Limit] → [Logging] → [GZip] → [Session] → [CORS] → Route

    1. Request ID first: every later log line and error body carries it
    2. Rate Limit: rejects over-quota callers before any route work
    3. Logging: records status and duration of what actually ran
    4. Session: loads the signed cookie holding the CSRF token
"""
