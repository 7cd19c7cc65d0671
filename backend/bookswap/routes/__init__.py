"""
BookSwap Backend - API Routes Package
=======================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - health.py:         GET  /health
    - auth.py:           GET  /api/auth/csrf
    - books.py:          /api/books, /api/books/{id}
    - swaps.py:          /api/swaps, /api/swaps/{id}, /api/swaps/{id}/counter-offer
    - notifications.py:  /api/notifications/..., daily reminder trigger
    - chat.py:           GET|POST /api/chat
    - profile.py:        /api/profile/..., /storage/avatars/{key}
    - dashboard.py:      GET  /api/dashboard

Routes are THIN: they read the request, call one service method with the
RequestContext, and return its schema. Business rules live in services.
"""
