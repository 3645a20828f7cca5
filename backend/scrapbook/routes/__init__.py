# Routes package init
"""
Scrapbook Backend — API Routes Package
=======================================

Route Inventory:
    - auth.py:    POST /api/auth/identity   (gateway-verified sign-in)
                  POST /api/auth/dev        (local dev sign-in)
                  POST /api/auth/admin      (administrator sign-in)
    - pages.py:   GET/PATCH /api/me, GET /api/people, GET /api/stats,
                  GET /api/pages/{share_code}, POST /api/pages/{share_code}/entries
    - scores.py:  POST /api/scores, GET /api/leaderboard
    - admin.py:   /api/admin/... (requests, allowlist, users, entries, metrics)
    - health.py:  GET /health

Routes stay thin: they pick the principal, call one service and shape the
response. Business rules live in services.
"""
