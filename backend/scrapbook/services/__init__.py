# Services package init
"""
Scrapbook Backend — Services Layer
===================================

Service Inventory:
    - IdentityService:  assertion → user resolution, provisioning, welcome entry
    - EmailDomainPolicy: which email domains may sign in at all
    - AllowlistService: administrator-managed self-provisioning list
    - AccessService:    sign-in decision and the approve/reject workflow
    - ScoreService:     best-score ledger and leaderboard
    - PageService:      people search, page view, posting, profile edits
    - AdminService:     user/entry moderation and the dashboard numbers

Services take the request's AsyncSession as an argument and flush, never
commit; the session dependency owns the transaction. Each module exposes a
ready-made singleton (e.g. `access_service`).
"""
