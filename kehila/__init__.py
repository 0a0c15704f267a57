"""
Kehila — Gamification Core for a Community Web Application
============================================================
Awards points for community activity (likes, comments, posts, daily
logins), keeps an append-only points ledger, evaluates badges, notifies
members, and keeps hot query results in a TTL cache.

Package layout::

    kehila/
    ├── __main__.py        # `python -m kehila`: init DB, repair rules, resync points
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Cache tiers, cache keys, notification types
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (profiles, rules, ledger, badges, ...)
    │   ├── schema.py      # Live-schema adapter (ledger/rule column variants)
    │   └── seed.py        # Default gamification rules
    ├── engine/
    │   ├── cache.py       # In-memory TTL cache + periodic sweeper
    │   ├── actions.py     # Canonical actions + bilingual alias table
    │   └── awards.py      # AwardResult, day windows, rule matching
    ├── services/
    │   ├── points_service.py        # Point-award pipeline, ledger, sync
    │   ├── rule_service.py          # Rule loading (cached) + ensure defaults
    │   ├── profile_service.py       # Profile lookup, rank, leaderboard
    │   ├── badge_service.py         # Threshold badge evaluation
    │   └── notification_service.py  # User notifications
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine / cache / schema dependencies
        └── routes/        # Points, notifications, admin endpoints
"""

__version__ = "0.1.0"
