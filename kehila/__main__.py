"""
kehila.__main__ — Maintenance entry point for ``python -m kehila``
===================================================================

Wiring:
1. Load .env (DATABASE_URL).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Resolve the live ledger/rules schema.
5. Ensure (and repair) the default gamification rules.
6. Recompute every profile's points total from the ledger.

Run with::

    uv run python -m kehila
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from kehila.config import load_config
from kehila.database.engine import create_db_engine, init_db
from kehila.database.schema import resolve_schema
from kehila.services.points_service import sync_all_users_points
from kehila.services.rule_service import ensure_gamification_rules

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("kehila")


def main() -> None:
    """Bootstrap the database and reconcile the points ledger."""

    # 1. Environment variables.
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, KeyError) as exc:
        logger.critical("Cannot load configuration: %s", exc)
        sys.exit(1)
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Live schema.
    schema = resolve_schema(engine)

    # 5. Rules.
    created, updated = ensure_gamification_rules(engine, schema)
    logger.info("Rules: %d created, %d repaired", created, updated)

    # 6. Aggregates.
    result = sync_all_users_points(engine, schema)
    logger.info(
        "Points synced for %d profiles (%d were inconsistent)",
        result["synced"], result["inconsistent"],
    )


if __name__ == "__main__":
    main()
