"""
kehila.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for community identity and the few tuning knobs the
gamification core needs (calendar-day timezone, rule fetch bound, cache
sweep interval, notification housekeeping).  Point values themselves live
in the ``gamification_rules`` table.

Usage::

    from kehila.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Kehila Dev"
    print(cfg.tzinfo)            # zoneinfo.ZoneInfo(key='Asia/Jerusalem')
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class KehilaConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Calendar day used by the daily award guard (IANA zone name)
    timezone: str = "UTC"

    # Gamification
    rules_fetch_limit: int = 100

    # Cache
    cache_sweep_interval_seconds: int = 300

    # Notifications
    notification_keep_count: int = 60
    notification_fallback_type: str = "like"

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> KehilaConfig:
    """Read *path* and return a :class:`KehilaConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return KehilaConfig(
        community_name=raw["community_name"],
        timezone=str(raw.get("timezone") or "UTC"),
        rules_fetch_limit=int(raw.get("rules_fetch_limit", 100)),
        cache_sweep_interval_seconds=int(raw.get("cache_sweep_interval_seconds", 300)),
        notification_keep_count=int(raw.get("notification_keep_count", 60)),
        notification_fallback_type=str(raw.get("notification_fallback_type") or "like"),
    )
