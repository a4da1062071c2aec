"""Default settings and driver configuration loading."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

from taxi_ledger.model import (
    ALL_RIDE_TYPES,
    DEFAULT_PAYMENT_ORDER,
    PAYMENT_METHODS,
    MonthlyStats,
)

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_GOAL = 1_000_000
DEFAULT_DAILY_GOAL = 50_000
DEFAULT_SHIMEBI_DAY = 20
DEFAULT_BUSINESS_START_HOUR = 9
DEFAULT_PLANNED_HOURS = 12

DUPLICATE_WINDOW_MS = 60_000  # Imported rows closer than this may be the same ride
SYNC_QUEUE_LIMIT = 50  # Pending store writes kept before the oldest is dropped

STATE_ENV_VAR = "TAXI_LEDGER_STATE"
DEFAULT_STATE_FILE = "ledger_state.json"


def default_state_path() -> Path:
    """JSON state file used by the CLI unless ``--state`` is given."""
    return Path(os.environ.get(STATE_ENV_VAR, DEFAULT_STATE_FILE))


def safe_int(value: Any, default: int) -> int:
    """Coerce a stored value to int, falling back to ``default``."""
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _bounded(value: Any, low: int, high: int, default: int, name: str) -> int:
    number = safe_int(value, default)
    if not low <= number <= high:
        logger.warning("Ignoring out-of-range %s=%r", name, value)
        return default
    return number


def load_stats(raw: Mapping[str, Any] | None) -> MonthlyStats:
    """Overlay a stored ``stats`` document onto the defaults.

    Unknown payment methods and ride types are dropped; out-of-range closing
    days and start hours fall back to the defaults.
    """
    raw = raw or {}
    methods = tuple(
        m for m in raw.get("enabledPaymentMethods", DEFAULT_PAYMENT_ORDER)
        if m in PAYMENT_METHODS
    )
    ride_types = tuple(
        t for t in raw.get("enabledRideTypes", ALL_RIDE_TYPES) if t in ALL_RIDE_TYPES
    )
    visibility = raw.get("visibilityMode", "PUBLIC")
    if visibility not in ("PUBLIC", "PRIVATE", "CUSTOM"):
        visibility = "PUBLIC"

    return MonthlyStats(
        shimebi_day=_bounded(
            raw.get("shimebiDay"), 0, 31, DEFAULT_SHIMEBI_DAY, "shimebiDay"
        ),
        business_start_hour=_bounded(
            raw.get("businessStartHour"),
            0,
            23,
            DEFAULT_BUSINESS_START_HOUR,
            "businessStartHour",
        ),
        monthly_goal=safe_int(raw.get("monthlyGoal"), DEFAULT_MONTHLY_GOAL),
        default_daily_goal=safe_int(raw.get("defaultDailyGoal"), DEFAULT_DAILY_GOAL),
        enabled_payment_methods=methods or DEFAULT_PAYMENT_ORDER,
        enabled_ride_types=ride_types or ALL_RIDE_TYPES,
        custom_payment_labels=dict(raw.get("customPaymentLabels") or {}),
        user_name=str(raw.get("userName") or ""),
        visibility_mode=visibility,
        allowed_viewers=tuple(raw.get("allowedViewers") or ()),
        following_users=tuple(raw.get("followingUsers") or ()),
        duty_days=tuple(raw.get("dutyDays") or ()),
    )


def stats_to_document(stats: MonthlyStats) -> dict[str, Any]:
    return {
        "shimebiDay": stats.shimebi_day,
        "businessStartHour": stats.business_start_hour,
        "monthlyGoal": stats.monthly_goal,
        "defaultDailyGoal": stats.default_daily_goal,
        "enabledPaymentMethods": list(stats.enabled_payment_methods),
        "enabledRideTypes": list(stats.enabled_ride_types),
        "customPaymentLabels": dict(stats.custom_payment_labels),
        "userName": stats.user_name,
        "visibilityMode": stats.visibility_mode,
        "allowedViewers": list(stats.allowed_viewers),
        "followingUsers": list(stats.following_users),
        "dutyDays": list(stats.duty_days),
    }


__all__ = [
    "DEFAULT_BUSINESS_START_HOUR",
    "DEFAULT_DAILY_GOAL",
    "DEFAULT_MONTHLY_GOAL",
    "DEFAULT_PLANNED_HOURS",
    "DEFAULT_SHIMEBI_DAY",
    "DUPLICATE_WINDOW_MS",
    "SYNC_QUEUE_LIMIT",
    "default_state_path",
    "load_stats",
    "safe_int",
    "stats_to_document",
]
