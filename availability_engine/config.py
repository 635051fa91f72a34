"""
Centralized configuration with environment variable overrides.

Business hours, slot bounds, booking policy, and export identifiers are
configurable here. Nothing is hardcoded in the scheduling logic.
"""

import logging
import os
import re
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")

AUTO_DECLINE_POLICIES = ("off", "full_overlap", "any_overlap")


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class BusinessHoursConfig:
    """Operating window and slot duration bounds."""

    open_time: str = os.getenv("BUSINESS_OPEN_TIME", "06:00")
    close_time: str = os.getenv("BUSINESS_CLOSE_TIME", "23:00")
    min_slot_minutes: int = _safe_int("MIN_SLOT_MINUTES", "30")
    max_slot_minutes: int = _safe_int("MAX_SLOT_MINUTES", "720")
    long_session_warning_minutes: int = _safe_int("LONG_SESSION_WARNING_MINUTES", "360")


@dataclass(frozen=True)
class BookingPolicyConfig:
    """Defaults applied when an owner has no stored privacy settings."""

    auto_decline_policy: str = os.getenv("AUTO_DECLINE_POLICY", "any_overlap")
    default_lead_time_hours: int = _safe_int("DEFAULT_LEAD_TIME_HOURS", "24")
    default_advance_booking_days: int = _safe_int("DEFAULT_ADVANCE_BOOKING_DAYS", "90")


@dataclass(frozen=True)
class PatternConfig:
    """Limits for recurring pattern projection."""

    max_pattern_range_days: int = _safe_int("MAX_PATTERN_RANGE_DAYS", "183")


@dataclass(frozen=True)
class ExportConfig:
    """Identifiers written into exported calendars."""

    prodid: str = os.getenv("EXPORT_PRODID", "-//Availability Engine//Availability Calendar//EN")
    uid_domain: str = os.getenv("EXPORT_UID_DOMAIN", "availability.local")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessHoursConfig = field(default_factory=BusinessHoursConfig)
    booking: BookingPolicyConfig = field(default_factory=BookingPolicyConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "availability-engine")


def _minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    business = config.business
    for name, value in [
        ("BUSINESS_OPEN_TIME", business.open_time),
        ("BUSINESS_CLOSE_TIME", business.close_time),
    ]:
        if not _TIME_RE.match(value):
            raise ValueError(f"{name} must be HH:MM, got {value!r}")
    if _minutes(business.open_time) >= _minutes(business.close_time):
        raise ValueError(
            f"BUSINESS_OPEN_TIME must be before BUSINESS_CLOSE_TIME, "
            f"got {business.open_time}-{business.close_time}"
        )
    if business.min_slot_minutes < 1:
        raise ValueError(f"MIN_SLOT_MINUTES must be >= 1, got {business.min_slot_minutes}")
    if business.max_slot_minutes < business.min_slot_minutes:
        raise ValueError(
            "MAX_SLOT_MINUTES must be >= MIN_SLOT_MINUTES, "
            f"got {business.max_slot_minutes} < {business.min_slot_minutes}"
        )
    if business.long_session_warning_minutes < 1:
        raise ValueError(
            "LONG_SESSION_WARNING_MINUTES must be >= 1, "
            f"got {business.long_session_warning_minutes}"
        )

    if config.booking.auto_decline_policy not in AUTO_DECLINE_POLICIES:
        raise ValueError(
            f"AUTO_DECLINE_POLICY must be one of {AUTO_DECLINE_POLICIES}, "
            f"got {config.booking.auto_decline_policy!r}"
        )
    if config.booking.default_lead_time_hours < 0:
        raise ValueError(
            f"DEFAULT_LEAD_TIME_HOURS must be >= 0, got {config.booking.default_lead_time_hours}"
        )
    if config.booking.default_advance_booking_days < 1:
        raise ValueError(
            "DEFAULT_ADVANCE_BOOKING_DAYS must be >= 1, "
            f"got {config.booking.default_advance_booking_days}"
        )

    if config.patterns.max_pattern_range_days < 1:
        raise ValueError(
            f"MAX_PATTERN_RANGE_DAYS must be >= 1, got {config.patterns.max_pattern_range_days}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
