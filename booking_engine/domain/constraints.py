"""Domain-level configuration rules for the catalog and rate tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Mapping, Optional

from booking_engine.domain.errors import InvalidDateKeyError, InvalidDurationError
from booking_engine.domain.models import MINUTES_PER_DAY, ResourceType


DURATION_GRANULARITY_MINUTES = 15


@dataclass(frozen=True)
class RateTable:
    """Per-unit prices in cents for standard durations plus an hourly fallback."""

    hourly_rate_cents: int
    tiers: Mapping[int, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CatalogConfig:
    capacities: Mapping[ResourceType, int]
    guests_per_unit: Mapping[ResourceType, int]
    weekday_hours: Mapping[int, Optional[tuple[int, int]]]
    max_party_sizes: Mapping[str, int]


def validate_rate_table(table: RateTable) -> None:
    if table.hourly_rate_cents <= 0:
        raise ValueError("hourly_rate_cents must be > 0")
    previous_price = 0
    for minutes in sorted(table.tiers):
        price = table.tiers[minutes]
        if minutes <= 0:
            raise ValueError("tier durations must be > 0")
        if price < previous_price:
            raise ValueError("tier prices must not decrease as duration grows")
        previous_price = price


def validate_catalog_config(config: CatalogConfig) -> None:
    for resource_type, capacity in config.capacities.items():
        if capacity < 0:
            raise ValueError(f"capacity for {resource_type.value} must be >= 0")
    for resource_type, guests in config.guests_per_unit.items():
        if guests <= 0:
            raise ValueError(f"guests_per_unit for {resource_type.value} must be > 0")
    for weekday, hours in config.weekday_hours.items():
        if not 0 <= weekday <= 6:
            raise ValueError("weekday_hours keys must be 0 (Monday) to 6 (Sunday)")
        if hours is None:
            continue
        open_min, close_min = hours
        if not 0 <= open_min < close_min <= MINUTES_PER_DAY:
            raise ValueError(f"weekday_hours for weekday {weekday} are invalid")
    for activity_code, max_size in config.max_party_sizes.items():
        if max_size <= 0:
            raise ValueError(f"max party size for {activity_code} must be > 0")


def parse_date_key(date_key: str) -> date:
    try:
        return datetime.strptime(date_key, "%Y-%m-%d").date()
    except (TypeError, ValueError) as exc:
        raise InvalidDateKeyError("date_key must follow YYYY-MM-DD format") from exc


def validate_duration(minutes: int, max_minutes: int, label: str = "duration") -> None:
    if minutes <= 0:
        raise InvalidDurationError(f"{label} must be > 0 minutes")
    if minutes % DURATION_GRANULARITY_MINUTES:
        raise InvalidDurationError(
            f"{label} must be a multiple of {DURATION_GRANULARITY_MINUTES} minutes"
        )
    if minutes > max_minutes:
        raise InvalidDurationError(f"{label} must be <= {max_minutes} minutes")
