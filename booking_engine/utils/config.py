"""Application settings with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from booking_engine.domain.constraints import RateTable
from booking_engine.domain.models import PricingMode, ResourceType


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _default_weekday_hours() -> dict[int, Optional[tuple[int, int]]]:
    # Monday=0. Closed Monday to Wednesday.
    return {
        0: None,
        1: None,
        2: None,
        3: (16 * 60, 22 * 60),
        4: (16 * 60, 23 * 60),
        5: (12 * 60, 23 * 60),
        6: (12 * 60, 21 * 60),
    }


def _default_capacities() -> dict[ResourceType, int]:
    return {
        ResourceType.AXE_BAY: 4,
        ResourceType.DUCKPIN_LANE: 6,
        ResourceType.PARTY_AREA: 2,
    }


def _default_guests_per_unit() -> dict[ResourceType, int]:
    return {
        ResourceType.AXE_BAY: 4,
        ResourceType.DUCKPIN_LANE: 6,
    }


def _default_max_party_sizes() -> dict[str, int]:
    return {
        ResourceType.AXE_BAY.value: 16,
        ResourceType.DUCKPIN_LANE.value: 24,
        "COMBO": 16,
    }


def _default_rate_tables() -> dict[tuple[PricingMode, ResourceType], RateTable]:
    return {
        (PricingMode.SINGLE, ResourceType.AXE_BAY): RateTable(
            hourly_rate_cents=8000,
            tiers={30: 5000, 60: 8000, 120: 15000},
        ),
        (PricingMode.SINGLE, ResourceType.DUCKPIN_LANE): RateTable(
            hourly_rate_cents=4000,
            tiers={30: 2500, 60: 4000, 120: 7500},
        ),
        (PricingMode.COMBO, ResourceType.AXE_BAY): RateTable(
            hourly_rate_cents=6000,
            tiers={30: 4000, 60: 6000, 120: 11000},
        ),
        (PricingMode.COMBO, ResourceType.DUCKPIN_LANE): RateTable(
            hourly_rate_cents=4000,
            tiers={30: 3000, 60: 4000, 120: 7500},
        ),
    }


@dataclass(frozen=True)
class Settings:
    app_name: str = "Venue Booking Engine"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    database_path: Path = PROJECT_ROOT / "data" / "venue_booking.db"
    admin_token: str = ""
    admin_session_ttl_seconds: int = 8 * 60 * 60

    weekday_hours: Mapping[int, Optional[tuple[int, int]]] = field(
        default_factory=_default_weekday_hours
    )
    resource_capacities: Mapping[ResourceType, int] = field(default_factory=_default_capacities)
    guests_per_unit: Mapping[ResourceType, int] = field(default_factory=_default_guests_per_unit)
    max_party_sizes: Mapping[str, int] = field(default_factory=_default_max_party_sizes)
    quarter_hour_start_activities: tuple[str, ...] = ()
    default_slot_step_minutes: int = 30
    quarter_hour_slot_step_minutes: int = 15
    max_activity_minutes: int = 240

    rate_tables: Mapping[tuple[PricingMode, ResourceType], RateTable] = field(
        default_factory=_default_rate_tables
    )
    party_area_rate_cents_per_hour: int = 5000
    party_area_min_minutes: int = 60
    party_area_max_minutes: int = 480

    unit_assignment_solver_max_time_seconds: float = 5.0
    unit_assignment_cp_sat_workers: int = 4
    unit_assignment_solver_random_seed: int = 7


@lru_cache
def get_settings() -> Settings:
    defaults = Settings()
    return Settings(
        app_name=os.getenv("APP_NAME", defaults.app_name),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        database_path=Path(os.getenv("DATABASE_PATH", str(defaults.database_path))),
        admin_token=os.getenv("ADMIN_TOKEN", defaults.admin_token),
    )
