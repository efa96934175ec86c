"""Domain models for venue resources, booking requests, and price quotes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from booking_engine.domain.errors import InvalidWindowError


MINUTES_PER_DAY = 24 * 60
ALL_ACTIVITIES = "ALL"
COMBO_CODE = "COMBO"


class ResourceType(str, Enum):
    AXE_BAY = "AXE_BAY"
    DUCKPIN_LANE = "DUCKPIN_LANE"
    PARTY_AREA = "PARTY_AREA"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class ComboOrder(str, Enum):
    A_FIRST = "A_FIRST"
    B_FIRST = "B_FIRST"


class PricingMode(str, Enum):
    SINGLE = "SINGLE"
    COMBO = "COMBO"


class BlockReason(str, Enum):
    OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
    BLACKOUT = "BLACKOUT"
    CAPACITY = "CAPACITY"


@dataclass(frozen=True)
class OperatingWindow:
    """Half-open minute interval [open_min, close_min) in venue-local time."""

    open_min: int
    close_min: int

    def __post_init__(self) -> None:
        if not 0 <= self.open_min < self.close_min <= MINUTES_PER_DAY:
            raise InvalidWindowError(
                f"operating window [{self.open_min}, {self.close_min}) is invalid"
            )

    @property
    def length_minutes(self) -> int:
        return self.close_min - self.open_min


@dataclass(frozen=True)
class SingleActivity:
    resource_type: ResourceType
    duration_minutes: int

    @property
    def code(self) -> str:
        return self.resource_type.value

    @property
    def total_minutes(self) -> int:
        return self.duration_minutes


@dataclass(frozen=True)
class ComboActivity:
    """Two resource types used back to back; `order` picks which leg runs first."""

    type_a: ResourceType
    minutes_a: int
    type_b: ResourceType
    minutes_b: int
    order: ComboOrder = ComboOrder.A_FIRST

    @property
    def code(self) -> str:
        return COMBO_CODE

    @property
    def total_minutes(self) -> int:
        return self.minutes_a + self.minutes_b

    def ordered_legs(self) -> tuple[tuple[ResourceType, int], tuple[ResourceType, int]]:
        leg_a = (self.type_a, self.minutes_a)
        leg_b = (self.type_b, self.minutes_b)
        if self.order is ComboOrder.A_FIRST:
            return leg_a, leg_b
        return leg_b, leg_a


Activity = Union[SingleActivity, ComboActivity]


@dataclass(frozen=True)
class PartyAreaRequest:
    count: int
    duration_minutes: int


@dataclass(frozen=True)
class BookingRequest:
    date_key: str
    start_min: int
    activity: Activity
    party_size: int
    add_on: Optional[PartyAreaRequest] = None


@dataclass(frozen=True)
class ReservationInterval:
    resource_type: ResourceType
    units: int
    start_min: int
    end_min: int


@dataclass(frozen=True)
class SubInterval:
    resource_type: ResourceType
    start_min: int
    end_min: int
    units: int


@dataclass(frozen=True)
class WindowOverride:
    """Pre-approved exception for one date; `window=None` keeps the weekday hours."""

    date_key: str
    window: Optional[OperatingWindow] = None
    suppress_blackouts: bool = False


@dataclass(frozen=True)
class BlackoutRule:
    date_key: str
    start_min: Optional[int] = None
    end_min: Optional[int] = None
    activity: str = ALL_ACTIVITIES
    reason: Optional[str] = None

    def applies_to(self, activity_code: str) -> bool:
        return self.activity in (ALL_ACTIVITIES, activity_code)


@dataclass(frozen=True)
class BufferRule:
    activity: str = ALL_ACTIVITIES
    before_min: int = 0
    after_min: int = 0
    active: bool = True

    def applies_to(self, activity_code: str) -> bool:
        return self.active and self.activity in (ALL_ACTIVITIES, activity_code)


@dataclass(frozen=True)
class PriceLineItem:
    label: str
    cents: int


@dataclass(frozen=True)
class PriceQuote:
    total_cents: int
    breakdown: tuple[PriceLineItem, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "total_cents": self.total_cents,
            "breakdown": [
                {"label": item.label, "cents": item.cents}
                for item in self.breakdown
            ],
        }


@dataclass(frozen=True)
class UnitReservation:
    """One reserved physical unit, as stored."""

    reservation_id: int
    resource_id: int
    start_min: int
    end_min: int
