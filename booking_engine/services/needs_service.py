"""Resource need calculation: (activity, party size) -> units per resource type."""

from __future__ import annotations

import math
from typing import Optional

from booking_engine.domain.constraints import validate_duration
from booking_engine.domain.errors import (
    InvalidAddOnError,
    InvalidPartySizeError,
    UnsupportedActivityError,
)
from booking_engine.domain.models import (
    Activity,
    ComboActivity,
    PartyAreaRequest,
    ResourceType,
    SingleActivity,
)
from booking_engine.services.catalog_service import ResourceCatalog
from booking_engine.utils.config import Settings, get_settings


def units_for_party(party_size: int, guests_per_unit: int) -> int:
    """Whole units needed to seat `party_size`; resources never split."""
    return max(1, math.ceil(party_size / guests_per_unit))


class ResourceNeedCalculator:
    """Pure mapping from validated requests to unit counts."""

    def __init__(
        self,
        catalog: ResourceCatalog,
        settings: Optional[Settings] = None,
    ) -> None:
        self._catalog = catalog
        self._settings = settings or get_settings()

    @property
    def catalog(self) -> ResourceCatalog:
        return self._catalog

    def validate_activity(self, activity: Activity) -> None:
        max_minutes = self._settings.max_activity_minutes
        if isinstance(activity, SingleActivity):
            self._validate_bookable_type(activity.resource_type)
            validate_duration(activity.duration_minutes, max_minutes)
            return
        if isinstance(activity, ComboActivity):
            if activity.type_a == activity.type_b:
                raise UnsupportedActivityError("combo legs must use two different resource types")
            self._validate_bookable_type(activity.type_a)
            self._validate_bookable_type(activity.type_b)
            validate_duration(activity.minutes_a, max_minutes, label=f"{activity.type_a.label} duration")
            validate_duration(activity.minutes_b, max_minutes, label=f"{activity.type_b.label} duration")
            return
        raise UnsupportedActivityError(f"unsupported activity variant {type(activity).__name__}")

    def _validate_bookable_type(self, resource_type: ResourceType) -> None:
        if resource_type is ResourceType.PARTY_AREA:
            raise UnsupportedActivityError("party areas are only bookable as an add-on")
        # Raises UnknownResourceTypeError for unconfigured types.
        self._catalog.guests_per_unit(resource_type)

    def validate_party_size(self, activity: Activity, party_size: int) -> None:
        max_size = self._catalog.max_party_size(activity.code)
        if max_size is None:
            raise UnsupportedActivityError(f"no party size limit configured for {activity.code}")
        if party_size <= 0:
            raise InvalidPartySizeError("party_size must be > 0")
        if party_size > max_size:
            raise InvalidPartySizeError(
                f"party_size {party_size} exceeds the maximum of {max_size} for {activity.code}"
            )

    def units_needed(self, resource_type: ResourceType, party_size: int) -> int:
        return units_for_party(party_size, self._catalog.guests_per_unit(resource_type))

    def compute_needs(self, activity: Activity, party_size: int) -> dict[ResourceType, int]:
        self.validate_activity(activity)
        self.validate_party_size(activity, party_size)
        if isinstance(activity, SingleActivity):
            return {activity.resource_type: self.units_needed(activity.resource_type, party_size)}
        # Each combo leg is sized on its own; the legs never overlap in time.
        return {
            resource_type: self.units_needed(resource_type, party_size)
            for resource_type, _ in activity.ordered_legs()
        }

    def validate_add_on(self, activity: Activity, add_on: PartyAreaRequest) -> None:
        """Party-area time is booked in whole hours and never outlasts the visit."""
        minutes = add_on.duration_minutes
        min_minutes = self._settings.party_area_min_minutes
        max_minutes = self._settings.party_area_max_minutes
        if minutes < min_minutes or minutes % 60:
            raise InvalidAddOnError(
                f"party area duration must be a whole number of hours, at least {min_minutes} minutes"
            )
        if minutes > max_minutes:
            raise InvalidAddOnError(f"party area duration must be <= {max_minutes} minutes")
        if minutes > activity.total_minutes:
            raise InvalidAddOnError(
                f"party area duration {minutes} exceeds the visit length of "
                f"{activity.total_minutes} minutes"
            )

    def party_area_units(self, add_on: PartyAreaRequest) -> int:
        capacity = self._catalog.capacity_of(ResourceType.PARTY_AREA)
        return min(max(add_on.count, 1), capacity)
