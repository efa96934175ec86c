"""Resource catalog: per-type capacity and per-date operating windows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional, Union

from booking_engine.domain.constraints import (
    CatalogConfig,
    parse_date_key,
    validate_catalog_config,
)
from booking_engine.domain.errors import BookingValidationError, UnknownResourceTypeError
from booking_engine.domain.models import OperatingWindow, ResourceType, WindowOverride
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger

if TYPE_CHECKING:
    from booking_engine.repository.data_repository import DataRepository


logger = get_logger(__name__)


def resolve_resource_type(value: Union[ResourceType, str]) -> ResourceType:
    if isinstance(value, ResourceType):
        return value
    try:
        return ResourceType(value)
    except ValueError as exc:
        raise UnknownResourceTypeError(f"unknown resource type '{value}'") from exc


class ResourceCatalog:
    """Process-wide, read-mostly description of bookable resource types.

    Capacity starts from configuration and is refreshed from the count of
    active units whenever staff activate or deactivate a unit.
    """

    def __init__(self, config: CatalogConfig) -> None:
        validate_catalog_config(config)
        self._config = config
        self._capacities: dict[ResourceType, int] = {
            resource_type: int(config.capacities.get(resource_type, 0))
            for resource_type in ResourceType
        }

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ResourceCatalog":
        resolved = settings or get_settings()
        return cls(
            CatalogConfig(
                capacities=resolved.resource_capacities,
                guests_per_unit=resolved.guests_per_unit,
                weekday_hours=resolved.weekday_hours,
                max_party_sizes=resolved.max_party_sizes,
            )
        )

    @classmethod
    def from_repository(
        cls,
        repository: "DataRepository",
        settings: Optional[Settings] = None,
    ) -> "ResourceCatalog":
        catalog = cls.from_settings(settings)
        catalog.apply_unit_counts(repository.count_active_units())
        return catalog

    def apply_unit_counts(self, counts: Mapping[ResourceType, int]) -> None:
        self._capacities = {
            resource_type: int(counts.get(resource_type, 0))
            for resource_type in ResourceType
        }
        logger.info(
            "Catalog capacities refreshed | %s",
            " | ".join(
                f"{resource_type.value}={capacity}"
                for resource_type, capacity in self._capacities.items()
            ),
        )

    def capacity_of(self, resource_type: Union[ResourceType, str]) -> int:
        resolved = resolve_resource_type(resource_type)
        capacity = self._capacities.get(resolved, 0)
        if capacity <= 0:
            raise UnknownResourceTypeError(
                f"resource type '{resolved.value}' has no active units"
            )
        return capacity

    def capacities(self) -> dict[ResourceType, int]:
        """Snapshot of current capacities, including inactive (zero) types."""
        return dict(self._capacities)

    def guests_per_unit(self, resource_type: Union[ResourceType, str]) -> int:
        resolved = resolve_resource_type(resource_type)
        guests = self._config.guests_per_unit.get(resolved)
        if guests is None:
            raise UnknownResourceTypeError(
                f"resource type '{resolved.value}' has no per-unit guest capacity"
            )
        return guests

    def max_party_size(self, activity_code: str) -> Optional[int]:
        return self._config.max_party_sizes.get(activity_code)

    def window_for(
        self,
        date_key: str,
        override: Optional[WindowOverride] = None,
    ) -> Optional[OperatingWindow]:
        """Return the operating window for `date_key`, or None when closed."""
        target_date = parse_date_key(date_key)
        if override is not None:
            if override.date_key != date_key:
                raise BookingValidationError(
                    f"override for {override.date_key} cannot be applied to {date_key}",
                    reason_code="OVERRIDE_DATE_MISMATCH",
                )
            if override.window is not None:
                return override.window

        hours = self._config.weekday_hours.get(target_date.weekday())
        if hours is None:
            return None
        return OperatingWindow(open_min=hours[0], close_min=hours[1])
