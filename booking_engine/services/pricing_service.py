"""Pricing engine: tiered per-unit rates for single and combo visits."""

from __future__ import annotations

from typing import Optional, Protocol

from booking_engine.domain.constraints import RateTable, validate_rate_table
from booking_engine.domain.errors import UnsupportedActivityError
from booking_engine.domain.models import (
    Activity,
    ComboActivity,
    PartyAreaRequest,
    PriceLineItem,
    PriceQuote,
    PricingMode,
    ResourceType,
    SingleActivity,
)
from booking_engine.services.needs_service import ResourceNeedCalculator
from booking_engine.utils.config import Settings, get_settings


class PromotionLookup(Protocol):
    """External promotion source, applied to a finished quote total."""

    def adjust(self, code: str, amount_cents: int) -> int:
        ...


def prorated_rate(table: RateTable, minutes: int) -> int:
    """Per-unit price for `minutes`.

    An exact tier wins. Any other duration is charged at the hourly rate
    (rounded half up to the cent) and then held between the prices of the
    surrounding tiers, so the price never drops as the duration grows.
    """
    if minutes in table.tiers:
        return table.tiers[minutes]

    price = (table.hourly_rate_cents * minutes + 30) // 60
    shorter = [tier for tier in table.tiers if tier < minutes]
    longer = [tier for tier in table.tiers if tier > minutes]
    if shorter:
        price = max(price, table.tiers[max(shorter)])
    if longer:
        price = min(price, table.tiers[min(longer)])
    return price


class PricingEngine:
    """Pure price computation; promotions are applied by the caller."""

    def __init__(
        self,
        need_calculator: ResourceNeedCalculator,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._needs = need_calculator
        for table in self._settings.rate_tables.values():
            validate_rate_table(table)

    def rate_for(self, mode: PricingMode, resource_type: ResourceType, minutes: int) -> int:
        table = self._settings.rate_tables.get((mode, resource_type))
        if table is None:
            raise UnsupportedActivityError(
                f"no {mode.value.lower()} rate table for {resource_type.value}"
            )
        return prorated_rate(table, minutes)

    def party_area_price(self, units: int, minutes: int) -> int:
        return units * self._settings.party_area_rate_cents_per_hour * minutes // 60

    def compute_price(
        self,
        activity: Activity,
        party_size: int,
        add_on: Optional[PartyAreaRequest] = None,
    ) -> PriceQuote:
        needs = self._needs.compute_needs(activity, party_size)
        if add_on is not None:
            self._needs.validate_add_on(activity, add_on)

        breakdown: list[PriceLineItem] = []
        if isinstance(activity, SingleActivity):
            units = needs[activity.resource_type]
            rate = self.rate_for(PricingMode.SINGLE, activity.resource_type, activity.duration_minutes)
            breakdown.append(
                PriceLineItem(
                    label=f"{units} × {activity.resource_type.label} ({activity.duration_minutes} min)",
                    cents=units * rate,
                )
            )
        elif isinstance(activity, ComboActivity):
            for resource_type, minutes in activity.ordered_legs():
                units = needs[resource_type]
                rate = self.rate_for(PricingMode.COMBO, resource_type, minutes)
                breakdown.append(
                    PriceLineItem(
                        label=f"Combo: {units} × {resource_type.label} ({minutes} min)",
                        cents=units * rate,
                    )
                )

        if add_on is not None:
            units = self._needs.party_area_units(add_on)
            breakdown.append(
                PriceLineItem(
                    label=f"{units} × {ResourceType.PARTY_AREA.label} ({add_on.duration_minutes} min)",
                    cents=self.party_area_price(units, add_on.duration_minutes),
                )
            )

        return PriceQuote(
            total_cents=sum(item.cents for item in breakdown),
            breakdown=tuple(breakdown),
        )
