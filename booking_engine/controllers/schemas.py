"""Request/response DTOs shared by the HTTP controllers."""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from fastapi import HTTPException, status
from pydantic import BaseModel, Field

from booking_engine.domain.errors import BookingValidationError
from booking_engine.domain.models import (
    ComboActivity,
    ComboOrder,
    PartyAreaRequest,
    PriceQuote,
    SingleActivity,
)
from booking_engine.services.catalog_service import resolve_resource_type


class SingleActivityPayload(BaseModel):
    kind: Literal["single"]
    resource_type: str
    duration_minutes: int

    def to_domain(self) -> SingleActivity:
        return SingleActivity(
            resource_type=resolve_resource_type(self.resource_type),
            duration_minutes=self.duration_minutes,
        )


class ComboActivityPayload(BaseModel):
    kind: Literal["combo"]
    type_a: str
    minutes_a: int
    type_b: str
    minutes_b: int
    order: ComboOrder = ComboOrder.A_FIRST

    def to_domain(self) -> ComboActivity:
        return ComboActivity(
            type_a=resolve_resource_type(self.type_a),
            minutes_a=self.minutes_a,
            type_b=resolve_resource_type(self.type_b),
            minutes_b=self.minutes_b,
            order=self.order,
        )


ActivityPayload = Annotated[
    Union[SingleActivityPayload, ComboActivityPayload],
    Field(discriminator="kind"),
]


class PartyAreaPayload(BaseModel):
    count: int = 1
    duration_minutes: int

    def to_domain(self) -> PartyAreaRequest:
        return PartyAreaRequest(count=self.count, duration_minutes=self.duration_minutes)


class PriceLineItemResponse(BaseModel):
    label: str
    cents: int = Field(ge=0)


class PriceResponse(BaseModel):
    total_cents: int = Field(ge=0)
    breakdown: list[PriceLineItemResponse]

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "PriceResponse":
        return cls(**quote.to_dict())


def add_on_to_domain(payload: Optional[PartyAreaPayload]) -> Optional[PartyAreaRequest]:
    return payload.to_domain() if payload is not None else None


def validation_http_error(exc: BookingValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": exc.reason_code, "message": str(exc)},
    )
