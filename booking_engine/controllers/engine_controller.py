"""HTTP controller layer for needs, pricing and availability queries."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from booking_engine.controllers.dependencies import (
    get_availability_service,
    get_need_calculator,
    get_pricing_engine,
    get_repository,
)
from booking_engine.controllers.schemas import (
    ActivityPayload,
    PartyAreaPayload,
    PriceResponse,
    add_on_to_domain,
    validation_http_error,
)
from booking_engine.domain.errors import BookingValidationError
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.needs_service import ResourceNeedCalculator
from booking_engine.services.pricing_service import PricingEngine
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["engine"])


class NeedsRequest(BaseModel):
    activity: ActivityPayload
    party_size: int


class NeedsResponse(BaseModel):
    needs: dict[str, int]


class PriceRequest(BaseModel):
    activity: ActivityPayload
    party_size: int
    add_on: Optional[PartyAreaPayload] = None


class AvailabilityRequest(BaseModel):
    date: str
    activity: ActivityPayload
    party_size: int
    add_on: Optional[PartyAreaPayload] = None


class BlockedStartResponse(BaseModel):
    start_min: int
    reason: str


class AvailabilityResponse(BaseModel):
    date: str
    closed: bool
    open_min: Optional[int] = None
    close_min: Optional[int] = None
    step_minutes: int
    candidate_starts: list[int]
    open_starts: list[int]
    blocked_starts: list[int]
    blocked: list[BlockedStartResponse]


@router.post("/needs", response_model=NeedsResponse, status_code=status.HTTP_200_OK)
async def compute_needs(
    payload: NeedsRequest,
    calculator: ResourceNeedCalculator = Depends(get_need_calculator),
) -> NeedsResponse:
    try:
        needs = calculator.compute_needs(payload.activity.to_domain(), payload.party_size)
        return NeedsResponse(
            needs={resource_type.value: units for resource_type, units in needs.items()}
        )
    except BookingValidationError as exc:
        raise validation_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected needs computation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute resource needs",
        ) from exc


@router.post("/price", response_model=PriceResponse, status_code=status.HTTP_200_OK)
async def compute_price(
    payload: PriceRequest,
    engine: PricingEngine = Depends(get_pricing_engine),
) -> PriceResponse:
    try:
        quote = engine.compute_price(
            payload.activity.to_domain(),
            payload.party_size,
            add_on_to_domain(payload.add_on),
        )
        return PriceResponse.from_quote(quote)
    except BookingValidationError as exc:
        raise validation_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected pricing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute price",
        ) from exc


@router.post("/availability", response_model=AvailabilityResponse, status_code=status.HTTP_200_OK)
async def compute_availability(
    payload: AvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
    repository: DataRepository = Depends(get_repository),
) -> AvailabilityResponse:
    """Advisory scan; the booking commit re-checks under the write lock."""
    try:
        result = service.evaluate_day(
            payload.date,
            payload.activity.to_domain(),
            payload.party_size,
            add_on=add_on_to_domain(payload.add_on),
            window_override=repository.get_window_override(payload.date),
        )
        return AvailabilityResponse(
            date=result.date_key,
            closed=result.closed,
            open_min=result.window.open_min if result.window is not None else None,
            close_min=result.window.close_min if result.window is not None else None,
            step_minutes=result.step_minutes,
            candidate_starts=list(result.candidate_starts),
            open_starts=result.open_starts,
            blocked_starts=result.blocked_starts,
            blocked=[
                BlockedStartResponse(start_min=start_min, reason=result.blocked[start_min].value)
                for start_min in result.blocked_starts
            ],
        )
    except BookingValidationError as exc:
        raise validation_http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute availability",
        ) from exc
