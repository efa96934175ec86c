"""HTTP controller layer for committing, reading and cancelling bookings."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from booking_engine.controllers.dependencies import (
    get_booking_service,
    get_repository,
    require_admin,
)
from booking_engine.controllers.schemas import (
    ActivityPayload,
    PartyAreaPayload,
    PriceLineItemResponse,
    add_on_to_domain,
    validation_http_error,
)
from booking_engine.domain.errors import BookingValidationError
from booking_engine.domain.models import BookingRequest
from booking_engine.repository.data_repository import BookingRecord, DataRepository
from booking_engine.services.booking_service import (
    BookingNotFoundError,
    BookingService,
    CapacityConflictError,
    SlotUnavailableError,
)
from booking_engine.services.unit_assignment import UnitAssignmentError
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class BookingCreateRequest(BaseModel):
    date: str
    start_min: int = Field(ge=0)
    activity: ActivityPayload
    party_size: int
    add_on: Optional[PartyAreaPayload] = None
    promo_code: Optional[str] = None


class ReservationResponse(BaseModel):
    resource_id: int
    resource_name: str
    resource_type: str
    start_min: int
    end_min: int


class BookingResponse(BaseModel):
    booking_id: int = Field(gt=0)
    date: str
    start_min: int
    end_min: int
    activity_code: str
    party_size: int
    total_cents: int = Field(ge=0)
    status: str
    reservations: list[ReservationResponse]
    breakdown: list[PriceLineItemResponse] = Field(default_factory=list)


def _to_response(
    booking: BookingRecord,
    breakdown: Optional[list[PriceLineItemResponse]] = None,
) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.booking_id,
        date=booking.date_key,
        start_min=booking.start_min,
        end_min=booking.end_min,
        activity_code=booking.activity_code,
        party_size=booking.party_size,
        total_cents=booking.total_cents,
        status=booking.status,
        reservations=[
            ReservationResponse(
                resource_id=item.resource_id,
                resource_name=item.resource_name,
                resource_type=item.resource_type.value,
                start_min=item.start_min,
                end_min=item.end_min,
            )
            for item in booking.reservations
        ],
        breakdown=breakdown or [],
    )


def _not_found(exc: BookingNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
    repository: DataRepository = Depends(get_repository),
) -> BookingResponse:
    """Commit a booking after re-checking capacity under the write lock."""
    try:
        request = BookingRequest(
            date_key=payload.date,
            start_min=payload.start_min,
            activity=payload.activity.to_domain(),
            party_size=payload.party_size,
            add_on=add_on_to_domain(payload.add_on),
        )
        confirmation = service.commit_booking(
            request,
            window_override=repository.get_window_override(payload.date),
            promo_code=payload.promo_code,
        )
        return _to_response(
            confirmation.booking,
            [
                PriceLineItemResponse(label=item.label, cents=item.cents)
                for item in confirmation.quote.breakdown
            ],
        )
    except BookingValidationError as exc:
        raise validation_http_error(exc) from exc
    except SlotUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.reason.value, "message": str(exc)},
        ) from exc
    except CapacityConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "CAPACITY_CONFLICT", "message": str(exc)},
        ) from exc
    except UnitAssignmentError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "UNIT_ASSIGNMENT_FAILED", "message": str(exc)},
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking commit failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to commit booking",
        ) from exc


@router.get(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    dependencies=[Depends(require_admin)],
)
async def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return _to_response(service.get_booking(booking_id))
    except BookingNotFoundError as exc:
        raise _not_found(exc) from exc


@router.delete(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    dependencies=[Depends(require_admin)],
)
async def cancel_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a booking; its units are released for later scans."""
    try:
        return _to_response(service.cancel_booking(booking_id))
    except BookingNotFoundError as exc:
        raise _not_found(exc) from exc
