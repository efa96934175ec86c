"""Authoritative booking commit with transactional capacity re-check."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from booking_engine.domain.errors import BookingValidationError, InvalidStartError
from booking_engine.domain.models import BlockReason, BookingRequest, PriceQuote, WindowOverride
from booking_engine.repository.data_repository import BookingRecord, DataRepository
from booking_engine.services.availability_service import (
    AvailabilityService,
    find_capacity_conflict,
    group_by_type,
)
from booking_engine.services.pricing_service import PricingEngine, PromotionLookup
from booking_engine.services.unit_assignment import UnitMove, plan_unit_assignment
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class BookingError(Exception):
    """Base error for commit-time outcomes that are not request validation."""


class SlotUnavailableError(BookingError):
    """Raised when the start is closed, outside the window, or blacked out."""

    def __init__(self, message: str, reason: BlockReason) -> None:
        super().__init__(message)
        self.reason = reason


class CapacityConflictError(BookingError):
    """Raised when the locked re-check finds the slot already taken."""


class BookingNotFoundError(BookingError):
    """Raised when a booking id does not exist."""


@dataclass(frozen=True)
class BookingConfirmation:
    booking: BookingRecord
    quote: PriceQuote
    moves: tuple[UnitMove, ...] = ()


class BookingService:
    """Commit path: validate, price, then re-check capacity under the write lock."""

    def __init__(
        self,
        availability_service: AvailabilityService,
        pricing_engine: PricingEngine,
        repository: Optional[DataRepository] = None,
        promotions: Optional[PromotionLookup] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._availability = availability_service
        self._pricing = pricing_engine
        self._promotions = promotions

    def _apply_promotion(self, promo_code: Optional[str], amount_cents: int) -> int:
        if not promo_code:
            return amount_cents
        if self._promotions is None:
            raise BookingValidationError(
                "promotion codes are not accepted",
                reason_code="PROMOTIONS_UNAVAILABLE",
            )
        return max(0, int(self._promotions.adjust(promo_code, amount_cents)))

    def commit_booking(
        self,
        request: BookingRequest,
        window_override: Optional[WindowOverride] = None,
        promo_code: Optional[str] = None,
    ) -> BookingConfirmation:
        plan = self._availability.prepare_scan(
            request.date_key,
            request.activity,
            request.party_size,
            add_on=request.add_on,
            window_override=window_override,
        )
        quote = self._pricing.compute_price(request.activity, request.party_size, request.add_on)
        total_cents = self._apply_promotion(promo_code, quote.total_cents)

        if plan is None:
            raise SlotUnavailableError(
                f"venue is closed on {request.date_key}",
                BlockReason.OUTSIDE_WINDOW,
            )
        if not plan.on_grid(request.start_min):
            raise InvalidStartError(
                f"start {request.start_min} is not on the {plan.step_minutes}-minute grid "
                f"from {plan.window.open_min}"
            )
        reason = plan.rule_block(request.start_min)
        if reason is not None:
            raise SlotUnavailableError(
                f"start {request.start_min} on {request.date_key} is unavailable ({reason.value})",
                reason,
            )

        pieces = plan.sub_intervals(request.start_min)
        moves: list[UnitMove] = []
        with self._repository.booking_transaction() as transaction:
            snapshot = transaction.list_reservation_intervals(request.date_key)
            conflict = find_capacity_conflict(
                pieces,
                group_by_type(snapshot),
                plan.capacities,
                window=plan.window,
                buffer=plan.buffer,
            )
            if conflict is not None:
                logger.warning(
                    "Booking rejected on re-check | date=%s | start=%s | resource_type=%s",
                    request.date_key,
                    request.start_min,
                    conflict.resource_type.value,
                )
                raise CapacityConflictError(
                    f"{conflict.resource_type.label} is fully booked between "
                    f"{conflict.start_min} and {conflict.end_min}"
                )

            booking_id = transaction.insert_booking(
                date_key=request.date_key,
                start_min=request.start_min,
                end_min=request.start_min + plan.span_minutes(),
                activity_code=request.activity.code,
                party_size=request.party_size,
                total_cents=total_cents,
                promo_code=promo_code or None,
            )
            for piece in pieces:
                assignment = plan_unit_assignment(
                    transaction.list_active_unit_ids(piece.resource_type),
                    transaction.list_unit_reservations(request.date_key, piece.resource_type),
                    piece.start_min,
                    piece.end_min,
                    piece.units,
                    settings=self._settings,
                )
                for move in assignment.moves:
                    transaction.move_reservation(move.reservation_id, move.to_resource_id)
                moves.extend(assignment.moves)
                transaction.insert_reservations(
                    booking_id=booking_id,
                    date_key=request.date_key,
                    resource_ids=assignment.resource_ids,
                    start_min=piece.start_min,
                    end_min=piece.end_min,
                )

        booking = self.get_booking(booking_id)
        logger.info(
            (
                "Booking committed | booking_id=%s | date=%s | start=%s | activity=%s | "
                "party_size=%s | total_cents=%s | moves=%s"
            ),
            booking_id,
            request.date_key,
            request.start_min,
            request.activity.code,
            request.party_size,
            total_cents,
            len(moves),
        )
        return BookingConfirmation(booking=booking, quote=quote, moves=tuple(moves))

    def get_booking(self, booking_id: int) -> BookingRecord:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"booking {booking_id} not found")
        return booking

    def cancel_booking(self, booking_id: int) -> BookingRecord:
        if not self._repository.cancel_booking(booking_id):
            raise BookingNotFoundError(f"booking {booking_id} not found")
        logger.info("Booking cancelled | booking_id=%s", booking_id)
        return self.get_booking(booking_id)
