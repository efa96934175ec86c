"""Availability engine: blocked start times against a reservation snapshot.

The helpers at module level are pure and take the window and snapshot as
explicit arguments. `BookingService` reuses them inside its write
transaction so the advisory scan and the commit check share one rule set.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Protocol, Sequence

from booking_engine.domain.models import (
    Activity,
    BlackoutRule,
    BlockReason,
    BufferRule,
    ComboActivity,
    OperatingWindow,
    PartyAreaRequest,
    ReservationInterval,
    ResourceType,
    SingleActivity,
    SubInterval,
    WindowOverride,
)
from booking_engine.services.catalog_service import ResourceCatalog
from booking_engine.services.needs_service import ResourceNeedCalculator
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class ReservationReader(Protocol):
    def list_reservation_intervals(self, date_key: str) -> list[ReservationInterval]:
        ...


class RulesReader(Protocol):
    def list_blackout_rules(self, date_key: str) -> list[BlackoutRule]:
        ...

    def list_buffer_rules(self) -> list[BufferRule]:
        ...


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open overlap: touching intervals do not overlap."""
    return start_a < end_b and start_b < end_a


def peak_usage(reservations: Iterable[ReservationInterval], start_min: int, end_min: int) -> int:
    """Maximum concurrent units held by `reservations` anywhere in [start_min, end_min)."""
    events: list[tuple[int, int, int]] = []
    for reservation in reservations:
        if not overlaps(reservation.start_min, reservation.end_min, start_min, end_min):
            continue
        # Ends sort before starts at the same minute.
        events.append((max(reservation.start_min, start_min), 1, reservation.units))
        events.append((min(reservation.end_min, end_min), 0, -reservation.units))
    events.sort(key=lambda event: (event[0], event[1]))

    current = 0
    peak = 0
    for _, _, delta in events:
        current += delta
        peak = max(peak, current)
    return peak


def group_by_type(
    reservations: Iterable[ReservationInterval],
) -> dict[ResourceType, list[ReservationInterval]]:
    grouped: dict[ResourceType, list[ReservationInterval]] = defaultdict(list)
    for reservation in reservations:
        grouped[reservation.resource_type].append(reservation)
    return dict(grouped)


def decompose_request(
    activity: Activity,
    needs: Mapping[ResourceType, int],
    start_min: int,
    add_on: Optional[PartyAreaRequest] = None,
    add_on_units: int = 0,
) -> list[SubInterval]:
    """Split a request starting at `start_min` into per-type intervals."""
    pieces: list[SubInterval] = []
    if isinstance(activity, SingleActivity):
        pieces.append(
            SubInterval(
                resource_type=activity.resource_type,
                start_min=start_min,
                end_min=start_min + activity.duration_minutes,
                units=needs[activity.resource_type],
            )
        )
    elif isinstance(activity, ComboActivity):
        cursor = start_min
        for resource_type, minutes in activity.ordered_legs():
            pieces.append(
                SubInterval(
                    resource_type=resource_type,
                    start_min=cursor,
                    end_min=cursor + minutes,
                    units=needs[resource_type],
                )
            )
            cursor += minutes

    if add_on is not None and add_on_units > 0:
        pieces.append(
            SubInterval(
                resource_type=ResourceType.PARTY_AREA,
                start_min=start_min,
                end_min=start_min + add_on.duration_minutes,
                units=add_on_units,
            )
        )
    return pieces


def resolve_buffer(rules: Iterable[BufferRule], activity_code: str) -> tuple[int, int]:
    """Largest (before, after) padding among active rules for the activity."""
    before = 0
    after = 0
    for rule in rules:
        if not rule.applies_to(activity_code):
            continue
        before = max(before, rule.before_min)
        after = max(after, rule.after_min)
    return before, after


def blackout_spans(
    rules: Iterable[BlackoutRule],
    date_key: str,
    activity_code: str,
    window: OperatingWindow,
) -> list[tuple[int, int]]:
    """Blocked spans for one date; open bounds run to the window edge."""
    spans: list[tuple[int, int]] = []
    for rule in rules:
        if rule.date_key != date_key or not rule.applies_to(activity_code):
            continue
        start = window.open_min if rule.start_min is None else rule.start_min
        end = window.close_min if rule.end_min is None else rule.end_min
        if start < end:
            spans.append((start, end))
    return spans


def find_capacity_conflict(
    sub_intervals: Sequence[SubInterval],
    reservations_by_type: Mapping[ResourceType, Sequence[ReservationInterval]],
    capacities: Mapping[ResourceType, int],
    window: Optional[OperatingWindow] = None,
    buffer: tuple[int, int] = (0, 0),
) -> Optional[SubInterval]:
    """Return the first sub-interval that would exceed capacity, else None.

    Activity legs are widened by `buffer` (clamped to `window`); party-area
    time is checked as booked.
    """
    before, after = buffer
    for piece in sub_intervals:
        start, end = piece.start_min, piece.end_min
        if piece.resource_type is not ResourceType.PARTY_AREA and (before or after):
            start -= before
            end += after
            if window is not None:
                start = max(start, window.open_min)
                end = min(end, window.close_min)
        existing = reservations_by_type.get(piece.resource_type, ())
        peak = peak_usage(existing, start, end)
        if peak + piece.units > capacities.get(piece.resource_type, 0):
            return piece
    return None


def candidate_starts(
    window: OperatingWindow,
    step_minutes: int,
    total_minutes: int = 0,
) -> list[int]:
    """Grid starts from open up to the last start that still finishes by close.

    When the window is shorter than the activity there is no such start; the
    whole open..close grid is returned so every slot can be reported blocked.
    """
    last_start = window.close_min - total_minutes
    if last_start < window.open_min:
        return list(range(window.open_min, window.close_min, step_minutes))
    return list(range(window.open_min, last_start + 1, step_minutes))


@dataclass(frozen=True)
class ScanPlan:
    """Everything a start-time check needs apart from the reservation snapshot."""

    date_key: str
    window: OperatingWindow
    activity: Activity
    needs: Mapping[ResourceType, int]
    capacities: Mapping[ResourceType, int]
    step_minutes: int
    add_on: Optional[PartyAreaRequest] = None
    add_on_units: int = 0
    blackouts: tuple[tuple[int, int], ...] = ()
    buffer: tuple[int, int] = (0, 0)

    def sub_intervals(self, start_min: int) -> list[SubInterval]:
        return decompose_request(
            self.activity,
            self.needs,
            start_min,
            add_on=self.add_on,
            add_on_units=self.add_on_units,
        )

    def span_minutes(self) -> int:
        add_on_minutes = self.add_on.duration_minutes if self.add_on is not None else 0
        return max(self.activity.total_minutes, add_on_minutes)

    def starts(self) -> list[int]:
        return candidate_starts(self.window, self.step_minutes, self.activity.total_minutes)

    def on_grid(self, start_min: int) -> bool:
        return (start_min - self.window.open_min) % self.step_minutes == 0

    def rule_block(self, start_min: int) -> Optional[BlockReason]:
        """Window and blackout checks, which need no reservation data."""
        if start_min < self.window.open_min:
            return BlockReason.OUTSIDE_WINDOW
        if start_min + self.activity.total_minutes > self.window.close_min:
            return BlockReason.OUTSIDE_WINDOW
        # Blackouts are checked against the buffered span, clamped to the window.
        before, after = self.buffer
        padded_start = max(self.window.open_min, start_min - before)
        padded_end = min(
            self.window.close_min,
            max(start_min + self.span_minutes(), start_min + self.activity.total_minutes + after),
        )
        for blackout_start, blackout_end in self.blackouts:
            if overlaps(padded_start, padded_end, blackout_start, blackout_end):
                return BlockReason.BLACKOUT
        return None

    def classify(
        self,
        start_min: int,
        reservations_by_type: Mapping[ResourceType, Sequence[ReservationInterval]],
    ) -> Optional[BlockReason]:
        reason = self.rule_block(start_min)
        if reason is not None:
            return reason
        conflict = find_capacity_conflict(
            self.sub_intervals(start_min),
            reservations_by_type,
            self.capacities,
            window=self.window,
            buffer=self.buffer,
        )
        if conflict is not None:
            return BlockReason.CAPACITY
        return None


def scan_blocked_starts(
    plan: ScanPlan,
    reservations: Iterable[ReservationInterval],
    starts: Optional[Sequence[int]] = None,
) -> dict[int, BlockReason]:
    """Blocked candidate starts mapped to the first reason found."""
    by_type = group_by_type(reservations)
    candidates = starts if starts is not None else plan.starts()
    blocked: dict[int, BlockReason] = {}
    for start_min in candidates:
        reason = plan.classify(start_min, by_type)
        if reason is not None:
            blocked[start_min] = reason
    return blocked


@dataclass(frozen=True)
class AvailabilityResult:
    date_key: str
    window: Optional[OperatingWindow]
    step_minutes: int
    candidate_starts: tuple[int, ...] = ()
    blocked: Mapping[int, BlockReason] = field(default_factory=dict)

    @property
    def closed(self) -> bool:
        return self.window is None

    @property
    def blocked_starts(self) -> list[int]:
        return sorted(self.blocked)

    @property
    def open_starts(self) -> list[int]:
        return [start for start in self.candidate_starts if start not in self.blocked]


class AvailabilityService:
    """Advisory scan of one day's candidate starts for a requested activity."""

    def __init__(
        self,
        need_calculator: ResourceNeedCalculator,
        reservation_reader: Optional[ReservationReader] = None,
        rules_reader: Optional[RulesReader] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._needs = need_calculator
        self._reservations = reservation_reader
        self._rules = rules_reader

    @property
    def catalog(self) -> ResourceCatalog:
        return self._needs.catalog

    def step_for(self, activity: Activity) -> int:
        if activity.code in self._settings.quarter_hour_start_activities:
            return self._settings.quarter_hour_slot_step_minutes
        return self._settings.default_slot_step_minutes

    def prepare_scan(
        self,
        date_key: str,
        activity: Activity,
        party_size: int,
        add_on: Optional[PartyAreaRequest] = None,
        window_override: Optional[WindowOverride] = None,
    ) -> Optional[ScanPlan]:
        """Validate a request and resolve its rules; None when the venue is closed.

        Every validation error surfaces here, before any snapshot is read.
        """
        catalog = self._needs.catalog
        window = catalog.window_for(date_key, window_override)
        needs = self._needs.compute_needs(activity, party_size)
        capacities = {
            resource_type: catalog.capacity_of(resource_type)
            for resource_type in needs
        }
        add_on_units = 0
        if add_on is not None:
            self._needs.validate_add_on(activity, add_on)
            add_on_units = self._needs.party_area_units(add_on)
            capacities[ResourceType.PARTY_AREA] = catalog.capacity_of(ResourceType.PARTY_AREA)

        if window is None:
            return None

        blackouts: list[tuple[int, int]] = []
        buffer = (0, 0)
        if self._rules is not None:
            if window_override is None or not window_override.suppress_blackouts:
                blackouts = blackout_spans(
                    self._rules.list_blackout_rules(date_key),
                    date_key,
                    activity.code,
                    window,
                )
            buffer = resolve_buffer(self._rules.list_buffer_rules(), activity.code)

        return ScanPlan(
            date_key=date_key,
            window=window,
            activity=activity,
            needs=needs,
            capacities=capacities,
            step_minutes=self.step_for(activity),
            add_on=add_on,
            add_on_units=add_on_units,
            blackouts=tuple(blackouts),
            buffer=buffer,
        )

    def read_snapshot(self, date_key: str) -> list[ReservationInterval]:
        if self._reservations is None:
            return []
        return list(self._reservations.list_reservation_intervals(date_key))

    def evaluate_day(
        self,
        date_key: str,
        activity: Activity,
        party_size: int,
        add_on: Optional[PartyAreaRequest] = None,
        window_override: Optional[WindowOverride] = None,
        reservations: Optional[Sequence[ReservationInterval]] = None,
    ) -> AvailabilityResult:
        plan = self.prepare_scan(date_key, activity, party_size, add_on, window_override)
        if plan is None:
            logger.info("Availability scan skipped | date=%s | reason=closed", date_key)
            return AvailabilityResult(
                date_key=date_key,
                window=None,
                step_minutes=self.step_for(activity),
            )

        snapshot = list(reservations) if reservations is not None else self.read_snapshot(date_key)
        starts = plan.starts()
        blocked = scan_blocked_starts(plan, snapshot, starts)
        logger.info(
            "Availability scan completed | date=%s | activity=%s | candidates=%s | blocked=%s",
            date_key,
            activity.code,
            len(starts),
            len(blocked),
        )
        return AvailabilityResult(
            date_key=date_key,
            window=plan.window,
            step_minutes=plan.step_minutes,
            candidate_starts=tuple(starts),
            blocked=blocked,
        )

    def compute_blocked_starts(
        self,
        date_key: str,
        activity: Activity,
        party_size: int,
        add_on: Optional[PartyAreaRequest] = None,
        window_override: Optional[WindowOverride] = None,
        reservations: Optional[Sequence[ReservationInterval]] = None,
    ) -> list[int]:
        """Sorted blocked starts for the day.

        A closed day has no candidate starts, so the list is empty exactly as
        for a day with every start open. Callers that must tell the two apart
        use `evaluate_day(...).closed`.
        """
        return self.evaluate_day(
            date_key,
            activity,
            party_size,
            add_on=add_on,
            window_override=window_override,
            reservations=reservations,
        ).blocked_starts
