"""Physical unit assignment for committed reservations.

Capacity checks only count units. At commit time every reserved unit must
also name a concrete bay, lane or party area. A unit that is free for the
whole span is used directly; otherwise the day's reservations of that type
are re-packed with CP-SAT so that as few guests as possible change unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ortools.sat.python import cp_model

from booking_engine.domain.models import UnitReservation
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


class UnitAssignmentError(Exception):
    """Raised when reservations cannot be laid out on the active units."""


@dataclass(frozen=True)
class UnitMove:
    reservation_id: int
    from_resource_id: int
    to_resource_id: int


@dataclass(frozen=True)
class AssignmentPlan:
    resource_ids: tuple[int, ...]
    moves: tuple[UnitMove, ...] = ()
    solver: str = "DIRECT"


@dataclass(frozen=True)
class _Span:
    key: int
    start_min: int
    end_min: int
    current_unit: Optional[int]


def _is_free(unit_id: int, existing: Sequence[UnitReservation], start_min: int, end_min: int) -> bool:
    return not any(
        reservation.resource_id == unit_id
        and reservation.start_min < end_min
        and start_min < reservation.end_min
        for reservation in existing
    )


def free_units(
    unit_ids: Sequence[int],
    existing: Sequence[UnitReservation],
    start_min: int,
    end_min: int,
) -> list[int]:
    """Active units with nothing booked anywhere in [start_min, end_min), lowest id first."""
    return [
        unit_id
        for unit_id in sorted(unit_ids)
        if _is_free(unit_id, existing, start_min, end_min)
    ]


def _build_spans(
    unit_ids: Sequence[int],
    existing: Sequence[UnitReservation],
    start_min: int,
    end_min: int,
    units: int,
) -> list[_Span]:
    active = set(unit_ids)
    spans = [
        _Span(
            key=reservation.reservation_id,
            start_min=reservation.start_min,
            end_min=reservation.end_min,
            current_unit=reservation.resource_id if reservation.resource_id in active else None,
        )
        for reservation in existing
    ]
    # New pieces get negative keys so they never collide with stored ids.
    spans.extend(
        _Span(key=-(index + 1), start_min=start_min, end_min=end_min, current_unit=None)
        for index in range(units)
    )
    return spans


def solve_repack(
    unit_ids: Sequence[int],
    spans: Sequence[_Span],
    settings: Settings,
) -> Optional[dict[int, int]]:
    """Assign every span to a unit with CP-SAT; None when no solution is found."""
    model = cp_model.CpModel()
    assignment: dict[tuple[int, int], cp_model.IntVar] = {}
    intervals_by_unit: dict[int, list[cp_model.IntervalVar]] = {unit_id: [] for unit_id in unit_ids}

    for span in spans:
        for unit_id in unit_ids:
            literal = model.NewBoolVar(f"x_span_{span.key}_unit_{unit_id}")
            assignment[(span.key, unit_id)] = literal
            intervals_by_unit[unit_id].append(
                model.NewOptionalFixedSizeIntervalVar(
                    span.start_min,
                    span.end_min - span.start_min,
                    literal,
                    f"iv_span_{span.key}_unit_{unit_id}",
                )
            )
        model.AddExactlyOne([assignment[(span.key, unit_id)] for unit_id in unit_ids])

    for unit_intervals in intervals_by_unit.values():
        model.AddNoOverlap(unit_intervals)

    kept = [
        assignment[(span.key, span.current_unit)]
        for span in spans
        if span.current_unit is not None
    ]
    model.Maximize(sum(kept) if kept else 0)

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(settings.unit_assignment_solver_max_time_seconds)
    solver.parameters.num_search_workers = settings.unit_assignment_cp_sat_workers
    solver.parameters.random_seed = settings.unit_assignment_solver_random_seed

    status = solver.Solve(model)
    status_name = solver.StatusName(status)
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        logger.warning("Unit re-pack solve failed | status=%s | spans=%s", status_name, len(spans))
        return None

    logger.info(
        "Unit re-pack solve completed | status=%s | spans=%s | kept=%s",
        status_name,
        len(spans),
        int(solver.ObjectiveValue()),
    )
    return {
        span_key: unit_id
        for (span_key, unit_id), literal in assignment.items()
        if solver.Value(literal) == 1
    }


def greedy_repack(unit_ids: Sequence[int], spans: Sequence[_Span]) -> Optional[dict[int, int]]:
    """Interval partitioning in start order, keeping a span on its unit when free."""
    busy_until = {unit_id: 0 for unit_id in unit_ids}
    ordered = sorted(spans, key=lambda span: (span.start_min, span.end_min, span.key))
    result: dict[int, int] = {}
    for span in ordered:
        candidates = [unit_id for unit_id in sorted(unit_ids) if busy_until[unit_id] <= span.start_min]
        if not candidates:
            return None
        chosen = span.current_unit if span.current_unit in candidates else candidates[0]
        busy_until[chosen] = span.end_min
        result[span.key] = chosen
    return result


def repack_with_fallback(
    unit_ids: Sequence[int],
    existing: Sequence[UnitReservation],
    start_min: int,
    end_min: int,
    units: int,
    settings: Optional[Settings] = None,
) -> AssignmentPlan:
    resolved = settings or get_settings()
    spans = _build_spans(unit_ids, existing, start_min, end_min, units)

    solver_name = "CP_SAT"
    layout = solve_repack(unit_ids, spans, resolved)
    if layout is None:
        solver_name = "GREEDY"
        layout = greedy_repack(unit_ids, spans)
    if layout is None:
        raise UnitAssignmentError(
            f"{units} unit(s) cannot be placed in [{start_min}, {end_min}) on {len(unit_ids)} active unit(s)"
        )

    moves = tuple(
        UnitMove(
            reservation_id=reservation.reservation_id,
            from_resource_id=reservation.resource_id,
            to_resource_id=layout[reservation.reservation_id],
        )
        for reservation in existing
        if layout[reservation.reservation_id] != reservation.resource_id
    )
    new_units = tuple(sorted(layout[-(index + 1)] for index in range(units)))
    return AssignmentPlan(resource_ids=new_units, moves=moves, solver=solver_name)


def plan_unit_assignment(
    unit_ids: Sequence[int],
    existing: Sequence[UnitReservation],
    start_min: int,
    end_min: int,
    units: int,
    settings: Optional[Settings] = None,
) -> AssignmentPlan:
    """Pick concrete units for `units` new reservations over [start_min, end_min)."""
    if units <= 0:
        return AssignmentPlan(resource_ids=())
    if len(unit_ids) < units:
        raise UnitAssignmentError(
            f"{units} unit(s) requested but only {len(unit_ids)} are active"
        )

    available = free_units(unit_ids, existing, start_min, end_min)
    if len(available) >= units:
        return AssignmentPlan(resource_ids=tuple(available[:units]))

    logger.info(
        "No direct unit fit; re-packing | span=%s-%s | units=%s | free=%s",
        start_min,
        end_min,
        units,
        len(available),
    )
    return repack_with_fallback(unit_ids, existing, start_min, end_min, units, settings)
