from __future__ import annotations

from dataclasses import replace

import pytest

pytest.importorskip("ortools")

from booking_engine.domain.models import UnitReservation
from booking_engine.services.unit_assignment import (
    UnitAssignmentError,
    free_units,
    plan_unit_assignment,
)
from booking_engine.utils.config import get_settings


def _settings():
    return replace(
        get_settings(),
        unit_assignment_solver_max_time_seconds=5,
        unit_assignment_cp_sat_workers=1,
    )


def _layout_is_valid(existing, plan, start_min, end_min) -> bool:
    moved = {move.reservation_id: move.to_resource_id for move in plan.moves}
    spans = [
        (moved.get(item.reservation_id, item.resource_id), item.start_min, item.end_min)
        for item in existing
    ]
    spans.extend((unit_id, start_min, end_min) for unit_id in plan.resource_ids)
    for index, (unit_a, start_a, end_a) in enumerate(spans):
        for unit_b, start_b, end_b in spans[index + 1:]:
            if unit_a == unit_b and start_a < end_b and start_b < end_a:
                return False
    return True


def test_free_units_are_used_directly_lowest_id_first():
    existing = [UnitReservation(reservation_id=10, resource_id=1, start_min=960, end_min=1020)]

    assert free_units([3, 1, 2], existing, 990, 1050) == [2, 3]
    plan = plan_unit_assignment([1, 2, 3], existing, 990, 1050, 2, settings=_settings())
    assert plan.resource_ids == (2, 3)
    assert plan.moves == ()
    assert plan.solver == "DIRECT"


def test_fragmented_units_are_repacked_with_cp_sat():
    existing = [
        UnitReservation(reservation_id=10, resource_id=1, start_min=960, end_min=1020),
        UnitReservation(reservation_id=11, resource_id=2, start_min=1080, end_min=1140),
    ]

    plan = plan_unit_assignment([1, 2], existing, 1000, 1100, 1, settings=_settings())

    assert plan.solver == "CP_SAT"
    assert len(plan.resource_ids) == 1
    assert len(plan.moves) == 1
    assert _layout_is_valid(existing, plan, 1000, 1100)


def test_greedy_fallback_when_solver_returns_nothing(monkeypatch):
    existing = [
        UnitReservation(reservation_id=10, resource_id=1, start_min=960, end_min=1020),
        UnitReservation(reservation_id=11, resource_id=2, start_min=1080, end_min=1140),
    ]
    monkeypatch.setattr(
        "booking_engine.services.unit_assignment.solve_repack",
        lambda unit_ids, spans, settings: None,
    )

    plan = plan_unit_assignment([1, 2], existing, 1000, 1100, 1, settings=_settings())

    assert plan.solver == "GREEDY"
    assert plan.resource_ids == (2,)
    assert [(move.reservation_id, move.to_resource_id) for move in plan.moves] == [(11, 1)]
    assert _layout_is_valid(existing, plan, 1000, 1100)


def test_reservations_on_inactive_units_are_moved_when_repacking():
    existing = [
        UnitReservation(reservation_id=20, resource_id=9, start_min=960, end_min=1080),
        UnitReservation(reservation_id=21, resource_id=1, start_min=1020, end_min=1140),
    ]

    plan = plan_unit_assignment([1, 2], existing, 1080, 1200, 1, settings=_settings())

    assert plan.resource_ids == (2,)
    assert plan.solver == "DIRECT"

    fragmented = [
        UnitReservation(reservation_id=20, resource_id=9, start_min=960, end_min=1000),
        UnitReservation(reservation_id=21, resource_id=1, start_min=1000, end_min=1060),
        UnitReservation(reservation_id=22, resource_id=2, start_min=1080, end_min=1140),
    ]
    repacked = plan_unit_assignment([1, 2], fragmented, 1040, 1100, 1, settings=_settings())
    moved = {move.reservation_id: move.to_resource_id for move in repacked.moves}
    assert repacked.solver == "CP_SAT"
    assert moved[20] in (1, 2)
    assert _layout_is_valid(fragmented, repacked, 1040, 1100)


def test_more_units_than_active_raise():
    with pytest.raises(UnitAssignmentError):
        plan_unit_assignment([1], [], 960, 1020, 2, settings=_settings())


def test_zero_units_need_no_assignment():
    assert plan_unit_assignment([1, 2], [], 960, 1020, 0).resource_ids == ()
