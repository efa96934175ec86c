from __future__ import annotations

import random
from dataclasses import replace

import pytest

from booking_engine.domain.errors import InvalidDurationError, UnknownResourceTypeError
from booking_engine.domain.models import (
    BlackoutRule,
    BlockReason,
    BufferRule,
    ComboActivity,
    ComboOrder,
    OperatingWindow,
    PartyAreaRequest,
    ReservationInterval,
    ResourceType,
    SingleActivity,
    WindowOverride,
)
from booking_engine.services.availability_service import (
    AvailabilityService,
    decompose_request,
    overlaps,
    peak_usage,
)
from booking_engine.services.catalog_service import ResourceCatalog
from booking_engine.services.needs_service import ResourceNeedCalculator
from booking_engine.utils.config import get_settings


THURSDAY = "2026-10-22"
MONDAY = "2026-10-19"

AXE = ResourceType.AXE_BAY
DUCKPIN = ResourceType.DUCKPIN_LANE
PARTY = ResourceType.PARTY_AREA


class _StaticReader:
    def __init__(self, intervals=()):
        self.intervals = list(intervals)
        self.calls = 0

    def list_reservation_intervals(self, date_key):
        self.calls += 1
        return list(self.intervals)


class _ExplodingReader:
    def list_reservation_intervals(self, date_key):
        raise AssertionError("reservation reader must not be called")


class _StaticRules:
    def __init__(self, blackouts=(), buffers=()):
        self.blackouts = list(blackouts)
        self.buffers = list(buffers)

    def list_blackout_rules(self, date_key):
        return [rule for rule in self.blackouts if rule.date_key == date_key]

    def list_buffer_rules(self):
        return list(self.buffers)


def _service(reader=None, rules=None, settings=None) -> AvailabilityService:
    resolved = settings or get_settings()
    calculator = ResourceNeedCalculator(ResourceCatalog.from_settings(resolved), settings=resolved)
    return AvailabilityService(
        calculator,
        reservation_reader=reader,
        rules_reader=rules,
        settings=resolved,
    )


def _override(open_min: int, close_min: int, date_key: str = THURSDAY, **kwargs) -> WindowOverride:
    return WindowOverride(
        date_key=date_key,
        window=OperatingWindow(open_min=open_min, close_min=close_min),
        **kwargs,
    )


# --- Pure helpers ---

def test_touching_intervals_do_not_overlap():
    assert overlaps(960, 1020, 1000, 1080)
    assert not overlaps(960, 1020, 1020, 1080)


def test_peak_usage_releases_units_before_new_starts():
    reservations = [
        ReservationInterval(AXE, 2, 960, 1020),
        ReservationInterval(AXE, 2, 1020, 1080),
        ReservationInterval(AXE, 1, 1000, 1040),
    ]
    assert peak_usage(reservations, 960, 1080) == 3
    assert peak_usage(reservations, 1040, 1080) == 2
    assert peak_usage(reservations, 1080, 1140) == 0


def test_combo_decomposition_follows_order():
    activity = ComboActivity(AXE, 60, DUCKPIN, 30, order=ComboOrder.B_FIRST)
    pieces = decompose_request(
        activity,
        {AXE: 2, DUCKPIN: 1},
        1020,
        add_on=PartyAreaRequest(count=1, duration_minutes=60),
        add_on_units=1,
    )

    assert [(piece.resource_type, piece.start_min, piece.end_min, piece.units) for piece in pieces] == [
        (DUCKPIN, 1020, 1050, 1),
        (AXE, 1050, 1110, 2),
        (PARTY, 1020, 1080, 1),
    ]


# --- Scan behaviour ---

def test_concrete_axe_scenario():
    reader = _StaticReader([ReservationInterval(AXE, 2, 1020, 1080)])
    service = _service(reader)

    blocked = service.compute_blocked_starts(
        THURSDAY,
        SingleActivity(AXE, 60),
        12,
        window_override=_override(960, 1380),
    )

    assert 1020 in blocked
    assert 990 in blocked
    assert 960 not in blocked
    assert 1080 not in blocked
    assert blocked == sorted(blocked)
    assert reader.calls == 1


def test_combo_order_changes_the_outcome():
    reader = _StaticReader([ReservationInterval(DUCKPIN, 6, 1020, 1080)])
    service = _service(reader)

    axe_first = ComboActivity(AXE, 60, DUCKPIN, 60, order=ComboOrder.A_FIRST)
    duckpin_first = ComboActivity(AXE, 60, DUCKPIN, 60, order=ComboOrder.B_FIRST)

    assert 1020 not in service.compute_blocked_starts(THURSDAY, axe_first, 4)
    assert 1020 in service.compute_blocked_starts(THURSDAY, duckpin_first, 4)


def test_window_shorter_than_activity_blocks_every_candidate():
    service = _service(_StaticReader())
    result = service.evaluate_day(
        THURSDAY,
        SingleActivity(AXE, 120),
        4,
        window_override=_override(960, 1020),
    )

    assert result.candidate_starts == (960, 990)
    assert result.blocked_starts == [960, 990]
    assert set(result.blocked.values()) == {BlockReason.OUTSIDE_WINDOW}
    assert result.open_starts == []
    assert not result.closed


def test_activity_must_finish_by_close():
    service = _service(_StaticReader())
    result = service.evaluate_day(THURSDAY, SingleActivity(DUCKPIN, 60), 6)

    assert result.candidate_starts[-1] == 1260
    assert result.blocked == {}
    assert result.open_starts[-1] == 1260


def test_closed_day_returns_without_reading_reservations():
    service = _service(_ExplodingReader())
    result = service.evaluate_day(MONDAY, SingleActivity(AXE, 60), 4)

    assert result.closed
    assert result.candidate_starts == ()
    assert service.compute_blocked_starts(MONDAY, SingleActivity(AXE, 60), 4) == []


def test_starts_past_the_last_fitting_start_are_not_candidates():
    service = _service(_StaticReader())
    override = _override(960, 1380)

    result = service.evaluate_day(THURSDAY, SingleActivity(AXE, 60), 12, window_override=override)

    assert result.candidate_starts[0] == 960
    assert result.candidate_starts[-1] == 1320
    assert service.compute_blocked_starts(
        THURSDAY, SingleActivity(AXE, 60), 12, window_override=override
    ) == []


def test_closed_day_is_told_apart_from_an_open_day_by_the_result():
    service = _service(_StaticReader())
    activity = SingleActivity(AXE, 60)

    assert service.compute_blocked_starts(MONDAY, activity, 4) == []
    assert service.compute_blocked_starts(THURSDAY, activity, 4) == []
    assert service.evaluate_day(MONDAY, activity, 4).closed
    assert not service.evaluate_day(THURSDAY, activity, 4).closed


def test_validation_runs_before_the_scan():
    service = _service(_ExplodingReader())
    with pytest.raises(InvalidDurationError):
        service.evaluate_day(THURSDAY, SingleActivity(AXE, 50), 4)


def test_deactivated_type_is_rejected_before_the_scan():
    settings = replace(get_settings(), resource_capacities={AXE: 0, DUCKPIN: 6, PARTY: 2})
    service = _service(_ExplodingReader(), settings=settings)
    with pytest.raises(UnknownResourceTypeError):
        service.evaluate_day(THURSDAY, SingleActivity(AXE, 60), 4)


def test_party_area_contention_blocks_only_with_add_on():
    reader = _StaticReader([ReservationInterval(PARTY, 2, 960, 1080)])
    service = _service(reader)
    activity = SingleActivity(AXE, 60)

    without_add_on = service.compute_blocked_starts(THURSDAY, activity, 4)
    with_add_on = service.evaluate_day(
        THURSDAY,
        activity,
        4,
        add_on=PartyAreaRequest(count=1, duration_minutes=60),
    )

    assert 960 not in without_add_on
    assert with_add_on.blocked[960] is BlockReason.CAPACITY
    assert with_add_on.blocked[1020] is BlockReason.CAPACITY
    assert 1080 not in with_add_on.blocked


def test_repeated_scans_are_identical():
    reader = _StaticReader(
        [
            ReservationInterval(AXE, 3, 990, 1110),
            ReservationInterval(DUCKPIN, 4, 1050, 1140),
        ]
    )
    service = _service(reader)
    activity = ComboActivity(AXE, 30, DUCKPIN, 60)

    first = service.evaluate_day(THURSDAY, activity, 8)
    second = service.evaluate_day(THURSDAY, activity, 8)
    assert first == second


def test_explicit_snapshot_skips_the_reader():
    service = _service(_ExplodingReader())
    blocked = service.compute_blocked_starts(
        THURSDAY,
        SingleActivity(AXE, 60),
        16,
        reservations=[ReservationInterval(AXE, 1, 1200, 1230)],
    )
    assert 1170 in blocked
    assert 1200 in blocked
    assert 1140 not in blocked
    assert 1230 not in blocked


# --- Administrative rules ---

def test_blackout_blocks_overlapping_starts_for_its_activity():
    rules = _StaticRules(
        blackouts=[BlackoutRule(date_key=THURSDAY, start_min=1020, end_min=1080, activity="AXE_BAY")]
    )
    service = _service(_StaticReader(), rules)

    axe = service.evaluate_day(THURSDAY, SingleActivity(AXE, 60), 4)
    assert axe.blocked[990] is BlockReason.BLACKOUT
    assert axe.blocked[1050] is BlockReason.BLACKOUT
    assert 960 not in axe.blocked
    assert 1080 not in axe.blocked

    duckpin = service.evaluate_day(THURSDAY, SingleActivity(DUCKPIN, 60), 4)
    assert 1020 not in duckpin.blocked


def test_open_ended_blackout_runs_to_close():
    rules = _StaticRules(blackouts=[BlackoutRule(date_key=THURSDAY, start_min=1200)])
    service = _service(_StaticReader(), rules)

    result = service.evaluate_day(THURSDAY, SingleActivity(DUCKPIN, 30), 4)
    assert result.blocked[1200] is BlockReason.BLACKOUT
    assert result.blocked[1290] is BlockReason.BLACKOUT
    assert 1170 not in result.blocked


def test_override_can_suppress_blackouts():
    rules = _StaticRules(blackouts=[BlackoutRule(date_key=THURSDAY, reason="private event")])
    service = _service(_StaticReader(), rules)
    activity = SingleActivity(AXE, 60)

    assert len(service.compute_blocked_starts(THURSDAY, activity, 4)) == 11
    suppressed = service.compute_blocked_starts(
        THURSDAY,
        activity,
        4,
        window_override=WindowOverride(date_key=THURSDAY, suppress_blackouts=True),
    )
    assert suppressed == []


def test_buffers_widen_activity_legs():
    reader = _StaticReader([ReservationInterval(AXE, 4, 1080, 1140)])
    activity = SingleActivity(AXE, 60)

    plain = _service(reader).compute_blocked_starts(THURSDAY, activity, 4)
    assert 1020 not in plain

    rules = _StaticRules(
        buffers=[
            BufferRule(activity="ALL", before_min=0, after_min=15),
            BufferRule(activity="DUCKPIN_LANE", before_min=0, after_min=60),
            BufferRule(activity="AXE_BAY", before_min=30, after_min=0, active=False),
        ]
    )
    buffered = _service(reader, rules).compute_blocked_starts(THURSDAY, activity, 4)
    assert 1020 in buffered
    assert 1140 not in buffered


def test_buffers_widen_the_blackout_check():
    activity = SingleActivity(AXE, 60)
    blackout = BlackoutRule(date_key=THURSDAY, start_min=1080, end_min=1140, activity="AXE_BAY")

    unbuffered = _service(_StaticReader(), _StaticRules(blackouts=[blackout]))
    assert 1020 not in unbuffered.compute_blocked_starts(THURSDAY, activity, 4)

    after = _StaticRules(blackouts=[blackout], buffers=[BufferRule(activity="ALL", after_min=15)])
    result = _service(_StaticReader(), after).evaluate_day(THURSDAY, activity, 4)
    assert result.blocked[1020] is BlockReason.BLACKOUT
    assert 990 not in result.blocked
    assert 1140 not in result.blocked

    before = _StaticRules(blackouts=[blackout], buffers=[BufferRule(activity="AXE_BAY", before_min=30)])
    result = _service(_StaticReader(), before).evaluate_day(THURSDAY, activity, 4)
    assert result.blocked[1140] is BlockReason.BLACKOUT
    assert 1170 not in result.blocked
    assert 990 not in result.blocked


def test_quarter_hour_activities_use_a_finer_grid():
    settings = replace(get_settings(), quarter_hour_start_activities=("AXE_BAY",))
    service = _service(_StaticReader(), settings=settings)

    axe = service.evaluate_day(THURSDAY, SingleActivity(AXE, 60), 4)
    duckpin = service.evaluate_day(THURSDAY, SingleActivity(DUCKPIN, 60), 4)

    assert axe.step_minutes == 15
    assert len(axe.candidate_starts) == 21
    assert duckpin.step_minutes == 30
    assert len(duckpin.candidate_starts) == 11


# --- Capacity invariant against a minute-by-minute oracle ---

def _oracle_blocked(activity, needs, capacities, window, reservations, start_min) -> bool:
    if start_min + activity.total_minutes > window.close_min:
        return True
    for piece in decompose_request(activity, needs, start_min):
        for minute in range(piece.start_min, piece.end_min):
            used = sum(
                item.units
                for item in reservations
                if item.resource_type is piece.resource_type
                and item.start_min <= minute < item.end_min
            )
            if used + piece.units > capacities[piece.resource_type]:
                return True
    return False


@pytest.mark.parametrize("seed", [3, 11, 29, 47])
def test_scan_matches_minute_oracle(seed):
    rng = random.Random(seed)
    window = OperatingWindow(open_min=960, close_min=1380)
    capacities = {AXE: 4, DUCKPIN: 6}
    reservations = []
    for _ in range(14):
        resource_type = rng.choice([AXE, DUCKPIN])
        start = rng.randrange(window.open_min, window.close_min - 15, 15)
        length = rng.choice([30, 45, 60, 90, 120])
        reservations.append(
            ReservationInterval(
                resource_type=resource_type,
                units=rng.randint(1, 3),
                start_min=start,
                end_min=min(start + length, window.close_min),
            )
        )

    activities = [
        SingleActivity(AXE, 60),
        SingleActivity(DUCKPIN, 90),
        ComboActivity(AXE, 60, DUCKPIN, 30, order=ComboOrder.A_FIRST),
        ComboActivity(AXE, 30, DUCKPIN, 60, order=ComboOrder.B_FIRST),
    ]
    service = _service(_StaticReader(reservations))
    override = WindowOverride(date_key=THURSDAY, window=window)

    for activity in activities:
        party_size = rng.randint(1, 16)
        needs = ResourceNeedCalculator(service.catalog, settings=get_settings()).compute_needs(
            activity, party_size
        )
        result = service.evaluate_day(THURSDAY, activity, party_size, window_override=override)
        for start_min in result.candidate_starts:
            expected = _oracle_blocked(activity, needs, capacities, window, reservations, start_min)
            assert (start_min in result.blocked) == expected, (activity, party_size, start_min)
