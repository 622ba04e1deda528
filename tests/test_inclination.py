import random
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from bed_simulator.inclination import (
    BedState,
    InclinationRegime,
    MealWindow,
    SimulatorState,
    draw_flat_dwell,
    draw_minor_dwell,
    in_meal_window,
    initial_state,
    update_inclination,
)


def expired(regime, inclination, now, dwell=2700):
    return SimulatorState(regime, inclination, now - timedelta(seconds=dwell + 1), dwell)


def fresh(regime, inclination, now, dwell=3000):
    return SimulatorState(regime, inclination, now, dwell)


@pytest.mark.parametrize("hour,minute,inside", [
    (7, 59, False),
    (8, 0, True),
    (8, 29, True),
    (8, 30, False),
    (12, 15, True),
    (18, 0, True),
    (18, 30, False),
    (23, 0, False),
])
def test_meal_window_membership(at, hour, minute, inside):
    assert in_meal_window(at(hour, minute)) is inside


def test_meal_window_does_not_wrap_midnight(at):
    late = MealWindow(23, 45)
    assert late.contains(at(23, 50))
    assert not late.contains(at(0, 5))


@pytest.mark.parametrize("prior", [
    (InclinationRegime.FLAT, 0.0, False),
    (InclinationRegime.FLAT, 0.0, True),
    (InclinationRegime.MINOR_INCLINED, 30.0, False),
    (InclinationRegime.MINOR_INCLINED, 30.0, True),
])
def test_meal_window_forces_meal_incline(at, prior):
    regime, inclination, dwell_expired = prior
    now = at(8, 5)
    state = expired(regime, inclination, now) if dwell_expired else fresh(regime, inclination, now)

    new_state, events = update_inclination(state, now, random.Random(1))

    assert new_state.regime == InclinationRegime.MEAL_INCLINED
    assert new_state.inclination == 60.0
    assert new_state.bed_state == BedState.INCLINED
    assert len(events) == 1
    assert events[0].describe("1") == "Bed 1 INCLINED for meal to 60.0 degrees."


def test_staying_in_meal_window_is_idempotent(at):
    rng = random.Random(3)
    state, _ = update_inclination(initial_state(at(7, 0), rng), at(12, 0), rng)

    again, events = update_inclination(state, at(12, 10), rng)

    assert again == state
    assert events == []


def test_leaving_meal_window_resets_to_flat(at):
    rng = random.Random(5)
    state, _ = update_inclination(initial_state(at(7, 0), rng), at(18, 29), rng)

    now = at(18, 30)
    new_state, events = update_inclination(state, now, rng)

    assert new_state.regime == InclinationRegime.FLAT
    assert new_state.inclination == 0.0
    assert new_state.bed_state == BedState.FLAT
    assert new_state.last_change == now
    assert 2700 <= new_state.dwell_seconds < 3600
    assert [e.describe("1") for e in events] == ["Bed 1 set to FLAT after meal."]


def test_dwell_not_elapsed_leaves_state_unchanged(at):
    now = at(23, 0)
    state = SimulatorState(InclinationRegime.MINOR_INCLINED, 30.0, now - timedelta(seconds=599), 600)

    new_state, events = update_inclination(state, now, random.Random(0))

    assert new_state is state
    assert events == []


def test_flat_to_minor_probability(at):
    rng = random.Random(20240601)
    trials = 2000
    minor = 0
    now = at(23, 0)

    for _ in range(trials):
        new_state, _ = update_inclination(expired(InclinationRegime.FLAT, 0.0, now), now, rng)
        if new_state.regime == InclinationRegime.MINOR_INCLINED:
            minor += 1
            assert new_state.inclination == 30.0
        else:
            assert new_state.regime == InclinationRegime.FLAT

    assert abs(minor / trials - 0.20) <= 0.03


def test_minor_always_returns_to_flat(at):
    rng = random.Random(99)
    now = at(23, 0)
    for _ in range(200):
        new_state, events = update_inclination(
            expired(InclinationRegime.MINOR_INCLINED, 30.0, now, dwell=600), now, rng)
        assert new_state.regime == InclinationRegime.FLAT
        assert new_state.inclination == 0.0
        assert 2700 <= new_state.dwell_seconds < 3600
        assert [e.describe("2") for e in events] == ["Bed 2 set to FLAT after minor incline."]


def test_flat_to_minor_draws_minor_dwell(at, fixed_random):
    now = at(23, 0)
    new_state, events = update_inclination(expired(InclinationRegime.FLAT, 0.0, now), now, fixed_random(0.1))

    assert new_state.regime == InclinationRegime.MINOR_INCLINED
    assert new_state.last_change == now
    assert 600 <= new_state.dwell_seconds < 900
    assert events[0].describe("1") == "Bed 1 INCLINED (minor) to 30.0 degrees."


def test_flat_self_transition_resets_dwell_timer(at, fixed_random):
    now = at(23, 0)
    state = SimulatorState(InclinationRegime.FLAT, 0.0, now - timedelta(hours=2), 2700)

    new_state, events = update_inclination(state, now, fixed_random(0.5))

    assert new_state.regime == InclinationRegime.FLAT
    assert new_state.inclination == 0.0
    assert new_state.last_change == now
    assert 2700 <= new_state.dwell_seconds < 3600
    assert events == []


def test_dwell_draw_ranges():
    rng = random.Random(7)
    minor = [draw_minor_dwell(rng) for _ in range(1000)]
    flat = [draw_flat_dwell(rng) for _ in range(1000)]

    assert all(600 <= d < 900 and d % 60 == 0 for d in minor)
    assert all(2700 <= d < 3600 and d % 60 == 0 for d in flat)
    assert min(minor) == 600 and max(minor) == 840
    assert min(flat) == 2700 and max(flat) == 3540


def test_meal_entry_keeps_dwell_timer(at):
    now = at(8, 0)
    state = SimulatorState(InclinationRegime.MINOR_INCLINED, 30.0, now - timedelta(minutes=3), 720)

    new_state, _ = update_inclination(state, now, random.Random(0))

    assert new_state.last_change == state.last_change
    assert new_state.dwell_seconds == 720


def test_initial_state_is_flat(at):
    state = initial_state(at(6, 0), random.Random(11))
    assert state.regime == InclinationRegime.FLAT
    assert state.bed_state == BedState.FLAT
    assert state.inclination == 0.0
    assert 2700 <= state.dwell_seconds < 3600


def test_dwell_uses_monotonic_reference_over_wall_clock(at):
    # wall clock stepped back an hour, but 700 s really elapsed
    state = SimulatorState(InclinationRegime.MINOR_INCLINED, 30.0, at(23, 0), 600, last_change_ref=1000.0)

    new_state, events = update_inclination(state, at(22, 0), random.Random(4), ref=1700.0)

    assert new_state.regime == InclinationRegime.FLAT
    assert new_state.last_change_ref == 1700.0
    assert len(events) == 1


def test_dwell_not_expired_by_forward_clock_step(at):
    state = SimulatorState(InclinationRegime.MINOR_INCLINED, 30.0, at(20, 0), 600, last_change_ref=1000.0)

    new_state, events = update_inclination(state, at(23, 0), random.Random(4), ref=1060.0)

    assert new_state is state
    assert events == []


def test_dwell_across_dst_fall_back_counts_real_time():
    berlin = ZoneInfo("Europe/Berlin")
    started = datetime(2025, 10, 26, 2, 0, tzinfo=berlin)           # 02:00 CEST, 00:00Z
    now = datetime(2025, 10, 26, 2, 5, fold=1, tzinfo=berlin)       # 02:05 CET, 01:05Z
    state = SimulatorState(InclinationRegime.MINOR_INCLINED, 30.0, started, 600)

    assert state.elapsed_seconds(now) == 65 * 60
    new_state, _ = update_inclination(state, now, random.Random(2))
    assert new_state.regime == InclinationRegime.FLAT
