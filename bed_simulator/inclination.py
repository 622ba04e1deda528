"""
Bed inclination state machine.

The bed is FLAT most of the time, occasionally tilts to a minor incline, and is
always raised for meals. `update_inclination` is a pure function: the caller
passes the current state, the current local time and a random generator, and
gets back the next state plus the transitions worth logging.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from random import Random
from typing import List, Optional, Tuple

from bed_simulator import config


class InclinationRegime(Enum):
    FLAT = "FLAT"
    MINOR_INCLINED = "MINOR_INCLINED"
    MEAL_INCLINED = "MEAL_INCLINED"


class BedState(Enum):
    """Coarse label reported in telemetry."""
    FLAT = "FLAT"
    INCLINED = "INCLINED"


@dataclass(frozen=True)
class MealWindow:
    hour: int
    minute: int
    duration_minutes: int = config.MEAL_INCLINATION_DURATION_MINUTES

    @property
    def start_minutes(self) -> int:
        return self.hour * 60 + self.minute

    def contains(self, now: datetime) -> bool:
        # minutes since midnight; windows do not wrap past midnight
        current = now.hour * 60 + now.minute
        return self.start_minutes <= current < self.start_minutes + self.duration_minutes


MEAL_WINDOWS = tuple(MealWindow(hour, minute) for hour, minute in config.MEAL_START_TIMES)


@dataclass(frozen=True)
class SimulatorState:
    regime: InclinationRegime
    inclination: float
    last_change: datetime  # start of the current dwell timer
    dwell_seconds: int
    last_change_ref: Optional[float] = None  # monotonic seconds at last_change

    @property
    def bed_state(self) -> BedState:
        if self.regime == InclinationRegime.FLAT:
            return BedState.FLAT
        return BedState.INCLINED

    def elapsed_seconds(self, now: datetime, ref: Optional[float] = None) -> float:
        """
        Time spent in the current dwell. Uses the monotonic reference when both
        sides have one, otherwise compares the datetimes in UTC.
        """
        if ref is not None and self.last_change_ref is not None:
            return ref - self.last_change_ref
        return (now.astimezone(timezone.utc) - self.last_change.astimezone(timezone.utc)).total_seconds()

    def dwell_expired(self, now: datetime, ref: Optional[float] = None) -> bool:
        return self.elapsed_seconds(now, ref) >= self.dwell_seconds


@dataclass(frozen=True)
class TransitionEvent:
    previous: InclinationRegime
    current: InclinationRegime
    inclination: float
    at: datetime
    reason: str

    def describe(self, bed: str) -> str:
        if self.current == InclinationRegime.MEAL_INCLINED:
            return f"Bed {bed} INCLINED for meal to {self.inclination} degrees."
        if self.current == InclinationRegime.MINOR_INCLINED:
            return f"Bed {bed} INCLINED (minor) to {self.inclination} degrees."
        return f"Bed {bed} set to FLAT after {self.reason}."


def draw_flat_dwell(rng: Random) -> int:
    """FLAT dwell in seconds, whole minutes in [45, 60)."""
    return (config.FLAT_STATE_BASE_DURATION_MINUTES + rng.randrange(config.FLAT_STATE_RAND_ADD_MINUTES)) * 60


def draw_minor_dwell(rng: Random) -> int:
    """MINOR_INCLINED dwell in seconds, whole minutes in [10, 15)."""
    return (config.MINOR_INCLINATION_DURATION_BASE_MINUTES
            + rng.randrange(config.MINOR_INCLINATION_DURATION_RAND_ADD_MINUTES)) * 60


def in_meal_window(now: datetime, meal_windows=MEAL_WINDOWS) -> bool:
    return any(window.contains(now) for window in meal_windows)


def flat_state(now: datetime, rng: Random, ref: Optional[float] = None) -> SimulatorState:
    return SimulatorState(
        regime=InclinationRegime.FLAT,
        inclination=0.0,
        last_change=now,
        dwell_seconds=draw_flat_dwell(rng),
        last_change_ref=ref,
    )


def initial_state(now: datetime, rng: Random, ref: Optional[float] = None) -> SimulatorState:
    """The bed starts FLAT with a fresh dwell timer."""
    return flat_state(now, rng, ref)


def update_inclination(state: SimulatorState, now: datetime, rng: Random,
                       meal_windows=MEAL_WINDOWS,
                       ref: Optional[float] = None) -> Tuple[SimulatorState, List[TransitionEvent]]:
    """
    Advance the inclination state by one tick.

    Priority: meal window, then leaving a meal window, then the dwell timer.
    Returns the new state and the transitions that should be logged.

    `now` decides meal windows; `ref` (e.g. time.monotonic()) measures the
    dwell timer so clock steps and DST changes do not stretch it.
    """
    if in_meal_window(now, meal_windows):
        if state.regime == InclinationRegime.MEAL_INCLINED:
            return state, []
        new_state = replace(state, regime=InclinationRegime.MEAL_INCLINED,
                            inclination=config.MEAL_INCLINATION_DEGREES)
        event = TransitionEvent(state.regime, new_state.regime, new_state.inclination, now, "meal")
        return new_state, [event]

    if state.regime == InclinationRegime.MEAL_INCLINED:
        new_state = flat_state(now, rng, ref)
        return new_state, [TransitionEvent(state.regime, new_state.regime, 0.0, now, "meal")]

    if not state.dwell_expired(now, ref):
        return state, []

    if state.regime == InclinationRegime.FLAT:
        if rng.random() < config.PROBABILITY_MINOR_INCLINE:
            new_state = SimulatorState(
                regime=InclinationRegime.MINOR_INCLINED,
                inclination=config.MINOR_INCLINATION_DEGREES,
                last_change=now,
                dwell_seconds=draw_minor_dwell(rng),
                last_change_ref=ref,
            )
            event = TransitionEvent(state.regime, new_state.regime, new_state.inclination, now, "dwell expired")
            return new_state, [event]
        # Stays FLAT but the dwell timer is re-rolled every expiry.
        return flat_state(now, rng, ref), []

    new_state = flat_state(now, rng, ref)
    return new_state, [TransitionEvent(state.regime, new_state.regime, 0.0, now, "minor incline")]
