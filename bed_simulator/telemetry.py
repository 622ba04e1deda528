"""Telemetry record published once per tick."""

import json
from dataclasses import dataclass
from datetime import datetime

from bed_simulator import config
from bed_simulator.inclination import BedState


def format_timestamp(now: datetime) -> str:
    """ISO 8601 local time with UTC offset, second precision (2025-06-01T08:05:00+02:00)."""
    if now.tzinfo is None:
        now = now.astimezone()
    return now.isoformat(timespec="seconds")


def sample_vitals(rng):
    """Draw (heart_rate, spo2) uniformly from the configured ranges."""
    heart_rate = rng.uniform(*config.HEART_RATE_RANGE)
    spo2 = rng.uniform(*config.SPO2_RANGE)
    return heart_rate, spo2


@dataclass(frozen=True)
class TelemetrySample:
    device_id: str
    timestamp: str
    heart_rate: float
    spo2: float
    inclination: float
    bed_state: BedState

    def to_dict(self):
        # key order is part of the payload format
        return {
            "deviceId": self.device_id,
            "timestamp": self.timestamp,
            "heartRate": self.heart_rate,
            "spo2": self.spo2,
            "inclination": self.inclination,
            "bedState": self.bed_state.value,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4)

    @classmethod
    def from_json(cls, text) -> "TelemetrySample":
        data = json.loads(text)
        return cls(
            device_id=data["deviceId"],
            timestamp=data["timestamp"],
            heart_rate=float(data["heartRate"]),
            spo2=float(data["spo2"]),
            inclination=float(data["inclination"]),
            bed_state=BedState(data["bedState"]),
        )
