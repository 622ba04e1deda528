"""
Configuration settings for the Patient Bed Simulator.
"""

import os
from dataclasses import dataclass
from urllib.parse import urlparse
from zoneinfo import ZoneInfo
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

# MQTT configuration
MQTT_BROKER_URI = os.getenv("MQTT_BROKER_URI", "ssl://a22bv8r2s2kek2-ats.iot.eu-north-1.amazonaws.com:8883")
MQTT_QOS = int(os.getenv("MQTT_QOS", "1"))
MQTT_TIMEOUT = float(os.getenv("MQTT_TIMEOUT", "10"))  # seconds
MQTT_KEEPALIVE = int(os.getenv("MQTT_KEEPALIVE", "60"))  # seconds
MQTT_MAX_QUEUED_MESSAGES = int(os.getenv("MQTT_MAX_QUEUED_MESSAGES", "12"))  # ~1 minute of samples
MQTT_RECONNECT_MIN_DELAY = 1
MQTT_RECONNECT_MAX_DELAY = 120

CLIENT_ID_PREFIX = "PatientBed"
TOPIC_PREFIX = "PatientBed/"

# Certificates (AWS IoT style: one cert/key pair per device instance)
CERTS_DIR = os.getenv("CERTS_DIR", "./certs")
CA_CERT_FILE = os.getenv("CA_CERT_FILE", "AmazonRootCA1.pem")

# Simulation
PUBLISH_INTERVAL = float(os.getenv("PUBLISH_INTERVAL", "5"))  # seconds
SIMULATOR_TIMEZONE = os.getenv("SIMULATOR_TIMEZONE", "")  # empty = host local zone

HEART_RATE_RANGE = (55.0, 85.0)
SPO2_RANGE = (95.0, 99.5)

# Inclination model
MEAL_INCLINATION_DEGREES = 60.0
MEAL_INCLINATION_DURATION_MINUTES = 30
MINOR_INCLINATION_DEGREES = 30.0
MINOR_INCLINATION_DURATION_BASE_MINUTES = 10
MINOR_INCLINATION_DURATION_RAND_ADD_MINUTES = 5
FLAT_STATE_BASE_DURATION_MINUTES = 45
FLAT_STATE_RAND_ADD_MINUTES = 15
PROBABILITY_MINOR_INCLINE = 0.20

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "")


def parse_meal_start_times(value):
    """
    Parse "HH:MM,HH:MM,..." into a tuple of (hour, minute) pairs.

    Raises ValueError on anything that is not a valid time of day.
    """
    times = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        hour_str, sep, minute_str = item.partition(":")
        if not sep:
            raise ValueError(f"Invalid meal start time: {item!r} (expected HH:MM)")
        hour, minute = int(hour_str), int(minute_str)
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid meal start time: {item!r}")
        times.append((hour, minute))
    return tuple(times)


# Meal times, interpreted in the simulator's local timezone
MEAL_START_TIMES = parse_meal_start_times(os.getenv("MEAL_START_TIMES", "08:00,12:00,18:00"))


def get_timezone(name=SIMULATOR_TIMEZONE):
    """Return a ZoneInfo for `name`, or None to use the host's local zone."""
    if not name:
        return None
    return ZoneInfo(name)


def parse_broker_uri(uri):
    """
    Split a broker URI such as ssl://host:8883 into (host, port, use_tls).
    """
    parsed = urlparse(uri)
    scheme = (parsed.scheme or "tcp").lower()
    if scheme in ("ssl", "mqtts", "tls"):
        use_tls = True
    elif scheme in ("tcp", "mqtt"):
        use_tls = False
    else:
        raise ValueError(f"Unsupported broker URI scheme: {scheme}")

    if not parsed.hostname:
        raise ValueError(f"Broker URI has no host: {uri}")

    port = parsed.port or (8883 if use_tls else 1883)
    return parsed.hostname, port, use_tls


@dataclass(frozen=True)
class DeviceIdentity:
    """Names derived from the device instance number given on the command line."""
    instance: str
    client_id: str
    topic: str
    ca_file: str
    cert_file: str
    key_file: str

    @classmethod
    def from_instance(cls, instance, certs_dir=CERTS_DIR):
        return cls(
            instance=instance,
            client_id=f"{CLIENT_ID_PREFIX}{instance}",
            topic=f"{TOPIC_PREFIX}{instance}/data",
            ca_file=os.path.join(certs_dir, CA_CERT_FILE),
            cert_file=os.path.join(certs_dir, f"device_{instance}.pem.crt"),
            key_file=os.path.join(certs_dir, f"device_{instance}.private.key"),
        )
