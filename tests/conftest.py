import random
from datetime import datetime, timedelta, timezone

import pytest

from bed_simulator.config import DeviceIdentity

LOCAL_TZ = timezone(timedelta(hours=2))


class FixedRandom(random.Random):
    """random() always returns `value`; randrange derives from it too."""

    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


class FakeTransport:
    def __init__(self, connected=True, publish_error=None, on_publish=None):
        self.connected = connected
        self.publish_error = publish_error
        self.on_publish = on_publish
        self.published = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.connect_error = None
        self.disconnect_error = None

    def connect(self):
        self.connect_calls += 1
        if self.connect_error:
            raise self.connect_error

    def publish(self, topic, payload, qos=1):
        self.published.append((topic, payload, qos))
        if self.on_publish:
            self.on_publish(self)
        if self.publish_error:
            raise self.publish_error

    def is_connected(self):
        return self.connected

    def disconnect(self):
        self.disconnect_calls += 1
        if self.disconnect_error:
            raise self.disconnect_error


@pytest.fixture
def at():
    """at(8, 5) -> aware datetime for 08:05 local on a fixed day."""
    def _at(hour, minute=0, second=0):
        return datetime(2025, 6, 1, hour, minute, second, tzinfo=LOCAL_TZ)
    return _at


@pytest.fixture
def fixed_random():
    return FixedRandom


@pytest.fixture
def identity():
    return DeviceIdentity.from_instance("1", certs_dir="./certs")


@pytest.fixture
def fake_transport():
    return FakeTransport
