# BedSimulator.py
import logging
import random
import signal
import sys
import time
from datetime import datetime

from bed_simulator import config
from bed_simulator.config import DeviceIdentity
from bed_simulator.inclination import initial_state, update_inclination
from bed_simulator.log import setup_logging
from bed_simulator.mqtt_transport import BedMQTTClient, BrokerConnectionError, PublishError, TransportError
from bed_simulator.telemetry import TelemetrySample, format_timestamp, sample_vitals

logger = logging.getLogger("bed_simulator")


def make_clock(tz=None):
    """
    Return a callable giving the current time as an aware datetime in `tz`
    (host local zone when tz is None). Read fresh on every call.
    """
    if tz is None:
        return lambda: datetime.now().astimezone()
    return lambda: datetime.now(tz)


class BedSimulator:
    """
    Publishes one bed's telemetry every `interval` seconds.

    `transport` needs connect / publish / is_connected / disconnect;
    `clock` returns an aware local datetime for meal windows and timestamps;
    `monotonic` measures dwell timers; `rng` is a random.Random.
    """

    def __init__(self, identity, transport, clock=None, rng=None,
                 interval=config.PUBLISH_INTERVAL, qos=config.MQTT_QOS, monotonic=time.monotonic):
        self.identity = identity
        self.transport = transport
        self.clock = clock or make_clock(config.get_timezone())
        self.rng = rng or random.Random()
        self.interval = interval
        self.qos = qos
        self.monotonic = monotonic
        self.state = initial_state(self.clock(), self.rng, self.monotonic())

    def tick(self):
        """Sample, update inclination, publish. Returns the published TelemetrySample."""
        heart_rate, spo2 = sample_vitals(self.rng)

        now = self.clock()
        self.state, events = update_inclination(self.state, now, self.rng, ref=self.monotonic())
        for event in events:
            logger.info(event.describe(self.identity.instance))

        sample = TelemetrySample(
            device_id=self.identity.client_id,
            timestamp=format_timestamp(now),
            heart_rate=heart_rate,
            spo2=spo2,
            inclination=self.state.inclination,
            bed_state=self.state.bed_state,
        )
        payload = sample.to_json()

        try:
            if not self.transport.is_connected():
                logger.warning("⚠️ Client not connected. Retrying connection by Paho...")
            self.transport.publish(self.identity.topic, payload, qos=self.qos)
            logger.debug("📤 Published to %s: %s", self.identity.topic, payload)
        except PublishError as e:
            logger.error("❌ Error publishing: %s", e)

        return sample

    def run(self, stop_event):
        """Tick until `stop_event` is set. The wait follows the publish, so there is no drift correction."""
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(self.interval)

    def shutdown(self):
        logger.info("👋 Disconnecting...")
        try:
            self.transport.disconnect()
            logger.info("Disconnected.")
        except TransportError as e:
            logger.error("❌ Error disconnecting: %s", e)


class ShutdownRequest:
    """
    Stop flag that a signal handler can set.

    Same is_set / set / wait surface as threading.Event, but set() only
    assigns an attribute, so it never blocks on a lock the interrupted main
    thread may be holding. wait() polls in short sleeps.
    """

    def __init__(self, poll_interval=0.2):
        self.poll_interval = poll_interval
        self.signum = None
        self._requested = False

    def set(self, signum=None):
        self.signum = signum
        self._requested = True

    def is_set(self):
        return self._requested

    def wait(self, timeout):
        deadline = time.monotonic() + timeout
        while not self._requested:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(remaining, self.poll_interval))
        return self._requested


def install_signal_handlers(stop_request):
    """
    SIGINT / SIGTERM ask the loop to stop so the disconnect sequence can run.

    Returns the previous handlers so they can be put back with restore_signal_handlers.
    """
    def graceful_shutdown(signum, frame):
        stop_request.set(signum)

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.getsignal(signum)
        signal.signal(signum, graceful_shutdown)
    return previous


def restore_signal_handlers(previous):
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def main(argv=None, transport_factory=BedMQTTClient, stop_event=None):
    argv = sys.argv if argv is None else argv
    if len(argv) < 2:
        print(f"Usage: {argv[0] if argv else 'patient-bed-simulator'} "
              "<device_instance_number (e.g., 1 or 2)>", file=sys.stderr)
        return 1

    setup_logging()

    identity = DeviceIdentity.from_instance(argv[1])
    logger.info("🏥 Starting Patient Bed Simulator: %s", identity.client_id)
    logger.info("Publishing to topic: %s", identity.topic)

    # Handlers go in before connecting so Ctrl-C during the CONNACK wait is handled too
    previous_handlers = {}
    if stop_event is None:
        stop_event = ShutdownRequest()
        previous_handlers = install_signal_handlers(stop_event)

    try:
        transport = transport_factory(identity)
        logger.info("🚀 Connecting to MQTT broker at %s...", config.MQTT_BROKER_URI)
        try:
            transport.connect()
        except BrokerConnectionError as e:
            logger.error("❌ Error connecting: %s", e)
            return 1

        simulator = BedSimulator(identity, transport)
        simulator.run(stop_event)
        if getattr(stop_event, "signum", None) is not None:
            logger.info("🛑 Caught shutdown signal %s, stopping simulator", signal.Signals(stop_event.signum).name)
        simulator.shutdown()
        return 0
    finally:
        restore_signal_handlers(previous_handlers)
