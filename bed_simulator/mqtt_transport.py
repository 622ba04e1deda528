"""
MQTT Transport Module

Thin blocking wrapper around paho-mqtt for a single bed device: mutual TLS with
the device certificate, QoS 1 publishes that wait for the PUBACK, and paho's
own reconnect loop running in the background network thread.
"""

import logging
import ssl
import threading

import paho.mqtt.client as mqtt

from bed_simulator import config

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Base class for broker transport failures."""


class BrokerConnectionError(TransportError):
    """The initial connection to the broker could not be established."""


class PublishError(TransportError):
    """A message was not accepted or acknowledged by the broker."""


class BedMQTTClient:
    """
    Blocking MQTT transport for one bed

    Args:
        identity: DeviceIdentity with client id and certificate paths
        broker_uri: e.g. ssl://host:8883
        timeout: seconds to wait for CONNACK / PUBACK
        keepalive: MQTT keep-alive interval in seconds
    """

    def __init__(self, identity, broker_uri=config.MQTT_BROKER_URI,
                 timeout=config.MQTT_TIMEOUT, keepalive=config.MQTT_KEEPALIVE):
        self.identity = identity
        self.host, self.port, self.use_tls = config.parse_broker_uri(broker_uri)
        self.timeout = timeout
        self.keepalive = keepalive

        self._connack = threading.Event()
        self._connack_reason = None
        self._closing = False

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=identity.client_id,
            clean_session=True,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        # paho keeps QoS>0 messages published while offline and resends them on
        # reconnect; cap that backlog so an outage does not build an unbounded queue
        self.client.max_queued_messages_set(config.MQTT_MAX_QUEUED_MESSAGES)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when connected (or failed to connect) to the MQTT broker"""
        self._connack_reason = reason_code
        if reason_code.is_failure:
            logger.error("❌ MQTT connection refused: %s", reason_code)
        else:
            logger.info("✅ Connection success")
        self._connack.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        if self._closing:
            logger.debug("MQTT client disconnected: %s", reason_code)
        else:
            logger.error("❌ Connection lost: %s", reason_code)

    def connect(self):
        """
        Connect to the broker and block until CONNACK.

        Raises:
            BrokerConnectionError: bad certificates, network failure, refusal or timeout
        """
        self._closing = False
        self._connack.clear()
        self._connack_reason = None

        try:
            if self.use_tls:
                self.client.tls_set(
                    ca_certs=self.identity.ca_file,
                    certfile=self.identity.cert_file,
                    keyfile=self.identity.key_file,
                    cert_reqs=ssl.CERT_REQUIRED,
                    tls_version=ssl.PROTOCOL_TLS_CLIENT,
                )
            self.client.reconnect_delay_set(
                min_delay=config.MQTT_RECONNECT_MIN_DELAY,
                max_delay=config.MQTT_RECONNECT_MAX_DELAY,
            )
            self.client.connect(self.host, self.port, keepalive=self.keepalive)
        except (OSError, ValueError) as e:
            raise BrokerConnectionError(f"{self.host}:{self.port}: {e}") from e

        self.client.loop_start()

        if not self._connack.wait(self.timeout):
            self._abort_connect()
            raise BrokerConnectionError(
                f"{self.host}:{self.port}: no CONNACK within {self.timeout} seconds")

        if self._connack_reason is not None and self._connack_reason.is_failure:
            self._abort_connect()
            raise BrokerConnectionError(f"{self.host}:{self.port}: {self._connack_reason}")

    def _abort_connect(self):
        """Close the half-open connection and stop the network thread after a failed connect."""
        self._closing = True
        self.client.disconnect()
        self.client.loop_stop()

    def publish(self, topic, payload, qos=config.MQTT_QOS):
        """
        Publish and block until the broker acknowledges (QoS > 0) or the timeout expires.

        While disconnected, a QoS>0 message is left in paho's bounded offline queue
        for delivery after reconnect and this returns without waiting.

        Raises:
            PublishError: the message was rejected, dropped because the offline
                queue is full, or not acknowledged in time
        """
        try:
            info = self.client.publish(topic, payload, qos=qos)
        except ValueError as e:
            raise PublishError(str(e)) from e

        if info.rc == mqtt.MQTT_ERR_NO_CONN and qos > 0:
            logger.warning("⚠️ Not connected, message %s queued for delivery after reconnect", info.mid)
            return info.mid
        if info.rc == mqtt.MQTT_ERR_QUEUE_SIZE:
            raise PublishError(
                f"offline queue full ({config.MQTT_MAX_QUEUED_MESSAGES} messages), sample dropped")
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(mqtt.error_string(info.rc))

        try:
            info.wait_for_publish(self.timeout)
        except (ValueError, RuntimeError) as e:
            raise PublishError(str(e)) from e

        if not info.is_published():
            raise PublishError(f"no acknowledgement within {self.timeout} seconds")
        return info.mid

    def is_connected(self):
        return self.client.is_connected()

    def disconnect(self):
        """Disconnect and wait for the network thread to finish."""
        self._closing = True
        rc = self.client.disconnect()
        self.client.loop_stop()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(mqtt.error_string(rc))
