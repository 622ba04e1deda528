"""Patient bed telemetry simulator publishing vitals and inclination over MQTT."""

__version__ = "1.0.0"
