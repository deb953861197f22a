"""Bridge BTHome sensor advertisements onto an MQTT bus as Homie devices."""

__version__ = "0.1.0"
