"""
Bus Service

MQTT transport, inbound command dispatch and Home Assistant discovery.
"""

from .dispatcher import BusCommand, CommandDispatcher, classify
from .discovery import build_discovery_payload
from .mqtt_client import MqttBus, BusMessage, parse_server_url

__all__ = [
    "BusCommand",
    "CommandDispatcher",
    "classify",
    "build_discovery_payload",
    "MqttBus",
    "BusMessage",
    "parse_server_url",
]
