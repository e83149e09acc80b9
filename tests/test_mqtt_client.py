"""
Unit tests for the MQTT bus adapter that don't need a broker.
"""

import pytest

from erie_bridge.common.config import MqttSettings
from erie_bridge.common.exceptions import ConfigError
from erie_bridge.services.bus import MqttBus, build_discovery_payload, parse_server_url


@pytest.mark.parametrize("server,expected", [
    ("mqtt://broker.local:1883", ("broker.local", 1883, False)),
    ("mqtt://broker.local", ("broker.local", 1883, False)),
    ("tcp://10.0.0.5:1884", ("10.0.0.5", 1884, False)),
    ("mqtts://broker.example.com", ("broker.example.com", 8883, True)),
    ("ssl://broker.example.com:9883", ("broker.example.com", 9883, True)),
    ("core-mosquitto", ("core-mosquitto", 1883, False)),
    ("core-mosquitto:1885", ("core-mosquitto", 1885, False)),
])
def test_parse_server_url(server, expected):
    assert parse_server_url(server) == expected


@pytest.mark.parametrize("server", [
    "http://broker.local",
    "mqtt://",
    "mqtt://broker.local:notaport",
])
def test_parse_server_url_rejects(server):
    with pytest.raises(ConfigError):
        parse_server_url(server)


def test_publish_while_disconnected_is_refused():
    bus = MqttBus(MqttSettings(server="mqtt://broker.local", username="u", password="p"))

    assert bus.connected is False
    assert bus.publish("erie_septic_tank/state", "{}") is False


def test_subscribe_before_connect_is_remembered():
    bus = MqttBus(MqttSettings(server="mqtt://broker.local", username="u", password="p"))
    bus.subscribe("erie_septic_tank/reset")
    bus.subscribe("homeassistant/status")
    bus.subscribe("erie_septic_tank/reset")

    assert bus._topics == {"erie_septic_tank/reset", "homeassistant/status"}


def test_discovery_payload():
    payload = build_discovery_payload("Septic", "erie_septic_tank/state")

    assert payload == {
        "name": "Septic",
        "state_topic": "erie_septic_tank/state",
        "json_attributes_topic": "erie_septic_tank/state",
        "unique_id": "erie_septic_tank",
        "unit_of_measurement": "L",
        "value_template": "{{ value_json.space_left }}",
    }
