"""
Home Assistant MQTT discovery payload for the septic tank sensor.
"""

from typing import Any

UNIQUE_ID = "erie_septic_tank"
UNIT_OF_MEASUREMENT = "L"
VALUE_TEMPLATE = "{{ value_json.space_left }}"


def build_discovery_payload(sensor_name: str, state_topic: str) -> dict[str, Any]:
    return {
        "name": sensor_name,
        "state_topic": state_topic,
        "json_attributes_topic": state_topic,
        "unique_id": UNIQUE_ID,
        "unit_of_measurement": UNIT_OF_MEASUREMENT,
        "value_template": VALUE_TEMPLATE,
    }
