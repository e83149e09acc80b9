"""
Configuration Dataclasses

Type-safe configuration structures for the bridge.
Loaded once at startup from a YAML (or JSON) file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from erie_bridge.common.exceptions import ConfigError


DEFAULT_DISCOVERY_TOPIC = "homeassistant/sensor/erie_septic_tank/space/config"
DEFAULT_STATE_TOPIC = "erie_septic_tank/state"
DEFAULT_RESET_TOPIC = "erie_septic_tank/reset"
DEFAULT_HA_STATUS_TOPIC = "homeassistant/status"
DEFAULT_SENSOR_NAME = "Erie septic tank"

ERIE_API_BASE_URL = "https://erieconnect.eriewatertreatment.com/api/erieapp/v1"

DEFAULT_INTERVAL_S = 60
DEFAULT_REQUEST_TIMEOUT_S = 30.0
DEFAULT_HANDSHAKE_DELAY_S = 20.0


@dataclass
class TankSettings:
    """Tank and scheduling settings (`config` section)"""
    tank_size: float
    last_reset: float
    interval_s: float = DEFAULT_INTERVAL_S
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    handshake_delay_s: float = DEFAULT_HANDSHAKE_DELAY_S
    health_port: int | None = None


@dataclass
class ErieConnectSettings:
    """Vendor account (`erieConnect` section)"""
    email: str
    password: str = field(repr=False)
    base_url: str = ERIE_API_BASE_URL


@dataclass
class MqttSettings:
    """Broker connection and topics (`mqtt` section)"""
    server: str
    username: str
    password: str = field(repr=False)
    client_id: str = ""
    discovery_topic: str = DEFAULT_DISCOVERY_TOPIC
    state_topic: str = DEFAULT_STATE_TOPIC
    reset_topic: str = DEFAULT_RESET_TOPIC
    status_topic: str = DEFAULT_HA_STATUS_TOPIC
    sensor_name: str = DEFAULT_SENSOR_NAME


@dataclass
class BridgeConfig:
    """Complete bridge configuration"""
    tank: TankSettings
    erie_connect: ErieConnectSettings
    mqtt: MqttSettings

    def summary(self) -> dict[str, Any]:
        """Printable summary with secrets masked"""
        return {
            "tank_size": self.tank.tank_size,
            "last_reset": self.tank.last_reset,
            "interval_s": self.tank.interval_s,
            "request_timeout_s": self.tank.request_timeout_s,
            "handshake_delay_s": self.tank.handshake_delay_s,
            "health_port": self.tank.health_port,
            "erie_email": self.erie_connect.email,
            "erie_base_url": self.erie_connect.base_url,
            "mqtt_server": self.mqtt.server,
            "mqtt_username": self.mqtt.username,
            "discovery_topic": self.mqtt.discovery_topic,
            "state_topic": self.mqtt.state_topic,
            "reset_topic": self.mqtt.reset_topic,
            "status_topic": self.mqtt.status_topic,
            "sensor_name": self.mqtt.sensor_name,
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(data: Any) -> list[str]:
    """
    Validate raw configuration.

    Args:
        data: Parsed configuration file contents

    Returns:
        List of error messages (empty when valid)
    """
    if not isinstance(data, dict):
        return ["Configuration must be a mapping"]

    errors = []

    # config section
    config = data.get("config")
    if not isinstance(config, dict):
        errors.append("Missing config object")
    else:
        tank_size = config.get("tankSize")
        if not _is_number(tank_size) or tank_size <= 0:
            errors.append("config.tankSize must be a number greater than 0")

        last_reset = config.get("lastReset")
        if not _is_number(last_reset) or last_reset < 0:
            errors.append("config.lastReset must be a number of at least 0")

        for key in ("interval", "requestTimeout"):
            value = config.get(key)
            if value is not None and (not _is_number(value) or value <= 0):
                errors.append(f"config.{key} must be a positive number")

        delay = config.get("handshakeDelay")
        if delay is not None and (not _is_number(delay) or delay < 0):
            errors.append("config.handshakeDelay cannot be negative")

        port = config.get("healthPort")
        if port is not None and (not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536):
            errors.append("config.healthPort must be a TCP port number")

    # erieConnect section
    erie_connect = data.get("erieConnect")
    if not isinstance(erie_connect, dict):
        errors.append("Missing erieConnect object")
    elif not (erie_connect.get("email") and erie_connect.get("password")):
        errors.append("erieConnect object should contain email and password")

    # mqtt section
    mqtt = data.get("mqtt")
    if not isinstance(mqtt, dict):
        errors.append("Missing mqtt object")
    elif not (mqtt.get("server") and mqtt.get("username") and mqtt.get("password")):
        errors.append("mqtt object should contain: server, username and password")

    return errors


def load_bridge_config(data: Any) -> BridgeConfig:
    """
    Build BridgeConfig from a dictionary, applying defaults.

    Raises:
        ConfigError: listing every validation problem found
    """
    errors = validate_config(data)
    if errors:
        raise ConfigError("; ".join(errors), errors=errors)

    config = data["config"]
    erie_connect = data["erieConnect"]
    mqtt = data["mqtt"]

    tank = TankSettings(
        tank_size=config["tankSize"],
        last_reset=config["lastReset"],
        interval_s=config.get("interval") or DEFAULT_INTERVAL_S,
        request_timeout_s=config.get("requestTimeout") or DEFAULT_REQUEST_TIMEOUT_S,
        handshake_delay_s=config.get("handshakeDelay", DEFAULT_HANDSHAKE_DELAY_S),
        health_port=config.get("healthPort"),
    )

    erie = ErieConnectSettings(
        email=erie_connect["email"],
        password=erie_connect["password"],
        base_url=(erie_connect.get("baseUrl") or ERIE_API_BASE_URL).rstrip("/"),
    )

    mqtt_settings = MqttSettings(
        server=mqtt["server"],
        username=mqtt["username"],
        password=mqtt["password"],
        client_id=mqtt.get("clientId") or "",
        discovery_topic=mqtt.get("discoveryTopic") or DEFAULT_DISCOVERY_TOPIC,
        state_topic=mqtt.get("stateTopic") or DEFAULT_STATE_TOPIC,
        reset_topic=mqtt.get("resetTopic") or DEFAULT_RESET_TOPIC,
        status_topic=mqtt.get("ha_status_topic") or DEFAULT_HA_STATUS_TOPIC,
        sensor_name=mqtt.get("sensorName") or DEFAULT_SENSOR_NAME,
    )

    return BridgeConfig(tank=tank, erie_connect=erie, mqtt=mqtt_settings)


def read_config_file(config_path: str | Path) -> BridgeConfig:
    """
    Load and validate the configuration file.

    YAML is a superset of JSON, so the add-on's options.json works as is.

    Raises:
        ConfigError: file missing, unparsable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file ({path}) does not exist")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Error loading configuration from {path}: {e}") from e

    return load_bridge_config(data)
