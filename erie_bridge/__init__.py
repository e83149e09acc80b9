"""
Erie Septic Tank Bridge

Polls Erie Connect for water softener usage and publishes remaining septic
tank capacity to Home Assistant over MQTT.
"""

__version__ = "1.0.0"
