"""
Erie Connect Service

Vendor API access:
- Session management with re-login on 401
- Device resolution (first device, cached)
- Telemetry fetch and tank capacity calculation
"""

from .session import SessionManager, SessionTokens
from .devices import DeviceResolver
from .telemetry import TelemetryFetcher, Reading, parse_int

__all__ = [
    "SessionManager",
    "SessionTokens",
    "DeviceResolver",
    "TelemetryFetcher",
    "Reading",
    "parse_int",
]
