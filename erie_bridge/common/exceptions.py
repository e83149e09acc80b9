"""
Custom Exception Classes for the Erie Bridge

Hierarchical exception structure for error handling across services.
"""


class BridgeError(Exception):
    """Base exception for all bridge errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(BridgeError):
    """Configuration-related errors (fatal at startup)"""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or []
        super().__init__(f"Config Error: {message}", recoverable=False)


class VendorError(BridgeError):
    """Erie Connect API returned something unusable"""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status_code: int | None = None,
    ):
        self.path = path
        self.status_code = status_code
        super().__init__(f"Vendor Error: {message}", recoverable=True)


class AuthError(VendorError):
    """Login to Erie Connect failed"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(f"Auth: {message}", path="/auth/sign_in", status_code=status_code)


class NoDevicesError(VendorError):
    """Account has no water softener devices"""

    def __init__(self, path: str | None = None):
        super().__init__("No devices", path=path)


class TelemetryUnavailableError(VendorError):
    """Device info did not contain a usable total volume"""

    def __init__(self, message: str, device_id: str | None = None):
        self.device_id = device_id
        super().__init__(message)


class PersistenceError(BridgeError):
    """Reset history file could not be read or written"""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"Persistence Error: {message}", recoverable=False)
