"""
Device Resolver

Finds the water softener to read. Only the first device on the account is
used; its id is cached for the life of the process.
"""

from erie_bridge.common.exceptions import NoDevicesError, VendorError
from erie_bridge.common.logging_setup import get_service_logger

from .session import SessionManager, DEVICE_LIST_PATH

logger = get_service_logger("erie.devices")


class DeviceResolver:
    """Resolves and caches the target device id"""

    def __init__(self, session: SessionManager):
        self.session = session
        self._device_id: str | None = None

    @property
    def device_id(self) -> str | None:
        return self._device_id

    async def resolve_device_id(self) -> str:
        """
        Return the cached device id, fetching the device list on first use.

        Raises:
            NoDevicesError: the account lists no devices
            VendorError: the first device has no profile id
            AuthError: sign-in failed
        """
        if self._device_id:
            logger.debug("ErieConnect - Using cached device id.")
            return self._device_id

        logger.info("ErieConnect - Get devices start.")
        devices = await self.session.request(DEVICE_LIST_PATH)

        if not isinstance(devices, list) or not devices:
            logger.error("ErieConnect - No devices.")
            raise NoDevicesError(path=DEVICE_LIST_PATH)

        first = devices[0]
        try:
            device_id = first["profile"]["id"]
        except (KeyError, TypeError) as e:
            raise VendorError(
                f"Device entry has no profile id: {e}",
                path=DEVICE_LIST_PATH,
            ) from e

        if device_id is None or device_id == "":
            raise VendorError("Device entry has an empty profile id", path=DEVICE_LIST_PATH)

        self._device_id = str(device_id)
        logger.info(
            f"ErieConnect - Using device {self._device_id} ({len(devices)} listed)",
            extra={"device_id": self._device_id, "device_count": len(devices)},
        )
        return self._device_id
