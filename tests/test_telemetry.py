"""
Unit tests for device resolution and telemetry fetching.
"""

import asyncio

import pytest

from erie_bridge.common.exceptions import NoDevicesError, TelemetryUnavailableError, VendorError
from erie_bridge.common.state import TankState
from erie_bridge.services.erie import DeviceResolver, SessionManager, TelemetryFetcher, parse_int

from conftest import BASE_URL, FakeErieAPI


def make_fetcher(api: FakeErieAPI, tank_size: float = 1000, last_reset: float = 200) -> TelemetryFetcher:
    session = SessionManager("owner@example.com", "hunter2", base_url=BASE_URL, transport=api.transport)
    resolver = DeviceResolver(session)
    return TelemetryFetcher(session, resolver, TankState(tank_size, last_reset))


def fetch(fetcher: TelemetryFetcher, times: int = 1):
    async def scenario():
        try:
            return [await fetcher.fetch_reading() for _ in range(times)]
        finally:
            await fetcher.session.close()

    return asyncio.run(scenario())


class TestParseInt:
    """Leading-integer parsing of vendor numbers."""

    @pytest.mark.parametrize("value,expected", [
        ("500", 500),
        ("  42", 42),
        ("500 L", 500),
        ("12.7", 12),
        ("-3", -3),
        (731, 731),
        (12.9, 12),
    ])
    def test_numeric(self, value, expected):
        assert parse_int(value) == expected

    @pytest.mark.parametrize("value", [None, "", "abc", "L500", True, [], {}, float("nan")])
    def test_not_numeric(self, value):
        assert parse_int(value) is None


class TestFetchReading:
    """TelemetryFetcher.fetch_reading()"""

    def test_reading_fields(self, erie_api):
        [reading] = fetch(make_fetcher(erie_api))

        assert reading.total == 500
        assert reading.tank_size == 1000
        assert reading.last_reset == 200
        assert reading.space_left == 700
        assert reading.regenerations == 17
        assert reading.updated > 0

        payload = reading.to_payload()
        assert payload["total"] == 500
        assert payload["space_left"] == 700
        assert payload["tank_size"] == 1000
        assert payload["last_reset"] == 200

    def test_space_left_can_go_negative(self):
        api = FakeErieAPI(info={"total_volume": "1700", "nr_regenerations": 3})
        [reading] = fetch(make_fetcher(api, tank_size=1000, last_reset=200))

        assert reading.space_left == -500
        assert reading.space_left == reading.tank_size - (reading.total - reading.last_reset)

    def test_uses_current_baseline(self, erie_api):
        fetcher = make_fetcher(erie_api)
        fetcher.tank.last_reset = 450

        [reading] = fetch(fetcher)
        assert reading.last_reset == 450
        assert reading.space_left == 950

    def test_device_list_requested_once(self, erie_api):
        fetcher = make_fetcher(erie_api)
        fetch(fetcher, times=2)

        assert erie_api.device_list_calls == 1
        assert erie_api.info_calls == 2
        assert fetcher.resolver.device_id == "4242"

    def test_missing_total_volume(self):
        api = FakeErieAPI(info={"nr_regenerations": 3})
        with pytest.raises(TelemetryUnavailableError) as exc_info:
            fetch(make_fetcher(api))
        assert exc_info.value.device_id == "4242"

    def test_non_numeric_total_volume(self):
        api = FakeErieAPI(info={"total_volume": "n/a"})
        with pytest.raises(TelemetryUnavailableError):
            fetch(make_fetcher(api))

    def test_info_error_is_no_data(self, erie_api):
        erie_api.info_status = 503
        with pytest.raises(TelemetryUnavailableError):
            fetch(make_fetcher(erie_api))

    def test_missing_regenerations_is_none(self):
        api = FakeErieAPI(info={"total_volume": 800})
        [reading] = fetch(make_fetcher(api))
        assert reading.regenerations is None

    def test_rebased(self, erie_api):
        [reading] = fetch(make_fetcher(erie_api))
        rebased = reading.rebased(500)

        assert rebased.last_reset == 500
        assert rebased.space_left == 1000
        assert rebased.total == reading.total
        assert rebased.updated == reading.updated


class TestDeviceResolver:
    """DeviceResolver.resolve_device_id()"""

    def test_resolves_first_device(self):
        api = FakeErieAPI(devices=[{"profile": {"id": "first"}}, {"profile": {"id": "second"}}])
        session = SessionManager("owner@example.com", "hunter2", base_url=BASE_URL, transport=api.transport)
        resolver = DeviceResolver(session)

        async def scenario():
            ids = [await resolver.resolve_device_id(), await resolver.resolve_device_id()]
            await session.close()
            return ids

        assert asyncio.run(scenario()) == ["first", "first"]
        assert api.device_list_calls == 1

    def test_no_devices(self):
        api = FakeErieAPI(devices=[])
        with pytest.raises(NoDevicesError):
            fetch(make_fetcher(api))
        assert api.info_calls == 0

    def test_device_list_error_is_no_devices(self):
        api = FakeErieAPI()
        api.always_unauthorized = True
        with pytest.raises(NoDevicesError):
            fetch(make_fetcher(api))

    def test_device_without_profile(self):
        api = FakeErieAPI(devices=[{"name": "softener"}])
        with pytest.raises(VendorError, match="profile id"):
            fetch(make_fetcher(api))

    def test_failed_resolution_is_not_cached(self):
        api = FakeErieAPI(devices=[])
        fetcher = make_fetcher(api)

        async def scenario():
            with pytest.raises(NoDevicesError):
                await fetcher.fetch_reading()
            api.devices = [{"profile": {"id": 7}}]
            reading = await fetcher.fetch_reading()
            await fetcher.session.close()
            return reading

        reading = asyncio.run(scenario())
        assert reading.total == 500
        assert fetcher.resolver.device_id == "7"
        assert api.device_list_calls == 2
