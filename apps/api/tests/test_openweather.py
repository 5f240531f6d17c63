"""Tests for the OpenWeather client and reading normalization."""

import httpx
import pytest

from climarisk_api.errors import UpstreamUnavailable
from climarisk_api.sensors.openweather import OpenWeatherClient, normalize_reading

SAMPLE = {
    "coord": {"lon": -9.14, "lat": 38.7},
    "main": {"temp": 21.4, "humidity": 60},
    "wind": {"speed": 6.2, "deg": 310},
    "rain": {"1h": 1.5},
    "name": "Lisbon",
    "cod": 200,
}


def _client(handler, api_key="test-key") -> OpenWeatherClient:
    return OpenWeatherClient(
        api_key=api_key,
        base_url="https://owm.test/",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestNormalizeReading:
    """Extraction of rule inputs from the raw document."""

    def test_full_document(self):
        reading = normalize_reading(SAMPLE)

        assert reading.temp_c == 21.4
        assert reading.wind_ms == 6.2
        assert reading.rain_1h_mm == 1.5
        assert reading.raw is SAMPLE

    def test_missing_wind_and_rain_default_to_zero(self):
        reading = normalize_reading({"main": {"temp": 10}})

        assert reading.temp_c == 10.0
        assert reading.wind_ms == 0.0
        assert reading.rain_1h_mm == 0.0

    @pytest.mark.parametrize("main", [{}, {"temp": None}, {"temp": "hot"}, {"temp": True}])
    def test_unusable_temperature_is_none(self, main):
        assert normalize_reading({"main": main}).temp_c is None

    def test_empty_document(self):
        reading = normalize_reading({})

        assert reading.temp_c is None
        assert (reading.wind_ms, reading.rain_1h_mm) == (0.0, 0.0)


class TestOpenWeatherClient:
    """HTTP behavior against a mocked transport."""

    def test_fetch_sends_metric_query(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(200, json=SAMPLE)

        reading = _client(handler).read(38.7, -9.14)

        assert reading.temp_c == 21.4
        assert seen["url"].path == "/data/2.5/weather"
        assert seen["url"].params["lat"] == "38.7"
        assert seen["url"].params["lon"] == "-9.14"
        assert seen["url"].params["appid"] == "test-key"
        assert seen["url"].params["units"] == "metric"

    def test_upstream_error_message_is_kept(self):
        def handler(request):
            return httpx.Response(401, json={"cod": 401, "message": "Invalid API key"})

        with pytest.raises(UpstreamUnavailable, match="Invalid API key"):
            _client(handler).fetch(0, 0)

    def test_upstream_error_without_body(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(UpstreamUnavailable, match="owm_http_502"):
            _client(handler).fetch(0, 0)

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable):
            _client(handler).fetch(0, 0)

    def test_non_object_body(self):
        def handler(request):
            return httpx.Response(200, json=[1, 2, 3])

        with pytest.raises(UpstreamUnavailable):
            _client(handler).fetch(0, 0)

    def test_api_key_read_from_file(self, tmp_path, monkeypatch):
        from climarisk_api.sensors import openweather

        key_file = tmp_path / "owm_api_key"
        key_file.write_text("file-key\n", encoding="utf-8")
        monkeypatch.setattr(openweather.settings, "openweather_api_key", None)
        monkeypatch.setattr(openweather.settings, "openweather_api_key_file", str(key_file))
        seen = {}

        def handler(request):
            seen["appid"] = request.url.params["appid"]
            return httpx.Response(200, json=SAMPLE)

        _client(handler, api_key=None).fetch(1, 2)
        assert seen["appid"] == "file-key"

    def test_missing_api_key_is_upstream_unavailable(self, tmp_path, monkeypatch):
        from climarisk_api.sensors import openweather

        monkeypatch.setattr(openweather.settings, "openweather_api_key", None)
        monkeypatch.setattr(
            openweather.settings, "openweather_api_key_file", str(tmp_path / "missing")
        )

        with pytest.raises(UpstreamUnavailable):
            _client(lambda request: httpx.Response(200, json=SAMPLE), api_key=None).fetch(1, 2)
