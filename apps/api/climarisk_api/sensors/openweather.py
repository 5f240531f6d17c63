"""OpenWeather current-weather client and reading normalization."""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import httpx

from climarisk_api.errors import UpstreamUnavailable
from climarisk_api.settings import get_settings
from climarisk_api.utils.metrics import sensor_fetch_duration, sensor_fetch_failures

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class SensorReading:
    """Normalized reading fed to the rule engine."""

    temp_c: Optional[float]
    wind_ms: float
    rain_1h_mm: float
    raw: dict = field(default_factory=dict, compare=False)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def normalize_reading(raw: dict) -> SensorReading:
    """Extract rule inputs from an OpenWeather response.

    Wind and rain default to 0 when absent. Temperature has no safe default
    and is left as None for the rule engine to flag.
    """
    main = raw.get("main") or {}
    wind = raw.get("wind") or {}
    rain = raw.get("rain") or {}

    temp_c = _number(main.get("temp"))
    wind_ms = _number(wind.get("speed"))
    rain_1h_mm = _number(rain.get("1h"))
    return SensorReading(
        temp_c=temp_c,
        wind_ms=wind_ms if wind_ms is not None else 0.0,
        rain_1h_mm=rain_1h_mm if rain_1h_mm is not None else 0.0,
        raw=raw,
    )


class OpenWeatherClient:
    """Fetches current weather for a coordinate."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize client; falls back to settings for anything not given."""
        self.api_key = api_key
        self.base_url = (base_url or settings.openweather_base_url).rstrip("/")
        self.timeout = timeout or settings.sensor_timeout_seconds
        self.transport = transport

    def _resolve_api_key(self) -> str:
        if self.api_key:
            return self.api_key
        if settings.openweather_api_key:
            return settings.openweather_api_key
        try:
            key = Path(settings.openweather_api_key_file).read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise UpstreamUnavailable(f"OpenWeather API key file unreadable: {exc}") from exc
        if not key:
            raise UpstreamUnavailable("OpenWeather API key file empty")
        return key

    def fetch(self, lat: float, lon: float) -> dict:
        """Return the raw current-weather document for ``(lat, lon)``."""
        params = {
            "lat": lat,
            "lon": lon,
            "appid": self._resolve_api_key(),
            "units": "metric",
        }
        try:
            with sensor_fetch_duration.time():
                with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                    response = client.get(f"{self.base_url}/data/2.5/weather", params=params)
        except httpx.HTTPError as exc:
            sensor_fetch_failures.inc()
            logger.warning(f"OpenWeather request failed: {exc}", extra={"lat": lat, "lon": lon})
            raise UpstreamUnavailable(f"OpenWeather request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            sensor_fetch_failures.inc()
            message = body.get("message") if isinstance(body, dict) else None
            raise UpstreamUnavailable(message or f"owm_http_{response.status_code}")
        if not isinstance(body, dict):
            sensor_fetch_failures.inc()
            raise UpstreamUnavailable("OpenWeather returned a non-JSON body")
        return body

    def read(self, lat: float, lon: float) -> SensorReading:
        """Fetch and normalize in one step."""
        return normalize_reading(self.fetch(lat, lon))
