"""Weather tools backed by the National Weather Service API."""

from typing import Any

import httpx
from pydantic import BaseModel, Field, field_validator

from toolrelay.tools.base import ToolDefinition
from toolrelay.utils.logging import get_logger

logger = get_logger(__name__)

NWS_API_BASE = "https://api.weather.gov"
USER_AGENT = "weather-app/1.0"


class AlertsInput(BaseModel):
    """Input schema for the alerts tool."""

    state: str = Field(
        ...,
        min_length=2,
        max_length=2,
        description="Two-letter state code (e.g. CA, NY)",
        examples=["CA", "NY"],
    )

    @field_validator("state")
    @classmethod
    def normalize_state(cls, v: str) -> str:
        return v.upper()


class ForecastInput(BaseModel):
    """Input schema for the forecast tool."""

    latitude: float = Field(..., ge=-90, le=90, description="Latitude of the location")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude of the location")


class NWSClient:
    """Minimal async client for api.weather.gov.

    Lookups return None on any HTTP failure; the tools turn that into a
    readable message for the model rather than an error.
    """

    def __init__(
        self,
        base_url: str = NWS_API_BASE,
        user_agent: str = USER_AGENT,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"User-Agent": user_agent, "Accept": "application/geo+json"}
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def get_json(self, url: str) -> dict[str, Any] | None:
        try:
            response = await self.client.get(url, headers=self.headers)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error making NWS request to {url}: {e}")
            return None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def format_alert(feature: dict[str, Any]) -> str:
    """Format one alert feature as a text block."""
    props = feature.get("properties") or {}
    return "\n".join(
        [
            f"Event: {props.get('event') or 'Unknown'}",
            f"Area: {props.get('areaDesc') or 'Unknown'}",
            f"Severity: {props.get('severity') or 'Unknown'}",
            f"Status: {props.get('status') or 'Unknown'}",
            f"Headline: {props.get('headline') or 'No headline'}",
            "---",
        ]
    )


def format_period(period: dict[str, Any]) -> str:
    """Format one forecast period as a text block."""
    temperature = period.get("temperature")
    return "\n".join(
        [
            f"{period.get('name') or 'Unknown'}:",
            f"Temperature: {temperature if temperature is not None else 'Unknown'}°{period.get('temperatureUnit') or 'F'}",
            f"Wind: {period.get('windSpeed') or 'Unknown'} {period.get('windDirection') or ''}",
            f"{period.get('shortForecast') or 'No forecast available'}",
            "---",
        ]
    )


def create_get_alerts_tool(nws: NWSClient) -> ToolDefinition:
    async def get_alerts_handler(params: AlertsInput) -> str:
        alerts_data = await nws.get_json(f"{nws.base_url}/alerts?area={params.state}")
        if alerts_data is None:
            return "Failed to retrieve alerts data"

        features = alerts_data.get("features") or []
        if not features:
            return f"No active alerts for {params.state}"

        formatted_alerts = "\n".join(format_alert(feature) for feature in features)
        return f"Active alerts for {params.state}:\n\n{formatted_alerts}"

    return ToolDefinition(
        name="get_alerts",
        description="Get weather alerts for a state",
        input_schema_class=AlertsInput,
        handler=get_alerts_handler,
    )


def create_get_forecast_tool(nws: NWSClient) -> ToolDefinition:
    async def get_forecast_handler(params: ForecastInput) -> str:
        latitude, longitude = params.latitude, params.longitude
        points_data = await nws.get_json(f"{nws.base_url}/points/{latitude:.4f},{longitude:.4f}")
        if points_data is None:
            return (
                f"Failed to retrieve grid point data for coordinates: {latitude}, {longitude}. "
                "This location may not be supported by the NWS API (only US locations are supported)."
            )

        forecast_url = (points_data.get("properties") or {}).get("forecast")
        if not forecast_url:
            return "Failed to get forecast URL from grid point data"

        forecast_data = await nws.get_json(forecast_url)
        if forecast_data is None:
            return "Failed to retrieve forecast data"

        periods = (forecast_data.get("properties") or {}).get("periods") or []
        if not periods:
            return "No forecast periods available"

        formatted_forecast = "\n".join(format_period(period) for period in periods)
        return f"Forecast for {latitude}, {longitude}:\n\n{formatted_forecast}"

    return ToolDefinition(
        name="get_forecast",
        description="Get weather forecast for a location",
        input_schema_class=ForecastInput,
        handler=get_forecast_handler,
    )
