"""Built-in utility tools."""

import logging
import zoneinfo
from datetime import datetime
from functools import cache
from urllib.parse import quote

import httpx
from pydantic import Field

from chat_agent.config import settings
from chat_agent.tools.base import ToolParams, ToolResult
from chat_agent.tools.registry import registry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# get_local_time
# ---------------------------------------------------------------------------


@cache
def _zones_by_city() -> dict[str, str]:
    """Map lowercased city part of each IANA zone ("new york") to the zone."""
    zones: dict[str, str] = {}
    for name in zoneinfo.available_timezones():
        city = name.rsplit("/", 1)[-1].replace("_", " ").lower()
        zones.setdefault(city, name)
    return zones


def resolve_zone(location: str) -> tuple[zoneinfo.ZoneInfo, bool]:
    """Return ``(zone, matched)`` for an IANA name or a city name.

    Falls back to the configured scheduler timezone when nothing matches.
    """
    candidate = location.strip()
    if candidate:
        try:
            return zoneinfo.ZoneInfo(candidate), True
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            pass
        name = _zones_by_city().get(candidate.split(",")[0].strip().lower())
        if name:
            return zoneinfo.ZoneInfo(name), True
    return zoneinfo.ZoneInfo(settings.scheduler_timezone), False


class LocalTimeParams(ToolParams):
    location: str = Field(description="A city name or IANA timezone, e.g. 'Tokyo' or 'Europe/Paris'")


@registry.tool(
    name="get_local_time",
    description="Get the local time for a specified location.",
    category="utility",
    params_model=LocalTimeParams,
)
async def get_local_time(location: str) -> ToolResult:
    tz, matched = resolve_zone(location)
    now = datetime.now(tz)
    data = {
        "location": location,
        "timezone": str(tz),
        "datetime": now.isoformat(),
        "time": now.strftime("%I:%M %p"),
        "day_of_week": now.strftime("%A"),
    }
    if not matched:
        data["note"] = f"Unknown location; showing {settings.scheduler_timezone} time."
    return ToolResult(data=data)


# ---------------------------------------------------------------------------
# get_weather_information (runs only after the user confirms)
# ---------------------------------------------------------------------------


class WeatherParams(ToolParams):
    city: str = Field(description="The city to show the weather for")


@registry.tool(
    name="get_weather_information",
    description="Show the weather in a given city to the user.",
    category="utility",
    params_model=WeatherParams,
    requires_confirmation=True,
)
async def get_weather_information(city: str) -> ToolResult:
    url = f"{settings.weather_api_url.rstrip('/')}/{quote(city)}"
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            resp = await client.get(url, params={"format": "3"})

        if resp.status_code != 200:
            return ToolResult(error=f"Weather service returned {resp.status_code}")

        return ToolResult(data={"city": city, "weather": resp.text.strip()})
    except httpx.HTTPError as exc:
        logger.exception("Weather lookup failed")
        return ToolResult(error=f"Weather request failed: {exc}")


# ---------------------------------------------------------------------------
# get_number_fact
# ---------------------------------------------------------------------------


class NumberFactParams(ToolParams):
    number: int = Field(description="The number to get a fact about")


@registry.tool(
    name="get_number_fact",
    description="Get an interesting fact about a specific number.",
    category="utility",
    params_model=NumberFactParams,
)
async def get_number_fact(number: int) -> ToolResult:
    url = f"{settings.number_fact_api_url.rstrip('/')}/{number}"
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            resp = await client.get(url)

        if resp.status_code != 200:
            return ToolResult(error=f"Error getting number fact: HTTP {resp.status_code}")

        return ToolResult(data={"number": number, "fact": resp.text.strip()})
    except httpx.HTTPError as exc:
        logger.exception("Number fact lookup failed")
        return ToolResult(error=f"Error getting number fact: {exc}")
