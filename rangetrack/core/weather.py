"""
RangeTrack — Simulated weather.

There is no live weather feed: `simulate_weather()` produces current
conditions and a 5-day forecast around a fixed baseline, with a little
jitter so periodic refreshes look alive. `farming_recommendations()` turns
a report into field advice.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

HEAT_THRESHOLD_F = 80
RAIN_THRESHOLD_PCT = 50
WIND_THRESHOLD_MPH = 15
UV_THRESHOLD = 7

# (high, low, condition, precipitation %, wind mph) for days +1..+5
_FORECAST_BASELINE = (
    (78, 58, "Sunny", 0, 6),
    (82, 62, "Partly Cloudy", 10, 7),
    (75, 55, "Rain", 80, 12),
    (68, 48, "Cloudy", 30, 9),
    (71, 51, "Sunny", 0, 5),
)

_CONDITION_ICONS = {
    "Sunny": "☀️",
    "Partly Cloudy": "⛅",
    "Cloudy": "☁️",
    "Rain": "🌧️",
}


@dataclass
class CurrentConditions:
    temp: int
    condition: str
    humidity: int
    wind: int
    uv_index: int
    feels_like: int


@dataclass
class ForecastDay:
    day: date
    high: int
    low: int
    condition: str
    precipitation: int
    wind: int


@dataclass
class WeatherReport:
    current: CurrentConditions
    forecast: list[ForecastDay] = field(default_factory=list)
    updated_at: datetime | None = None


def simulate_weather(
    now: datetime | None = None, rng: random.Random | None = None, jitter: int = 2,
) -> WeatherReport:
    """Build a simulated report. Pass jitter=0 for the plain baseline."""
    now = now or datetime.now()
    rng = rng or random.Random()

    def wobble(value: int) -> int:
        return value + rng.randint(-jitter, jitter) if jitter else value

    temp = wobble(72)
    current = CurrentConditions(
        temp=temp,
        condition="Partly Cloudy",
        humidity=max(0, min(100, wobble(65))),
        wind=max(0, wobble(8)),
        uv_index=6,
        feels_like=temp + 3,
    )
    forecast = [
        ForecastDay(
            day=now.date() + timedelta(days=offset),
            high=wobble(high),
            low=wobble(low),
            condition=condition,
            precipitation=max(0, min(100, precipitation + (rng.randint(0, jitter * 5) if jitter else 0))),
            wind=max(0, wobble(wind)),
        )
        for offset, (high, low, condition, precipitation, wind) in enumerate(_FORECAST_BASELINE, start=1)
    ]
    return WeatherReport(current=current, forecast=forecast, updated_at=now)


def farming_recommendations(report: WeatherReport) -> list[str]:
    tips = []
    if report.current.temp > HEAT_THRESHOLD_F:
        tips.append("Heat advisory: make sure livestock have plenty of water and shade.")
    if any(day.precipitation > RAIN_THRESHOLD_PCT for day in report.forecast):
        tips.append("Rain expected: plan indoor work and check drainage.")
    if report.current.wind > WIND_THRESHOLD_MPH:
        tips.append("High winds: secure loose items and hold off on spraying.")
    if report.current.uv_index > UV_THRESHOLD:
        tips.append("High UV: cover up and use sunscreen for outdoor work.")
    return tips


def format_weather(report: WeatherReport, with_forecast: bool = True) -> str:
    c = report.current
    icon = _CONDITION_ICONS.get(c.condition, "")
    lines = [
        f"{icon} {c.temp}°F, {c.condition} (feels like {c.feels_like}°F)",
        f"Humidity {c.humidity}% · Wind {c.wind} mph · UV {c.uv_index}",
    ]
    if with_forecast and report.forecast:
        lines.append("")
        lines.append("5-day forecast:")
        for day in report.forecast:
            lines.append(
                f"  {day.day.strftime('%a %d %b')}: {_CONDITION_ICONS.get(day.condition, '')} "
                f"{day.high}°/{day.low}°, rain {day.precipitation}%, wind {day.wind} mph"
            )
    tips = farming_recommendations(report)
    if tips:
        lines.append("")
        lines.extend(f"• {tip}" for tip in tips)
    return "\n".join(lines)
