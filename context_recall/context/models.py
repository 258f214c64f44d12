"""Read-only environmental snapshot consumed by prompt assembly.

Produced by an external aggregator and pushed through a
:class:`~context_recall.context.channel.SnapshotChannel`.  Every model is
frozen; the engine only ever reads them.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from context_recall.models.utils import generate_id, utcnow


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


def time_of_day(moment: datetime) -> str:
    hour = moment.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


class TimeContext(_Frozen):
    current_time: str = ""
    current_date: str = ""
    day_of_week: str = ""
    time_of_day: str = ""
    timezone: str | None = None

    @property
    def has_data(self) -> bool:
        return bool(self.current_time and self.current_date)

    @classmethod
    def at(cls, moment: datetime, timezone: str | None = None) -> TimeContext:
        return cls(
            current_time=moment.strftime("%H:%M"),
            current_date=moment.strftime("%B %d, %Y"),
            day_of_week=moment.strftime("%A"),
            time_of_day=time_of_day(moment),
            timezone=timezone,
        )


class LocationContext(_Frozen):
    has_gps: bool = False
    city: str | None = None
    region: str | None = None
    country: str | None = None
    address: str | None = None
    timezone: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    accuracy_m: float | None = None

    @property
    def has_data(self) -> bool:
        return self.has_gps or bool(self.city)

    @property
    def label(self) -> str:
        return ", ".join(part for part in (self.city, self.region, self.country) if part)


class WeatherContext(_Frozen):
    has_data: bool = False
    temperature: float | None = None
    feels_like: float | None = None
    unit: Literal["fahrenheit", "celsius"] = "fahrenheit"
    description: str | None = None
    humidity: float | None = None
    wind_speed: float | None = None

    @property
    def unit_symbol(self) -> str:
        return "F" if self.unit == "fahrenheit" else "C"


class UserContext(_Frozen):
    is_authenticated: bool = False
    name: str | None = None
    email: str | None = None
    birthday: str | None = None
    member_since: str | None = None

    @property
    def has_data(self) -> bool:
        return self.is_authenticated and bool(self.name)


class ActivityContext(_Frozen):
    active_components: tuple[str, ...] = ()
    recent_actions: tuple[str, ...] = ()
    time_spent_in_session_ms: int = 0

    @property
    def has_data(self) -> bool:
        return bool(self.active_components or self.recent_actions)


class DeviceContext(_Frozen):
    has_data: bool = False
    device_type: str | None = None
    os: str | None = None
    browser: str | None = None
    screen: str | None = None
    battery_level: int | None = None
    is_charging: bool | None = None
    online: bool = True


class ContextSnapshot(_Frozen):
    """Environmental signals at one point in time."""

    time: TimeContext = Field(default_factory=TimeContext)
    location: LocationContext = Field(default_factory=LocationContext)
    weather: WeatherContext = Field(default_factory=WeatherContext)
    user: UserContext = Field(default_factory=UserContext)
    activity: ActivityContext = Field(default_factory=ActivityContext)
    device: DeviceContext = Field(default_factory=DeviceContext)
    captured_at: datetime = Field(default_factory=utcnow)

    def has_data(self, domain: str) -> bool:
        section = getattr(self, domain, None)
        return bool(getattr(section, "has_data", False))

    @classmethod
    def empty(cls) -> ContextSnapshot:
        return cls()


class SuggestionPriority(enum.StrEnum):
    low = "low"
    medium = "medium"
    high = "high"


class ContextualSuggestion(_Frozen):
    """A precomputed hint shown next to a response, never inside the prompt."""

    text: str
    triggers: tuple[str, ...] = ()
    priority: SuggestionPriority = SuggestionPriority.medium
    id: str = Field(default_factory=generate_id)

    def trigger_domains(self) -> set[str]:
        return {trigger.split(":", 1)[0] for trigger in self.triggers}
