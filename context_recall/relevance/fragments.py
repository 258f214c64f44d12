"""Short labeled text blocks rendered from a context snapshot."""

from __future__ import annotations

from collections.abc import Callable

from context_recall.context.models import ContextSnapshot

Renderer = Callable[[ContextSnapshot], str]


def render_time(snapshot: ContextSnapshot) -> str:
    t = snapshot.time
    text = f"Time: {t.current_time} on {t.current_date} ({t.day_of_week})"
    if t.time_of_day:
        text += f"\nTime of day: {t.time_of_day}"
    timezone = t.timezone or snapshot.location.timezone
    if timezone:
        text += f"\nTimezone: {timezone}"
    return text


def render_location(snapshot: ContextSnapshot) -> str:
    loc = snapshot.location
    lines = []
    if loc.label:
        lines.append(f"Location: {loc.label}")
    if loc.address:
        lines.append(f"Address: {loc.address}")
    if loc.latitude is not None and loc.longitude is not None:
        coords = f"Coordinates: {loc.latitude:.4f}, {loc.longitude:.4f}"
        if loc.accuracy_m is not None:
            coords += f" (±{round(loc.accuracy_m)}m)"
        lines.append(coords)
    return "\n".join(lines)


def render_weather(snapshot: ContextSnapshot) -> str:
    w = snapshot.weather
    lines = []
    if w.temperature is not None:
        line = f"Weather: {w.temperature:g}°{w.unit_symbol}"
        if w.feels_like is not None:
            line += f" (feels like {w.feels_like:g}°{w.unit_symbol})"
        lines.append(line)
    if w.description:
        lines.append(f"Conditions: {w.description}")
    if w.humidity is not None:
        lines.append(f"Humidity: {w.humidity:g}%")
    if w.wind_speed is not None:
        lines.append(f"Wind: {w.wind_speed:g} {'mph' if w.unit == 'fahrenheit' else 'km/h'}")
    return "\n".join(lines)


def render_user(snapshot: ContextSnapshot) -> str:
    u = snapshot.user
    lines = [f"User: {u.name}"]
    if u.birthday:
        lines.append(f"Birthday: {u.birthday}")
    if u.member_since:
        lines.append(f"Member since: {u.member_since}")
    minutes = snapshot.activity.time_spent_in_session_ms // 60_000
    lines.append(f"Session time: {minutes} minutes")
    return "\n".join(lines)


def render_activity(snapshot: ContextSnapshot) -> str:
    a = snapshot.activity
    lines = []
    if a.active_components:
        lines.append(f"Active features: {', '.join(a.active_components)}")
    if a.recent_actions:
        lines.append(f"Recent actions: {', '.join(a.recent_actions[-3:])}")
    return "\n".join(lines)


def render_device(snapshot: ContextSnapshot) -> str:
    d = snapshot.device
    details = ", ".join(part for part in (d.os, d.browser) if part)
    line = f"Device: {d.device_type or 'unknown'}"
    if details:
        line += f" ({details})"
    lines = [line]
    if d.screen:
        lines.append(f"Screen: {d.screen}")
    if d.battery_level is not None:
        charging = ", charging" if d.is_charging else ""
        lines.append(f"Battery: {d.battery_level}%{charging}")
    lines.append(f"Connection: {'online' if d.online else 'offline'}")
    return "\n".join(lines)


# Render order is priority order; the tail is dropped first under budget.
RENDERERS: dict[str, Renderer] = {
    "time": render_time,
    "location": render_location,
    "weather": render_weather,
    "user": render_user,
    "activity": render_activity,
    "device": render_device,
}


def _is_notable(temperature: float, unit: str) -> bool:
    if unit == "fahrenheit":
        return temperature < 40 or temperature > 80
    return temperature < 5 or temperature > 27


def create_context_summary(snapshot: ContextSnapshot) -> str:
    """One-line summary used as the context tag of a marked memory."""
    parts: list[str] = []
    t = snapshot.time
    if t.time_of_day and t.day_of_week:
        parts.append(f"{t.time_of_day} on {t.day_of_week}")
    elif t.day_of_week:
        parts.append(t.day_of_week)
    if snapshot.location.city:
        parts.append(f"in {snapshot.location.city}")
    w = snapshot.weather
    if w.has_data and w.temperature is not None and _is_notable(w.temperature, w.unit):
        parts.append(f"{w.temperature:g}°{w.unit_symbol} weather")
    if snapshot.activity.active_components:
        parts.append(f"using {', '.join(snapshot.activity.active_components)}")
    if not parts:
        return ""
    return f"Context: {', '.join(parts)}"
