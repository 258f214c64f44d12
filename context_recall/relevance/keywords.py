"""Trigger tables for keyword relevance.

Every weight is non-negative, so adding triggers to a query can only raise
a domain's score.  Keys containing a space match as whole phrases.
"""

from __future__ import annotations

DOMAINS: tuple[str, ...] = ("time", "location", "weather", "user", "activity", "device")

TRIGGERS: dict[str, dict[str, float]] = {
    "time": {
        "time": 0.35,
        "clock": 0.35,
        "date": 0.35,
        "hour": 0.2,
        "when": 0.2,
        "today": 0.25,
        "now": 0.25,
        "tonight": 0.25,
        "tomorrow": 0.25,
        "yesterday": 0.2,
        "morning": 0.2,
        "afternoon": 0.2,
        "evening": 0.2,
        "night": 0.15,
        "schedule": 0.2,
        "week": 0.15,
        "weekend": 0.2,
        "late": 0.15,
        "early": 0.15,
        "current": 0.1,
        "what time": 0.6,
        "what's the time": 0.6,
        "current time": 0.6,
        "time is it": 0.6,
        "what day": 0.5,
        "what's the date": 0.6,
    },
    "location": {
        "where": 0.35,
        "location": 0.4,
        "here": 0.15,
        "near": 0.3,
        "nearby": 0.35,
        "local": 0.3,
        "around": 0.15,
        "area": 0.2,
        "city": 0.35,
        "place": 0.2,
        "address": 0.4,
        "map": 0.3,
        "directions": 0.35,
        "distance": 0.3,
        "travel": 0.2,
        "neighborhood": 0.35,
        "where am i": 0.7,
        "near me": 0.5,
        "around here": 0.4,
    },
    "weather": {
        "weather": 0.5,
        "temperature": 0.45,
        "forecast": 0.45,
        "hot": 0.3,
        "cold": 0.3,
        "warm": 0.3,
        "cool": 0.2,
        "rain": 0.4,
        "raining": 0.4,
        "sunny": 0.35,
        "cloudy": 0.35,
        "snow": 0.4,
        "wind": 0.3,
        "windy": 0.35,
        "humid": 0.3,
        "humidity": 0.35,
        "outside": 0.2,
        "outdoor": 0.2,
        "umbrella": 0.4,
        "coat": 0.25,
        "jacket": 0.25,
        "going to rain": 0.6,
        "what to wear": 0.4,
    },
    "user": {
        "my": 0.1,
        "myself": 0.35,
        "name": 0.3,
        "birthday": 0.4,
        "age": 0.3,
        "personal": 0.3,
        "profile": 0.35,
        "account": 0.3,
        "preferences": 0.3,
        "settings": 0.2,
        "remember": 0.2,
        "my name": 0.6,
        "who am i": 0.6,
        "about me": 0.4,
        "my birthday": 0.5,
    },
    "activity": {
        "doing": 0.3,
        "activity": 0.4,
        "working": 0.25,
        "using": 0.25,
        "busy": 0.25,
        "dashboard": 0.35,
        "app": 0.25,
        "apps": 0.3,
        "feature": 0.2,
        "session": 0.3,
        "open": 0.15,
        "what am i doing": 0.6,
        "working on": 0.4,
    },
    "device": {
        "device": 0.45,
        "battery": 0.5,
        "charging": 0.4,
        "phone": 0.3,
        "laptop": 0.3,
        "tablet": 0.3,
        "browser": 0.4,
        "screen": 0.3,
        "online": 0.3,
        "offline": 0.35,
        "connection": 0.3,
        "wifi": 0.35,
        "network": 0.3,
        "operating system": 0.5,
    },
}
