"""Label texts embedded once per process for semantic scoring."""

from __future__ import annotations

from collections.abc import Iterable

# One descriptive paragraph per context domain.  The query embedding is
# compared against these to produce semantic domain confidence.
DOMAIN_INTENTS: dict[str, str] = {
    "time": (
        "What time is it? What's the date today? What day of the week is it? "
        "Is it morning, afternoon or evening? How late is it? current time clock "
        "date calendar schedule today tomorrow tonight"
    ),
    "location": (
        "Where am I? What city am I in? What is near me? What's my address? "
        "What neighborhood is this? nearby places local area directions "
        "location country region here"
    ),
    "weather": (
        "What's the weather like? Is it going to rain? How hot is it outside? "
        "What's the temperature? Do I need an umbrella or a jacket? forecast "
        "sunny cloudy windy humidity cold warm"
    ),
    "user": (
        "What's my name? How old am I? When is my birthday? Tell me about "
        "myself. What do you know about me? my profile my preferences my "
        "personal details"
    ),
    "activity": (
        "What have I been doing? What apps am I using? How long have I been "
        "active? What am I working on? my recent activity session dashboard "
        "open apps usage"
    ),
    "device": (
        "What device am I on? How much battery do I have? Am I online? What "
        "browser or operating system is this? screen size network connection "
        "phone laptop tablet"
    ),
}


def build_intent_text(
    name: str,
    keywords: Iterable[str],
    example_queries: Iterable[str],
) -> str:
    """Fold an app's example queries and keywords into one label text."""
    examples = [*example_queries, *(f"{keyword} app" for keyword in keywords)]
    return " | ".join(examples) + f"\n[Intent: {name}]"
