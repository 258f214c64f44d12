from context_recall.context.channel import SnapshotChannel, Subscriber
from context_recall.context.models import (
    ActivityContext,
    ContextSnapshot,
    ContextualSuggestion,
    DeviceContext,
    LocationContext,
    SuggestionPriority,
    TimeContext,
    UserContext,
    WeatherContext,
    time_of_day,
)

__all__ = [
    "ActivityContext",
    "ContextSnapshot",
    "ContextualSuggestion",
    "DeviceContext",
    "LocationContext",
    "SnapshotChannel",
    "Subscriber",
    "SuggestionPriority",
    "TimeContext",
    "UserContext",
    "WeatherContext",
    "time_of_day",
]
