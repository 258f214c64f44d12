from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from context_recall.apps.base import AppAdapter, AppContextData
from context_recall.models.utils import utcnow


@dataclass
class Habit:
    name: str
    check_ins: set[date] = field(default_factory=set)

    def check_in(self, day: date) -> None:
        self.check_ins.add(day)

    def current_streak(self, today: date) -> int:
        """Consecutive days ending today (or yesterday if not yet checked in)."""
        day = today if today in self.check_ins else today - timedelta(days=1)
        streak = 0
        while day in self.check_ins:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def longest_streak(self) -> int:
        longest = run = 0
        previous: date | None = None
        for day in sorted(self.check_ins):
            run = run + 1 if previous and day - previous == timedelta(days=1) else 1
            longest = max(longest, run)
            previous = day
        return longest


class HabitsAdapter(AppAdapter):
    """Habit streak tracker."""

    app_name = "habits"
    display_name = "Habit Streaks"
    example_queries = (
        "What are my habits?",
        "Show me my streaks",
        "What's my longest streak?",
        "Did I check in today?",
        "Show me my daily progress",
        "How many perfect days do I have?",
        "What's my gym streak?",
        "track habits not workout advice",
    )

    def __init__(self, habits: list[Habit] | None = None) -> None:
        self._habits: dict[str, Habit] = {h.name: h for h in habits or []}

    def add_habit(self, name: str) -> Habit:
        return self._habits.setdefault(name, Habit(name=name))

    def check_in(self, name: str, day: date | None = None) -> Habit:
        habit = self.add_habit(name)
        habit.check_in(day or utcnow().date())
        return habit

    def get_keywords(self) -> list[str]:
        return [
            "habit",
            "habits",
            "streak",
            "streaks",
            "check in",
            "checked in",
            "daily",
            "routine",
            "perfect day",
        ]

    def get_context_data(self) -> AppContextData:
        today = utcnow().date()
        done_today = [h.name for h in self._habits.values() if today in h.check_ins]
        streaks = {h.name: h.current_streak(today) for h in self._habits.values()}
        return AppContextData(
            app_name=self.app_name,
            display_name=self.display_name,
            is_active=bool(done_today),
            summary=self._summary(today, done_today, streaks),
            capabilities=("habit-tracking", "streak-counting", "daily-check-ins"),
            data={
                "habits": sorted(self._habits),
                "checked_in_today": done_today,
                "streaks": streaks,
            },
        )

    def _summary(self, today: date, done_today: list[str], streaks: dict[str, int]) -> str:
        if not self._habits:
            return "No habits tracked"
        parts = [
            f"{len(self._habits)} habits",
            f"{len(done_today)}/{len(self._habits)} checked in today",
        ]
        best = max(streaks.items(), key=lambda item: item[1])
        if best[1]:
            parts.append(f"best current streak: {best[0]} ({best[1]} days)")
        return ", ".join(parts)

    async def get_response(self, query: str) -> str:
        today = utcnow().date()
        lowered = query.lower()
        named = [h for name, h in self._habits.items() if name.lower() in lowered]
        if not named:
            return self.get_context_data().summary
        return "\n".join(
            f"{h.name}: current streak {h.current_streak(today)} days, "
            f"longest {h.longest_streak()} days"
            for h in named
        )
