from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from context_recall.apps.base import AppAdapter, AppContextData
from context_recall.models.utils import generate_id, utcnow

_ACTIVE_WINDOW = timedelta(minutes=30)
_PREVIEW_CHARS = 60


@dataclass
class Note:
    content: str
    tags: tuple[str, ...] = ()
    is_task: bool = False
    completed: bool = False
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utcnow)


class NotesAdapter(AppAdapter):
    """Notes, ideas and lightweight tasks."""

    app_name = "notes"
    display_name = "Notes"
    example_queries = (
        "Show me my notes",
        "What notes do I have?",
        "Find my notes about the meeting",
        "Show me my recent ideas",
        "What did I write yesterday?",
        "Search my notes for project ideas",
        "Show me my saved reminders",
        "Count my notes",
        "List my tasks",
        "retrieve notes not note-taking advice",
    )

    def __init__(self, notes: list[Note] | None = None) -> None:
        self._notes: list[Note] = list(notes or [])

    @property
    def notes(self) -> list[Note]:
        return list(self._notes)

    def add_note(self, content: str, *, tags: tuple[str, ...] = (), is_task: bool = False) -> Note:
        note = Note(content=content, tags=tags, is_task=is_task)
        self._notes.append(note)
        return note

    def get_keywords(self) -> list[str]:
        return [
            "note",
            "notes",
            "task",
            "tasks",
            "todo",
            "todos",
            "idea",
            "ideas",
            "journal",
            "wrote",
            "written",
            "jotted",
            "reminder",
            "memo",
            "notebook",
        ]

    def get_context_data(self) -> AppContextData:
        now = utcnow()
        tasks = [n for n in self._notes if n.is_task]
        open_tasks = [t for t in tasks if not t.completed]
        tags = sorted({tag for n in self._notes for tag in n.tags})
        last_used = max((n.created_at for n in self._notes), default=None)
        return AppContextData(
            app_name=self.app_name,
            display_name=self.display_name,
            is_active=last_used is not None and now - last_used < _ACTIVE_WINDOW,
            summary=self._summary(open_tasks, tags),
            capabilities=("note-taking", "task-management", "idea-capture", "tag-organization"),
            last_used=last_used,
            data={
                "total_notes": len(self._notes),
                "open_tasks": len(open_tasks),
                "tags": tags,
            },
        )

    def _summary(self, open_tasks: list[Note], tags: list[str]) -> str:
        if not self._notes:
            return "No notes yet"
        parts = [f"{len(self._notes)} notes"]
        if open_tasks:
            parts.append(f"{len(open_tasks)} open tasks")
        if tags:
            parts.append(f"tags: {', '.join(tags[:5])}")
        latest = max(self._notes, key=lambda n: n.created_at)
        parts.append(f'latest: "{latest.content[:_PREVIEW_CHARS]}"')
        return ", ".join(parts)

    async def get_response(self, query: str) -> str:
        words = {w for w in query.lower().split() if len(w) > 3} - set(self.get_keywords())
        matches = [
            n
            for n in self._notes
            if any(w in n.content.lower() or w in n.tags for w in words)
        ]
        if not matches:
            return self.get_context_data().summary
        lines = [f"- {n.content[:_PREVIEW_CHARS]}" for n in matches[-5:]]
        return f"Found {len(matches)} matching notes:\n" + "\n".join(lines)
