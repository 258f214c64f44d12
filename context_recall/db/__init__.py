from context_recall.db.models import Base, KeyValueEntry, TimeStampMixin

__all__ = ["Base", "KeyValueEntry", "TimeStampMixin"]
