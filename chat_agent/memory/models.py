"""Data models for the per-session memory store."""

from datetime import datetime

from pydantic import BaseModel


class MemoryEntry(BaseModel):
    """A single remembered value."""

    key: str
    value: str
    created_at: datetime
    updated_at: datetime

    def to_row(self, session_id: str) -> tuple:
        return (
            session_id,
            self.key,
            self.value,
            self.created_at.isoformat(),
            self.updated_at.isoformat(),
        )

    @classmethod
    def from_row(cls, row: tuple) -> "MemoryEntry":
        """Build from a ``(key, value, created_at, updated_at)`` row."""
        return cls(
            key=row[0],
            value=row[1],
            created_at=datetime.fromisoformat(row[2]),
            updated_at=datetime.fromisoformat(row[3]),
        )
