"""Append-only activity log shown on the dashboard."""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

from wpdock.redact import redact_secrets

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1000


@dataclass
class Activity:
    message: str
    timestamp: str
    level: str = "info"
    project_name: str | None = None

    def to_dict(self) -> dict:
        data = {"message": self.message, "timestamp": self.timestamp, "level": self.level}
        if self.project_name:
            data["projectName"] = self.project_name
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Activity":
        return cls(
            message=data.get("message") or data.get("action", ""),
            timestamp=data.get("timestamp", ""),
            level=data.get("level", "info"),
            project_name=data.get("projectName"),
        )


class ActivityLog:
    """Activities in append order, newest last.

    With ``path=None`` entries live in memory only. The file is trimmed to
    the newest ``max_entries`` records on every write.
    """

    def __init__(self, path=None, max_entries=DEFAULT_MAX_ENTRIES):
        self.path = path
        self.max_entries = max_entries
        self._entries: list[Activity] = []
        self._lock = asyncio.Lock()

    def _load(self):
        if self.path is None:
            return list(self._entries)
        if not os.path.exists(self.path):
            return []
        with open(self.path) as f:
            raw = f.read()
        if not raw.strip():
            return []
        return [Activity.from_dict(r) for r in json.loads(raw)]

    def _save(self, entries):
        if self.path is None:
            self._entries = entries
            return
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump([a.to_dict() for a in entries], f, indent=2)
            f.write("\n")
        os.replace(tmp_path, self.path)

    async def record(self, message, level="info", project=None) -> Activity:
        """Append one entry, timestamped now."""
        activity = Activity(
            message=redact_secrets(message),
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            level=level,
            project_name=project,
        )
        async with self._lock:
            try:
                entries = self._load()
                entries.append(activity)
                self._save(entries[-self.max_entries:])
            except (OSError, ValueError) as e:
                # Activity reporting never fails the operation that triggered it
                logger.error(f"Failed to record activity {activity.message!r}: {e}")
        return activity

    async def list(self, limit=None) -> list[Activity]:
        """All entries oldest first, or only the newest ``limit`` when given."""
        async with self._lock:
            entries = self._load()
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries
