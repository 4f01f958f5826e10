"""Persisted bot settings that are changed from chat.

The record is loaded once at startup and written once on shutdown. Between
those points every read and write goes through :class:`BotStateStore`, which
serialises access with a single lock.
"""

from __future__ import annotations

import dataclasses
import json
import threading
from pathlib import Path
from typing import Any, Optional

from .utils import atomic_write


class StateFileError(Exception):
    """Raised when the state file cannot be read, parsed, or written."""


@dataclasses.dataclass(frozen=True)
class BotData:
    pr_channel: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.pr_channel is not None:
            payload["pr_channel"] = self.pr_channel
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "BotData":
        if not isinstance(payload, dict):
            raise ValueError("state must be a JSON object")
        raw_channel = payload.get("pr_channel")
        if raw_channel is None:
            return cls()
        # Older records may hold the snowflake as a bare integer.
        if isinstance(raw_channel, int) and not isinstance(raw_channel, bool):
            raw_channel = str(raw_channel)
        if not isinstance(raw_channel, str) or not raw_channel.strip():
            raise ValueError(f"pr_channel must be a channel id, got {raw_channel!r}")
        return cls(pr_channel=raw_channel)


class BotStateStore:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._data = BotData()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> BotData:
        with self._lock:
            return self._data

    def set_pr_channel(self, channel_id: str) -> BotData:
        if not channel_id.strip():
            raise ValueError("pr_channel must be a non-empty channel id")
        updated = BotData(pr_channel=channel_id)
        with self._lock:
            self._data = updated
        return updated

    def load(self) -> BotData:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            data = BotData()
        except (OSError, UnicodeDecodeError) as exc:
            raise StateFileError(
                f"Failed to read state file {self._path}: {exc}"
            ) from exc
        else:
            try:
                data = BotData.from_dict(json.loads(raw))
            except ValueError as exc:
                # json.JSONDecodeError is a ValueError too.
                raise StateFileError(
                    f"Corrupt state file {self._path}: {exc}"
                ) from exc
        with self._lock:
            self._data = data
        return data

    def save(self, data: Optional[BotData] = None) -> None:
        snapshot = data if data is not None else self.get()
        content = json.dumps(snapshot.to_dict(), indent=2, sort_keys=True) + "\n"
        try:
            atomic_write(self._path, content, durable=True)
        except OSError as exc:
            raise StateFileError(
                f"Failed to write state file {self._path}: {exc}"
            ) from exc
