"""Turn log store abstractions with SQLite and in-memory implementations."""

from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from cartpilot.core.db import sqlite_connection

from .models import FunctionCallRequest, Role, TurnEntry


class TurnLogStore(ABC):
    """Append-only conversation log with snapshot reads."""

    @abstractmethod
    def append_entry(self, entry: TurnEntry) -> None:
        """Durably append a single entry before returning."""

    @abstractmethod
    def read_snapshot(self, conversation_id: str) -> list[TurnEntry]:
        """Return every entry of a conversation in chronological order."""

    @abstractmethod
    def fetch_recent(self, conversation_id: str, limit: int = 10) -> Sequence[TurnEntry]:
        """Return the most recent entries for a conversation."""

    @abstractmethod
    def reset(self, conversation_id: str, *, keep_system: bool = True) -> None:
        """Clear stored entries, optionally keeping the system prompt."""

    @abstractmethod
    def iter_conversations(self) -> Iterable[str]:
        """Iterate over known conversation identifiers."""


class InMemoryTurnLogStore(TurnLogStore):
    """Process-local store, used for tests and ephemeral deployments."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, list[TurnEntry]] = {}

    def append_entry(self, entry: TurnEntry) -> None:
        with self._lock:
            self._entries.setdefault(entry.conversation_id, []).append(entry)

    def read_snapshot(self, conversation_id: str) -> list[TurnEntry]:
        with self._lock:
            return list(self._entries.get(conversation_id, []))

    def fetch_recent(self, conversation_id: str, limit: int = 10) -> Sequence[TurnEntry]:
        return self.read_snapshot(conversation_id)[-limit:]

    def reset(self, conversation_id: str, *, keep_system: bool = True) -> None:
        with self._lock:
            entries = self._entries.get(conversation_id, [])
            kept = [entry for entry in entries if keep_system and entry.role is Role.SYSTEM][:1]
            if kept:
                self._entries[conversation_id] = kept
            else:
                self._entries.pop(conversation_id, None)

    def iter_conversations(self) -> Iterable[str]:
        with self._lock:
            return sorted(self._entries)


class SQLiteTurnLogStore(TurnLogStore):
    """SQLite-backed turn log. Each append commits before returning."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create required tables if they do not exist."""

        with sqlite_connection(self.db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY
                );

                CREATE TABLE IF NOT EXISTS entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT,
                    name TEXT,
                    function_call TEXT,
                    function_result TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (conversation_id) REFERENCES conversations (conversation_id)
                        ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_entries_conversation
                    ON entries (conversation_id, id);
                """
            )

    def append_entry(self, entry: TurnEntry) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO conversations(conversation_id) VALUES (?)",
                (entry.conversation_id,),
            )
            conn.execute(
                """
                INSERT INTO entries (
                    conversation_id, role, content, name, function_call, function_result, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.conversation_id,
                    entry.role.value,
                    entry.content,
                    entry.name,
                    json_dumps(entry.function_call.to_dict()) if entry.function_call else None,
                    json_dumps(entry.function_result) if entry.is_function_result else None,
                    entry.created_at.isoformat(),
                ),
            )

    def read_snapshot(self, conversation_id: str) -> list[TurnEntry]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT conversation_id, role, content, name, function_call, function_result, created_at
                FROM entries
                WHERE conversation_id = ?
                ORDER BY id ASC
                """,
                (conversation_id,),
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def fetch_recent(self, conversation_id: str, limit: int = 10) -> Sequence[TurnEntry]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT conversation_id, role, content, name, function_call, function_result, created_at
                FROM entries
                WHERE conversation_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            ).fetchall()

        entries = [_row_to_entry(row) for row in rows]
        entries.reverse()
        return entries

    def reset(self, conversation_id: str, *, keep_system: bool = True) -> None:
        with sqlite_connection(self.db_path) as conn:
            if keep_system:
                first_system = conn.execute(
                    "SELECT MIN(id) AS id FROM entries WHERE conversation_id = ? AND role = ?",
                    (conversation_id, Role.SYSTEM.value),
                ).fetchone()
                if first_system and first_system["id"] is not None:
                    conn.execute(
                        "DELETE FROM entries WHERE conversation_id = ? AND id != ?",
                        (conversation_id, first_system["id"]),
                    )
                    return
            conn.execute("DELETE FROM entries WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,))

    def iter_conversations(self) -> Iterable[str]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute("SELECT conversation_id FROM conversations ORDER BY conversation_id")
            return [row["conversation_id"] for row in rows]


def _row_to_entry(row: Any) -> TurnEntry:
    function_call = None
    if row["function_call"]:
        raw_call = json_loads(row["function_call"])
        function_call = FunctionCallRequest(name=raw_call["name"], arguments=raw_call.get("arguments", "{}"))

    role = Role(row["role"])
    return TurnEntry(
        conversation_id=row["conversation_id"],
        role=role,
        content=row["content"],
        name=row["name"],
        function_call=function_call,
        function_result=json_loads(row["function_result"]) if row["function_result"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), default=str)


def json_loads(value: str) -> Any:
    return json.loads(value)
