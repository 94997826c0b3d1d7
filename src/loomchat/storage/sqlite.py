"""SQLite chat storage backend.

Provides persistent thread and message storage using a SQLite database.
Uses aiosqlite for async access.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..config import DEFAULT_DB_PATH
from ..errors import MessageNotFoundError, ThreadNotFoundError
from .base import ChatStore
from .models import Message, Role, Thread, clean_metrics, utc_now

logger = logging.getLogger(__name__)

_MESSAGE_COLUMNS = """
    id, thread_id, role, content, images, model, created_at, reply_to_id,
    thinking_process, total_duration, load_duration, prompt_eval_count,
    eval_count, eval_duration, tokens_per_second
"""


class SQLiteChatStore(ChatStore):
    """SQLite-backed chat storage.

    Stores threads and messages in a SQLite database file.
    Supports persistent storage across sessions.
    """

    def __init__(self, path: str | Path = DEFAULT_DB_PATH):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("SQLiteChatStore is not connected; call connect() first")
        return self._connection

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()
        logger.debug("Opened chat database at %s", self._db_path)

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS threads (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                created_at TEXT NOT NULL,
                system_prompt TEXT,
                is_archived INTEGER NOT NULL DEFAULT 0
            )
        """)

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                thread_id INTEGER NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                images TEXT,
                model TEXT,
                created_at TEXT NOT NULL,
                reply_to_id INTEGER,
                thinking_process TEXT,
                total_duration INTEGER,
                load_duration INTEGER,
                prompt_eval_count INTEGER,
                eval_count INTEGER,
                eval_duration INTEGER,
                tokens_per_second REAL,
                FOREIGN KEY (thread_id) REFERENCES threads(id) ON DELETE CASCADE,
                FOREIGN KEY (reply_to_id) REFERENCES messages(id) ON DELETE SET NULL
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_thread
            ON messages(thread_id, created_at, id)
        """)

        await self._conn.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @staticmethod
    def _row_to_thread(row: tuple) -> Thread:
        thread_id, title, created_at, system_prompt, is_archived = row
        return Thread(
            id=thread_id,
            title=title,
            created_at=datetime.fromisoformat(created_at),
            system_prompt=system_prompt,
            is_archived=bool(is_archived),
        )

    @staticmethod
    def _row_to_message(row: tuple) -> Message:
        (message_id, thread_id, role, content, images_json, model, created_at,
         reply_to_id, thinking_process, total_duration, load_duration,
         prompt_eval_count, eval_count, eval_duration, tokens_per_second) = row
        images = json.loads(images_json) if images_json else None
        return Message(
            id=message_id,
            thread_id=thread_id,
            role=role,
            content=content,
            images=images or None,
            model=model,
            created_at=datetime.fromisoformat(created_at),
            reply_to_id=reply_to_id,
            thinking_process=thinking_process,
            total_duration=total_duration,
            load_duration=load_duration,
            prompt_eval_count=prompt_eval_count,
            eval_count=eval_count,
            eval_duration=eval_duration,
            tokens_per_second=tokens_per_second,
        )

    async def create_thread(self, title: str, system_prompt: str | None = None) -> Thread:
        now = utc_now()
        cursor = await self._conn.execute(
            "INSERT INTO threads (title, created_at, system_prompt, is_archived) VALUES (?, ?, ?, 0)",
            (title, now.isoformat(), system_prompt)
        )
        await self._conn.commit()
        return Thread(id=cursor.lastrowid, title=title, created_at=now, system_prompt=system_prompt)

    async def get_thread(self, thread_id: int) -> Thread:
        async with self._conn.execute(
            "SELECT id, title, created_at, system_prompt, is_archived FROM threads WHERE id = ?",
            (thread_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            raise ThreadNotFoundError(thread_id)
        return self._row_to_thread(row)

    async def list_threads(self, include_archived: bool = False) -> list[Thread]:
        query = "SELECT id, title, created_at, system_prompt, is_archived FROM threads"
        if not include_archived:
            query += " WHERE is_archived = 0"
        query += " ORDER BY created_at DESC, id DESC"

        async with self._conn.execute(query) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_thread(row) for row in rows]

    async def _update_thread(self, thread_id: int, column: str, value) -> None:
        cursor = await self._conn.execute(
            f"UPDATE threads SET {column} = ? WHERE id = ?",
            (value, thread_id)
        )
        await self._conn.commit()
        if cursor.rowcount == 0:
            raise ThreadNotFoundError(thread_id)

    async def rename_thread(self, thread_id: int, title: str) -> None:
        await self._update_thread(thread_id, "title", title)

    async def archive_thread(self, thread_id: int) -> None:
        await self._update_thread(thread_id, "is_archived", 1)

    async def delete_thread(self, thread_id: int) -> None:
        await self._conn.execute("DELETE FROM messages WHERE thread_id = ?", (thread_id,))
        await self._conn.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
        await self._conn.commit()

    async def add_message(
        self,
        thread_id: int,
        role: Role | str,
        content: str,
        images: list[str] | None = None,
        model: str | None = None,
        reply_to_id: int | None = None,
        metrics: dict[str, Any] | None = None,
    ) -> Message:
        await self.get_thread(thread_id)

        # Keep created_at non-decreasing within the thread
        created_at = utc_now()
        async with self._conn.execute(
            "SELECT MAX(created_at) FROM messages WHERE thread_id = ?",
            (thread_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row and row[0]:
            latest = datetime.fromisoformat(row[0])
            if latest > created_at:
                created_at = latest

        role_value = role.value if isinstance(role, Role) else role
        images_json = json.dumps(images) if images else None
        extra = clean_metrics(metrics)

        columns = ["thread_id", "role", "content", "images", "model", "created_at", "reply_to_id"]
        values = [thread_id, role_value, content, images_json, model, created_at.isoformat(), reply_to_id]
        columns.extend(extra)
        values.extend(extra.values())

        cursor = await self._conn.execute(
            f"INSERT INTO messages ({', '.join(columns)}) VALUES ({', '.join('?' * len(values))})",
            values
        )
        await self._conn.commit()

        return Message(
            id=cursor.lastrowid,
            thread_id=thread_id,
            role=role_value,
            content=content,
            images=images or None,
            model=model,
            created_at=created_at,
            reply_to_id=reply_to_id,
            **extra,
        )

    async def list_messages(self, thread_id: int) -> list[Message]:
        async with self._conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE thread_id = ?
            ORDER BY created_at ASC, id ASC
            """,
            (thread_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def update_message(self, thread_id: int, message_id: int, content: str) -> None:
        cursor = await self._conn.execute(
            "UPDATE messages SET content = ? WHERE id = ? AND thread_id = ?",
            (content, message_id, thread_id)
        )
        await self._conn.commit()
        if cursor.rowcount == 0:
            raise MessageNotFoundError(thread_id, message_id)

    async def delete_messages_from(self, thread_id: int, message_id: int) -> int:
        cursor = await self._conn.execute(
            "DELETE FROM messages WHERE thread_id = ? AND id >= ?",
            (thread_id, message_id)
        )
        await self._conn.commit()
        return cursor.rowcount

    async def delete_messages_after(self, thread_id: int, message_id: int) -> int:
        cursor = await self._conn.execute(
            "DELETE FROM messages WHERE thread_id = ? AND id > ?",
            (thread_id, message_id)
        )
        await self._conn.commit()
        return cursor.rowcount

    async def delete_last_message(self, thread_id: int) -> Message | None:
        async with self._conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE thread_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (thread_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        message = self._row_to_message(row)
        await self._conn.execute("DELETE FROM messages WHERE id = ?", (message.id,))
        await self._conn.commit()
        return message

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
