"""Message repository: the append-only session transcript."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

import aiosqlite

from src.domain.models.message import ConversationMessage, MessageRole


async def insert_message(
    db: aiosqlite.Connection, session_id: str, message: ConversationMessage
) -> ConversationMessage:
    """Insert ``message`` at the end of the session transcript on an open connection.

    Does not commit; callers own the transaction.
    """
    cursor = await db.execute(
        "SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE session_id = ?",
        (session_id,),
    )
    row = await cursor.fetchone()
    seq = row[0]
    message_id = message.id or str(uuid.uuid4())

    await db.execute(
        """INSERT INTO messages (id, session_id, seq, role, content, timestamp)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (
            message_id,
            session_id,
            seq,
            message.role.value,
            message.content,
            message.timestamp.isoformat(),
        ),
    )
    return message.model_copy(
        update={"id": message_id, "session_id": session_id, "seq": seq}
    )


class MessageRepository:
    """Repository for transcript reads and single appends."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def append(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        timestamp: Optional[datetime] = None,
    ) -> ConversationMessage:
        """Append one message to a session transcript.

        Args:
            session_id: Owning session
            role: Message author
            content: Message text
            timestamp: Creation time (now if omitted)

        Returns:
            Stored message with id and sequence number
        """
        message = ConversationMessage(
            role=role,
            content=content,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA foreign_keys = ON")
            stored = await insert_message(db, session_id, message)
            await db.commit()
            return stored

    async def list_for_session(self, session_id: str) -> List[ConversationMessage]:
        """Full transcript in append order."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM messages WHERE session_id = ? ORDER BY seq ASC",
                (session_id,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_message(row) for row in rows]

    async def count_for_session(self, session_id: str) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM messages WHERE session_id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            return row[0] if row else 0

    def _row_to_message(self, row: aiosqlite.Row) -> ConversationMessage:
        return ConversationMessage(
            id=row["id"],
            session_id=row["session_id"],
            seq=row["seq"],
            role=MessageRole(row["role"]),
            content=row["content"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )
