"""Session repository for database operations.

Writes that belong to one logical step (session creation with its opening
transcript, a turn, the session end) run in a single transaction, so a
failure or cancellation leaves either all of the step's rows or none.
"""

from datetime import datetime
from typing import List, Optional, Sequence

import aiosqlite
import structlog

from src.core.exceptions import SessionCompletedError, SessionNotFoundError
from src.domain.models.message import ConversationMessage
from src.domain.models.phase import TherapyPhase
from src.domain.models.session import (
    ContinuityStatus,
    SessionMetrics,
    SessionSummary,
    TherapySession,
)
from src.domain.models.therapy_method import TherapyMethod
from src.persistence.repositories.message_repo import insert_message

log = structlog.get_logger(__name__)


class SessionRepository:
    """Repository for session CRUD operations."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def create(
        self,
        session: TherapySession,
        messages: Sequence[ConversationMessage] = (),
    ) -> TherapySession:
        """Create a new session, optionally with its first transcript entries."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            try:
                await db.execute("BEGIN IMMEDIATE")
                await db.execute(
                    """INSERT INTO sessions (
                        id, profile_id, therapy_method, session_number,
                        continuity_status, start_time, end_time, current_phase,
                        phase_turn_count, llm_provider, llm_model, summary,
                        metrics, is_completed
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        session.id,
                        session.profile_id,
                        session.therapy_method.value,
                        session.session_number,
                        session.continuity_status.value,
                        session.start_time.isoformat(),
                        session.end_time.isoformat() if session.end_time else None,
                        session.current_phase.value,
                        session.phase_turn_count,
                        session.llm_provider,
                        session.llm_model,
                        session.summary.model_dump_json() if session.summary else None,
                        session.metrics.model_dump_json(),
                        1 if session.is_completed else 0,
                    ),
                )
                for message in messages:
                    await insert_message(db, session.id, message)
                await db.commit()
            except BaseException:
                await db.rollback()
                raise

            cursor = await db.execute(
                "SELECT * FROM sessions WHERE id = ?", (session.id,)
            )
            row = await cursor.fetchone()
            if not row:
                raise ValueError(f"Session {session.id} not found after creation")
            return self._row_to_session(row)

    async def get(self, session_id: str) -> Optional[TherapySession]:
        """Get a session by ID."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return self._row_to_session(row)

    async def list_by_profile(self, profile_id: str) -> List[TherapySession]:
        """All sessions of a profile, newest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE profile_id = ? ORDER BY start_time DESC",
                (profile_id,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_session(row) for row in rows]

    async def update_phase(
        self, session_id: str, phase: TherapyPhase, phase_turn_count: int = 0
    ) -> None:
        """Overwrite the stored phase metadata."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "UPDATE sessions SET current_phase = ?, phase_turn_count = ? WHERE id = ?",
                (phase.value, phase_turn_count, session_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise SessionNotFoundError(f"Session {session_id} not found")

    async def commit_turn(
        self,
        session_id: str,
        messages: Sequence[ConversationMessage],
        phase: TherapyPhase,
        phase_turn_count: int,
    ) -> List[ConversationMessage]:
        """
        Persist one turn: its messages and the resulting phase state.

        Args:
            session_id: Session the turn belongs to
            messages: Messages to append, in order (user, then assistant)
            phase: Phase after the turn
            phase_turn_count: User turns spent in ``phase`` after the turn

        Returns:
            Stored messages with ids and sequence numbers

        Raises:
            SessionNotFoundError: Session was deleted while the turn ran
            SessionCompletedError: Session was ended while the turn ran
        """
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA foreign_keys = ON")
            try:
                await db.execute("BEGIN IMMEDIATE")
                await self._check_open(db, session_id)

                stored = [await insert_message(db, session_id, m) for m in messages]
                await db.execute(
                    "UPDATE sessions SET current_phase = ?, phase_turn_count = ? WHERE id = ?",
                    (phase.value, phase_turn_count, session_id),
                )
                await db.commit()
            except BaseException:
                await db.rollback()
                raise

        log.debug(
            "turn_committed",
            session_id=session_id,
            message_count=len(stored),
            phase=phase.value,
            phase_turn_count=phase_turn_count,
        )
        return stored

    async def end_session(
        self,
        session_id: str,
        summary: SessionSummary,
        metrics: SessionMetrics,
        end_time: datetime,
        messages: Sequence[ConversationMessage] = (),
    ) -> TherapySession:
        """
        Mark a session completed with its summary, metrics and closing messages.

        Raises:
            SessionNotFoundError: Session does not exist
            SessionCompletedError: Session already ended
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            try:
                await db.execute("BEGIN IMMEDIATE")
                await self._check_open(db, session_id)

                for message in messages:
                    await insert_message(db, session_id, message)
                await db.execute(
                    """UPDATE sessions SET
                        summary = ?, metrics = ?, end_time = ?,
                        current_phase = ?, phase_turn_count = 0, is_completed = 1
                       WHERE id = ?""",
                    (
                        summary.model_dump_json(),
                        metrics.model_dump_json(),
                        end_time.isoformat(),
                        TherapyPhase.END.value,
                        session_id,
                    ),
                )
                await db.commit()
            except BaseException:
                await db.rollback()
                raise

            cursor = await db.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            return self._row_to_session(row)

    async def delete(self, session_id: str) -> bool:
        """Delete a session and its transcript. Returns True if deleted."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA foreign_keys = ON")
            cursor = await db.execute(
                "DELETE FROM sessions WHERE id = ?", (session_id,)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def _check_open(self, db: aiosqlite.Connection, session_id: str) -> None:
        cursor = await db.execute(
            "SELECT is_completed FROM sessions WHERE id = ?", (session_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        if row[0]:
            raise SessionCompletedError(f"Session {session_id} is already completed")

    def _row_to_session(self, row: aiosqlite.Row) -> TherapySession:
        """Convert a database row to a TherapySession model."""
        return TherapySession(
            id=row["id"],
            profile_id=row["profile_id"],
            therapy_method=TherapyMethod(row["therapy_method"]),
            session_number=row["session_number"],
            continuity_status=ContinuityStatus(row["continuity_status"]),
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"])
            if row["end_time"]
            else None,
            current_phase=TherapyPhase(row["current_phase"]),
            phase_turn_count=row["phase_turn_count"],
            llm_provider=row["llm_provider"],
            llm_model=row["llm_model"],
            summary=SessionSummary.model_validate_json(row["summary"])
            if row["summary"]
            else None,
            metrics=SessionMetrics.model_validate_json(row["metrics"] or "{}"),
            is_completed=bool(row["is_completed"]),
        )
