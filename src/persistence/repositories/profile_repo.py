"""Profile repository for database operations.

Profiles are read-only to the session flow; ``create`` exists for seeding
and tests.
"""

import json
from datetime import datetime
from typing import Optional

import aiosqlite

from src.domain.models.profile import (
    Challenge,
    EmotionalState,
    Goal,
    Profile,
    ProfileSettings,
    TherapyProgress,
)
from src.domain.models.therapy_method import TherapyMethod


class ProfileRepository:
    """Repository for profile CRUD operations."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def create(self, profile: Profile) -> Profile:
        """Insert a profile and return it as stored."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """INSERT INTO profiles (
                    id, name, therapy_method, goals, challenges,
                    emotional_state, therapy_progress, settings, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    profile.id,
                    profile.name,
                    profile.therapy_method.value,
                    json.dumps([g.model_dump(mode="json") for g in profile.goals]),
                    json.dumps([c.model_dump(mode="json") for c in profile.challenges]),
                    profile.emotional_state.model_dump_json(),
                    profile.therapy_progress.model_dump_json(),
                    profile.settings.model_dump_json(),
                    profile.created_at.isoformat(),
                ),
            )
            await db.commit()

            cursor = await db.execute(
                "SELECT * FROM profiles WHERE id = ?", (profile.id,)
            )
            row = await cursor.fetchone()
            if not row:
                raise ValueError(f"Profile {profile.id} not found after creation")
            return self._row_to_profile(row)

    async def get(self, profile_id: str) -> Optional[Profile]:
        """Get a profile by ID."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM profiles WHERE id = ?", (profile_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None
            return self._row_to_profile(row)

    def _row_to_profile(self, row: aiosqlite.Row) -> Profile:
        return Profile(
            id=row["id"],
            name=row["name"],
            therapy_method=TherapyMethod(row["therapy_method"]),
            goals=[Goal(**g) for g in json.loads(row["goals"] or "[]")],
            challenges=[Challenge(**c) for c in json.loads(row["challenges"] or "[]")],
            emotional_state=EmotionalState.model_validate_json(
                row["emotional_state"] or "{}"
            ),
            therapy_progress=TherapyProgress.model_validate_json(
                row["therapy_progress"] or "{}"
            ),
            settings=ProfileSettings.model_validate_json(row["settings"] or "{}"),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
