#!/usr/bin/env python3
"""
Create a client profile for local development.

Usage:
    python scripts/seed_profile.py "Anna" --method cognitive_behavioral \
        --goal "Sleep better" --goal "Handle stress at work" \
        --challenge "Racing thoughts at night"
    python scripts/seed_profile.py "Anna" --reset   # delete the database first
"""

import argparse
import asyncio
import sys
import uuid
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Configure logging first (before importing other modules)
from src.core.logging import configure_logging

configure_logging()

import structlog

from src.core.config import settings
from src.domain.models.profile import Challenge, Goal, Profile, ProfileSettings
from src.domain.models.therapy_method import TherapyMethod
from src.persistence.database import init_database
from src.persistence.repositories import ProfileRepository

log = structlog.get_logger(__name__)


async def seed(args: argparse.Namespace) -> Profile:
    db_path = settings.database_path

    if args.reset and db_path.exists():
        log.warning("deleting_database", path=str(db_path))
        db_path.unlink()

    await init_database()

    profile = Profile(
        id=args.profile_id or str(uuid.uuid4()),
        name=args.name,
        therapy_method=TherapyMethod(args.method),
        goals=[Goal(description=g) for g in args.goal],
        challenges=[Challenge(description=c) for c in args.challenge],
        settings=ProfileSettings(preferred_llm_provider=args.provider),
    )
    return await ProfileRepository(str(db_path)).create(profile)


def main():
    parser = argparse.ArgumentParser(description="Create a client profile")
    parser.add_argument("name", help="Client name")
    parser.add_argument("--profile-id", help="Explicit profile id (default: uuid4)")
    parser.add_argument(
        "--method",
        default=TherapyMethod.COGNITIVE_BEHAVIORAL.value,
        choices=[m.value for m in TherapyMethod],
    )
    parser.add_argument("--goal", action="append", default=[])
    parser.add_argument("--challenge", action="append", default=[])
    parser.add_argument("--provider", help="Preferred LLM provider id")
    parser.add_argument(
        "--reset", action="store_true", help="Delete the database before seeding"
    )
    args = parser.parse_args()

    profile = asyncio.run(seed(args))
    print(f"Created profile {profile.id} ({profile.name}, {profile.therapy_method.value})")


if __name__ == "__main__":
    main()
