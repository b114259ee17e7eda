#!/usr/bin/env python3
"""
Run a therapy session in the terminal.

Usage:
    python scripts/run_session.py <profile_id> [--method humanistic]

Type messages at the prompt; an empty line or /end closes the session.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Configure logging first (before importing other modules)
from src.core.logging import configure_logging

configure_logging()

from src.core.config import settings
from src.llm.client import build_default_registry
from src.persistence.database import init_database
from src.persistence.repositories import (
    MessageRepository,
    ProfileRepository,
    SessionRepository,
)
from src.services.session_service import SessionService


async def run(profile_id: str, method: str | None) -> None:
    await init_database()

    db_path = str(settings.database_path)
    service = SessionService(
        session_repo=SessionRepository(db_path),
        profile_repo=ProfileRepository(db_path),
        message_repo=MessageRepository(db_path),
        llm=build_default_registry(),
    )

    handle = await service.start_session(profile_id, method)
    print(f"Session {handle.session_number} ({handle.continuity_status.value})")
    print(f"[{handle.phase.value}] {handle.opening_message}\n")

    while True:
        text = await asyncio.to_thread(input, "> ")
        if not text.strip() or text.strip() == "/end":
            break
        result = await service.process_turn(handle.session_id, text)
        marker = " (degraded)" if result.degraded else ""
        print(f"[{result.phase.value}]{marker} {result.reply}\n")

    ended = await service.end_session(handle.session_id)
    print(f"[{ended.phase.value}] {ended.closing_message}\n")
    print("Topics:   ", ", ".join(ended.summary.main_topics) or "-")
    print("Insight:  ", ended.summary.key_insights or "-")
    print("Homework: ", ended.summary.homework or "-")


def main():
    parser = argparse.ArgumentParser(description="Run a therapy session")
    parser.add_argument("profile_id")
    parser.add_argument("--method", help="Therapy method id")
    args = parser.parse_args()

    asyncio.run(run(args.profile_id, args.method))


if __name__ == "__main__":
    main()
