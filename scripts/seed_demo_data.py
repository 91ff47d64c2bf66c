#!/usr/bin/env python3
"""Seed demo data.

Creates a demo owner and a collaborator with a handful of tasks, some of
them shared, so the API has something to show right away.

Usage:
    # From project root:
    python scripts/seed_demo_data.py

    # Or against another database:
    DATABASE_URL=sqlite:///./demo.db python scripts/seed_demo_data.py
"""

import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.config import get_settings
from src.exceptions import DuplicateEmail
from src.services.task_store import TaskStore

# Demo user credentials
DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "demopass123"
COLLABORATOR_EMAIL = "sam@example.com"
COLLABORATOR_PASSWORD = "sampass123"

DEMO_TASKS = [
    # (title, description, completed, shared with collaborator)
    ("Book flights", "Compare prices for the June trip", False, True),
    ("Renew passport", None, True, False),
    ("Plan itinerary", "Day-by-day plan, share with Sam", False, True),
    ("Buy travel adapter", None, False, False),
    ("Cancel newspaper delivery", "While we are away", True, True),
]


async def seed_demo_data():
    """Seed the configured database with representative data."""
    store = TaskStore.from_url(get_settings().database_url)
    await store.initialize()

    try:
        try:
            demo_id = await store.create_user("Demo User", DEMO_EMAIL, DEMO_PASSWORD)
            await store.create_user("Sam Rivera", COLLABORATOR_EMAIL, COLLABORATOR_PASSWORD)
        except DuplicateEmail:
            print("Demo data already exists. Nothing to do.")
            return

        for title, description, completed, shared in DEMO_TASKS:
            task_id = await store.create_task(title, description, demo_id)
            if completed:
                await store.set_task_completion(task_id, True)
            if shared:
                await store.share_task(task_id, COLLABORATOR_EMAIL)

        counts = await store.count_tasks_for_user(demo_id)
        print(f"Seeded {counts.total} tasks ({counts.completed} completed) for {DEMO_EMAIL}")
        print(f"Log in as {DEMO_EMAIL} / {DEMO_PASSWORD}")
        print(f"Collaborator: {COLLABORATOR_EMAIL} / {COLLABORATOR_PASSWORD}")
    finally:
        store.close()


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
