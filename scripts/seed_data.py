#!/usr/bin/env python3
"""Seed the store with the bundled reference data.

This script writes:
1. The default task catalog
2. The fair-value turnover brackets
3. The sample staff roster, with hourly costs derived from pay data

Existing rows with the same ids are merged; brackets not in the bundled
file are removed so fair-value lookups see exactly one table.

Usage:
    python scripts/seed_data.py
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from practice_desk.config import (  # noqa: E402
    configure_logging,
    get_settings,
    load_staff_roster,
    load_task_catalog,
    load_turnover_brackets,
)
from practice_desk.store import PracticeRepository, StoreClient, StoreError  # noqa: E402


async def seed_catalog(repository: PracticeRepository) -> None:
    tasks = load_task_catalog()
    await repository.upsert_tasks(tasks)
    print(f"  ✓ {len(tasks)} tasks")


async def seed_brackets(repository: PracticeRepository) -> None:
    brackets = load_turnover_brackets()
    await repository.replace_turnover_brackets(brackets)
    print(f"  ✓ {len(brackets)} turnover brackets")


async def seed_staff(repository: PracticeRepository) -> None:
    for member in load_staff_roster():
        saved = await repository.upsert_staff(member)
        print(f"  ✓ {saved.name}: {saved.hourly_cost}€/h")


async def main() -> int:
    """Main entry point."""
    configure_logging()
    settings = get_settings()

    print("=" * 60)
    print("Practice Desk - Reference Data Seeding")
    print("=" * 60)
    print(f"\nStore URL: {settings.store_url}")

    try:
        async with StoreClient() as client:
            repository = PracticeRepository(client)

            print("\n[Task Catalog]")
            await seed_catalog(repository)

            print("\n[Turnover Brackets]")
            await seed_brackets(repository)

            print("\n[Staff]")
            await seed_staff(repository)
    except StoreError as e:
        print(f"\n✗ Seeding failed: {e}")
        if e.details:
            print(f"  {e.details}")
        return 1

    print("\n" + "=" * 60)
    print("SEEDING COMPLETE!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
