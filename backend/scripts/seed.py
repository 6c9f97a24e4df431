"""Database seed script: creates the permission catalog and the system roles.

Run: python -m scripts.seed
"""

import asyncio
import sys
import os

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def seed():
    """Seed the database with the catalog and default role bundles."""
    from app.config import get_settings
    from core.logging_config import setup_logging
    from core.permissions import validate_catalog
    from db.database import Database
    from services.seed_service import seed_catalog

    settings = get_settings()
    setup_logging(settings)
    validate_catalog()

    database = Database.from_url(settings.DATABASE_URL, settings)
    try:
        # Initialize DB tables
        await database.create_all()

        async with database.session() as db:
            created = await seed_catalog(db)

        print(f"[seed] Permissions created: {created['permissions']}")
        print(f"[seed] Roles created: {created['roles']}")
        print(f"[seed] Role-permission links created: {created['links']}")
        print("[seed] Done.")
    finally:
        await database.close()


if __name__ == "__main__":
    asyncio.run(seed())
