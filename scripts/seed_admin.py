"""Create the first Super Admin account if it does not exist yet.

Usage:
    python -m scripts.seed_admin
    SEED_ADMIN_EMAIL=... SEED_ADMIN_PASSWORD=... python -m scripts.seed_admin
"""

import asyncio
import logging
import os

from agency_backend.database.connection import close_db, init_db
from agency_backend.schemas.enums import StaffRole
from agency_backend.schemas.user_schemas import StaffUserCreate
from agency_backend.services.user_service import user_service

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("seed_admin")

DEFAULT_EMAIL = "admin@fafaligroup.org"


async def seed_super_admin(email: str, password: str, name: str = "Super Admin"):
    existing = await user_service.find_by_email(email)
    if existing is not None:
        logger.info("Super Admin %s already exists, nothing to do", existing.email)
        return existing
    user = await user_service.create_user(
        StaffUserCreate(name=name, email=email, password=password, role=StaffRole.SUPER_ADMIN)
    )
    logger.info("Created Super Admin %s", user.email)
    return user


async def main():
    password = os.getenv("SEED_ADMIN_PASSWORD")
    if not password:
        raise SystemExit("SEED_ADMIN_PASSWORD must be set")
    await init_db()
    try:
        await seed_super_admin(os.getenv("SEED_ADMIN_EMAIL", DEFAULT_EMAIL), password,
                               os.getenv("SEED_ADMIN_NAME", "Super Admin"))
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
