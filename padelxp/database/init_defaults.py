#!/usr/bin/env python3
"""
Initialize default database values.
This script is run on startup to populate default settings.
"""

import asyncio
import logging
import os
from padelxp.database.db import AsyncSessionLocal
from padelxp.services import data_service

logger = logging.getLogger(__name__)

# key -> default value, only written when the key is missing
DEFAULT_SETTINGS = {
    "enable_email": "true",
    "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
}


async def init_defaults():
    """Initialize default database values."""
    logger.info("Initializing default database values...")

    async with AsyncSessionLocal() as session:
        # System admins come from the environment on first boot
        default_admin_email = os.getenv("DEFAULT_SYSTEM_ADMIN_EMAIL")
        if default_admin_email:
            existing_admins = await data_service.get_setting(session, "system_admin_emails")
            admin_set = {e.strip().lower() for e in (existing_admins or "").split(",") if e.strip()}
            if default_admin_email.lower() not in admin_set:
                admin_set.add(default_admin_email.lower())
                await data_service.set_setting(
                    session, "system_admin_emails", ",".join(sorted(admin_set))
                )
                logger.info(f"✓ Added default system admin: {default_admin_email}")

        for key, value in DEFAULT_SETTINGS.items():
            if await data_service.get_setting(session, key) is None:
                await data_service.set_setting(session, key, value)
                logger.info(f"✓ Set default setting {key}={value}")

        await session.commit()

    logger.info("✓ Default values initialized")


if __name__ == "__main__":
    asyncio.run(init_defaults())
