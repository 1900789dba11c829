"""
Expire and purge notifications; meant to be run periodically (cron)

    */15 * * * * python -m scripts.cleanup_notifications
"""
import asyncio
import logging

from proposal_workflow.config import settings
from proposal_workflow.database import engine, SessionLocal
from proposal_workflow.services.notification_service import NotificationService

logger = logging.getLogger("cleanup_notifications")


async def run_cleanup() -> dict:
    async with SessionLocal() as session:
        counts = await NotificationService(session).cleanup()
    logger.info(
        f"Cleanup done: {counts['expired']} expired, {counts['deleted']} deleted "
        f"(retention {settings.NOTIFICATION_RETENTION_DAYS} days)"
    )
    return counts


async def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        await run_cleanup()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
