import logging

from hbg_core.config import HbgSettings, hbg_settings
from sqlalchemy.ext.asyncio import AsyncSession

from .models import SHARED_OWNER, Sender

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Default sender"


async def seed_senders(db: AsyncSession, settings: HbgSettings | None = None) -> bool:
    """Insert the shared default sender when no sender exists yet."""
    settings = settings or hbg_settings
    if await Sender.objects.exists(db):
        return False

    db.add(
        Sender(
            user_id=SHARED_OWNER,
            name=DEFAULT_SENDER_NAME,
            address=settings.DEFAULT_SENDER_ADDRESS,
            server_address=settings.DEFAULT_SENDER_SERVER,
            login=settings.DEFAULT_SENDER_ADDRESS,
            passcode=settings.DEFAULT_SENDER_PASSCODE,
        )
    )
    await db.commit()
    logger.info("Seeded the default sender")
    return True
