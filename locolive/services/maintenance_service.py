import logging

from sqlalchemy.ext.asyncio import AsyncSession

from locolive.core.timeutils import utc_now
from locolive.repositories.auth import AuthRepository
from locolive.repositories.story import StoryRepository

logger = logging.getLogger(__name__)


class MaintenanceService:
    @staticmethod
    async def run(db: AsyncSession) -> dict[str, int]:
        now = utc_now()
        summary = await AuthRepository(db).cleanup_expired_credentials(now)
        summary["stories_deleted"] = await StoryRepository(db).delete_expired(now)
        return summary
