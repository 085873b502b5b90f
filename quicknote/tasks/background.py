# quicknote/tasks/background.py
"""
FastAPI background tasks run after an answer is stored:
- drop the cached heatmap for the affected year
- log streak milestones
"""
import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from quicknote.services.stats_service import activity_cache_key, get_streak_stats
from quicknote.utils.redis_client import cache_delete

logger = logging.getLogger("background_tasks")

STREAK_MILESTONE_DAYS = 7


async def after_answer_recorded(user_id: int, answered_on: date, session_factory) -> None:
    """
    Runs with its own session: the request session is closed by the time a
    background task executes.
    """
    await cache_delete(activity_cache_key(user_id, answered_on.year))

    try:
        async with session_factory() as db:
            stats = await get_streak_stats(db, user_id, answered_on)
    except SQLAlchemyError:
        logger.exception(f"[streak] could not compute streak for user {user_id}")
        return

    streak = stats["current_streak"]
    if streak and streak % STREAK_MILESTONE_DAYS == 0:
        logger.info(f"[streak] user {user_id} hit a {streak}-day streak!")
    logger.info(f"[answer] user {user_id} answered on {answered_on}. Streak: {streak}d")
