# quicknote/services/rating_service.py
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quicknote.core.errors import ConflictError, ValidationError
from quicknote.models.daily_questions import QuestionRating, utcnow
from quicknote.services.question_service import get_question

MIN_RATING = 1
MAX_RATING = 5


async def rate_question(db: AsyncSession, user_id: int, question_id: int, rating: int) -> QuestionRating:
    """Create or replace the user's star rating for a question."""
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}.")

    question = await get_question(db, question_id)
    record = await _find(db, user_id, question_id)
    if record is None:
        record = QuestionRating(user_id=user_id, question_id=question_id, rating=rating)
        record.question = question
        db.add(record)
    else:
        record.rating = rating
        record.updated_at = utcnow()

    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError("This rating was written concurrently; retry the request.") from exc
    return record


async def get_question_rating(db: AsyncSession, user_id: int, question_id: int) -> Optional[int]:
    record = await _find(db, user_id, question_id)
    return record.rating if record else None


async def get_user_ratings(db: AsyncSession, user_id: int, limit: int = 100) -> List[QuestionRating]:
    result = await db.execute(
        select(QuestionRating)
        .where(QuestionRating.user_id == user_id)
        .order_by(QuestionRating.updated_at.desc(), QuestionRating.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def _find(db: AsyncSession, user_id: int, question_id: int) -> Optional[QuestionRating]:
    result = await db.execute(
        select(QuestionRating).where(
            QuestionRating.user_id == user_id,
            QuestionRating.question_id == question_id,
        )
    )
    return result.scalar_one_or_none()
