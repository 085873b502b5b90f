# quicknote/services/answer_service.py
"""
Answer recording.

Per (user, question, date) an answer is either absent or present; writing it
again replaces the text. Recording an answer also flips that day's
UserDailyQuestion to answered, creating the row when the question came from
outside the daily flow (e.g. an AI-generated one).
"""
from datetime import date
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quicknote.core.errors import ConflictError, ValidationError
from quicknote.models.daily_questions import QuestionAnswer, utcnow
from quicknote.services.question_service import get_assignment, get_question, record_assignment


async def record_answer(
    db: AsyncSession,
    user_id: int,
    question_id: int,
    text: str,
    answered_on: date,
) -> QuestionAnswer:
    text = (text or "").strip()
    if not text:
        raise ValidationError("Answer text must not be empty.")

    question = await get_question(db, question_id)

    result = await db.execute(
        select(QuestionAnswer).where(
            QuestionAnswer.user_id == user_id,
            QuestionAnswer.question_id == question_id,
            QuestionAnswer.date == answered_on,
        )
    )
    answer = result.scalar_one_or_none()
    if answer is None:
        answer = QuestionAnswer(
            user_id=user_id, question_id=question_id, date=answered_on, answer=text,
        )
        answer.question = question
        db.add(answer)
    else:
        answer.answer = text
        answer.updated_at = utcnow()

    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError("This answer was written concurrently; retry the request.") from exc

    assignment = await get_assignment(db, user_id, answered_on)
    if assignment is None:
        await record_assignment(db, user_id, question, answered_on, answered=True)
    elif not assignment.answered:
        assignment.answered = True
        await db.flush()
    return answer


async def get_answer_history(db: AsyncSession, user_id: int, limit: int = 30) -> List[QuestionAnswer]:
    """Past answers, newest first."""
    result = await db.execute(
        select(QuestionAnswer)
        .where(QuestionAnswer.user_id == user_id)
        .order_by(QuestionAnswer.date.desc(), QuestionAnswer.created_at.desc(), QuestionAnswer.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
