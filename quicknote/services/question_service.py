# quicknote/services/question_service.py
"""
Question store access and the "what should this user answer next" flow.

The selection policy itself lives in recommendation.py; this module loads
what it needs from the database and persists the daily assignment.
"""
import logging
import random
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quicknote.core.errors import ConflictError, GenerationError, NotFoundError
from quicknote.models.daily_questions import (
    DailyQuestion, QuestionAnswer, QuestionRating, UserDailyQuestion,
)
from quicknote.services.recommendation import (
    CategoryAffinity, Selection, SelectorConfig, estimate_affinity, select_question,
)

logger = logging.getLogger("question_service")


# ── Built-in question bank ────────────────────────────────────────────────────
# Seeded into an empty database on startup, and served to offline clients.

SAMPLE_QUESTIONS = [
    # REFLECTION
    {"question": "What made you feel most accomplished today?", "category": "reflection", "tag": "introspection"},
    {"question": "If you could redo today, what would you choose differently?", "category": "reflection", "tag": "introspection"},
    {"question": "What is the most important lesson you have learned recently?", "category": "reflection", "tag": "learning"},
    {"question": "What keeps draining your energy that you still haven't dealt with?", "category": "reflection", "tag": "introspection"},
    {"question": "When were you last truly happy, and what were you doing?", "category": "reflection", "tag": "introspection"},
    {"question": "What is your intuition telling you that you keep ignoring?", "category": "reflection", "tag": "thinking"},
    # PLANNING
    {"question": "If you could finish only one thing today, what would it be?", "category": "planning", "tag": "action"},
    {"question": "What decision made today will your future self thank you for in five years?", "category": "planning", "tag": "possibilities"},
    {"question": "What have you been putting off that would take only five minutes?", "category": "planning", "tag": "action"},
    {"question": "What are your three most important goals, and what did you do for them today?", "category": "planning", "tag": "optimization"},
    {"question": "Where are your current daily habits taking you?", "category": "planning", "tag": "optimization"},
    # GRATITUDE
    {"question": "What small thing today are you grateful for?", "category": "gratitude", "tag": "values"},
    {"question": "Who have you been meaning to thank but haven't yet?", "category": "gratitude", "tag": "social"},
    {"question": "What do you have that many people wish they had?", "category": "gratitude", "tag": "values"},
    {"question": "Which hardship eventually turned into a blessing?", "category": "gratitude", "tag": "introspection"},
    {"question": "What simple pleasure did you enjoy today?", "category": "gratitude", "tag": "values"},
    # GROWTH
    {"question": "What are you most afraid of, and what would change if you overcame it?", "category": "growth", "tag": "possibilities"},
    {"question": "What would you try if you knew you could not fail?", "category": "growth", "tag": "possibilities"},
    {"question": "Where is the edge of your comfort zone, and have you pushed it lately?", "category": "growth", "tag": "action"},
    {"question": "Which habit, kept for a year, would change your life completely?", "category": "growth", "tag": "optimization"},
    {"question": "What limiting belief is holding you back right now?", "category": "growth", "tag": "thinking"},
    {"question": "What did your most recent failure teach you?", "category": "growth", "tag": "learning"},
    # RELATIONSHIPS
    {"question": "Which relationship of yours needs repairing or deepening?", "category": "relationships", "tag": "social"},
    {"question": "How do you want other people to remember you?", "category": "relationships", "tag": "values"},
    {"question": "Who matters most in your life, and when did you last really talk to them?", "category": "relationships", "tag": "social"},
    {"question": "When did you last truly listen to someone?", "category": "relationships", "tag": "social"},
    # VALUES
    {"question": "Have your recent actions matched your values?", "category": "values", "tag": "values"},
    {"question": "If tomorrow were your last day, what would you do today?", "category": "values", "tag": "possibilities"},
    {"question": "What makes you lose track of time?", "category": "values", "tag": "introspection"},
    {"question": "Which personal quality are you proudest of?", "category": "values", "tag": "values"},
]


def fallback_question_for(day: date) -> dict:
    """Stable offline pick: the same day always maps to the same sample question."""
    index = day.timetuple().tm_yday % len(SAMPLE_QUESTIONS)
    return SAMPLE_QUESTIONS[index]


async def seed_questions(db: AsyncSession) -> int:
    """Insert the sample bank if the question table is empty. Returns rows added."""
    existing = await db.scalar(select(func.count()).select_from(DailyQuestion))
    if existing:
        return 0
    db.add_all(DailyQuestion(**q) for q in SAMPLE_QUESTIONS)
    await db.flush()
    logger.info(f"[seed] inserted {len(SAMPLE_QUESTIONS)} sample questions")
    return len(SAMPLE_QUESTIONS)


# ── Loading ───────────────────────────────────────────────────────────────────

async def get_question(db: AsyncSession, question_id: int) -> DailyQuestion:
    question = await db.get(DailyQuestion, question_id)
    if question is None:
        raise NotFoundError(f"Question {question_id} not found.")
    return question


async def load_pool(db: AsyncSession) -> List[DailyQuestion]:
    result = await db.execute(select(DailyQuestion).order_by(DailyQuestion.id))
    return list(result.scalars().all())


async def load_affinity(db: AsyncSession, user_id: int) -> Dict[str, CategoryAffinity]:
    result = await db.execute(
        select(DailyQuestion.category, QuestionRating.rating)
        .join(DailyQuestion, DailyQuestion.id == QuestionRating.question_id)
        .where(QuestionRating.user_id == user_id)
    )
    return estimate_affinity((category, rating) for category, rating in result.all())


async def recent_question_ids(db: AsyncSession, user_id: int, window: int) -> List[int]:
    """
    The last `window` distinct questions this user was served or answered,
    newest first. Recomputed on every call.
    """
    served = await db.execute(
        select(UserDailyQuestion.question_id, UserDailyQuestion.date)
        .where(UserDailyQuestion.user_id == user_id)
        .order_by(UserDailyQuestion.date.desc())
        .limit(window)
    )
    answered = await db.execute(
        select(QuestionAnswer.question_id, QuestionAnswer.date)
        .where(QuestionAnswer.user_id == user_id)
        .order_by(QuestionAnswer.date.desc(), QuestionAnswer.id.desc())
        .limit(window)
    )
    rows = sorted(
        list(served.all()) + list(answered.all()),
        key=lambda row: row[1],
        reverse=True,
    )

    ids: List[int] = []
    for question_id, _ in rows:
        if question_id not in ids:
            ids.append(question_id)
        if len(ids) >= window:
            break
    return ids


# ── Recommendation ────────────────────────────────────────────────────────────

async def get_recommended_question(
    db: AsyncSession,
    user_id: int,
    config: Optional[SelectorConfig] = None,
    rng: Optional[random.Random] = None,
    category_hint: Optional[str] = None,
) -> Selection:
    """Pick the next question for a user. Read-only."""
    config = config or SelectorConfig.from_settings()
    pool = await load_pool(db)
    affinity = await load_affinity(db, user_id)
    recent = await recent_question_ids(db, user_id, config.recent_window)

    selection = select_question(pool, affinity, recent, config, rng=rng, category_hint=category_hint)
    if selection is None:
        raise NotFoundError("No questions available.")
    return selection


async def get_assignment(db: AsyncSession, user_id: int, on: date) -> Optional[UserDailyQuestion]:
    result = await db.execute(
        select(UserDailyQuestion).where(
            UserDailyQuestion.user_id == user_id,
            UserDailyQuestion.date == on,
        )
    )
    return result.scalar_one_or_none()


async def record_assignment(
    db: AsyncSession,
    user_id: int,
    question: DailyQuestion,
    on: date,
    answered: bool = False,
) -> UserDailyQuestion:
    """Persist the (user, date) assignment. One row per user per date."""
    assignment = UserDailyQuestion(
        user_id=user_id, question_id=question.id, date=on, answered=answered,
    )
    assignment.question = question
    db.add(assignment)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError(f"User {user_id} already has a question for {on}.") from exc
    return assignment


async def get_today_question(
    db: AsyncSession,
    user_id: int,
    today: date,
    generator=None,
    config: Optional[SelectorConfig] = None,
    rng: Optional[random.Random] = None,
) -> dict:
    """
    Today's question for a user: the stored assignment if there is one,
    otherwise a fresh pick (AI-personalised when a generator is given and
    the user has history, else from the selector) that is stored for the day.
    """
    assignment = await get_assignment(db, user_id, today)
    source = "existing"

    if assignment is None:
        question = None
        if generator is not None:
            question = await _personalized_question(db, user_id, generator)
            source = "ai" if question is not None else source
        if question is None:
            selection = await get_recommended_question(db, user_id, config=config, rng=rng)
            question, source = selection.question, selection.source
        assignment = await record_assignment(db, user_id, question, today)

    # Assigned question's answer first, else the latest answer of the day.
    answer = await db.execute(
        select(QuestionAnswer.answer)
        .where(QuestionAnswer.user_id == user_id, QuestionAnswer.date == today)
        .order_by(
            (QuestionAnswer.question_id == assignment.question_id).desc(),
            QuestionAnswer.updated_at.desc(),
            QuestionAnswer.id.desc(),
        )
        .limit(1)
    )
    return {
        "date": today,
        "question": assignment.question,
        "answered": assignment.answered,
        "answer": answer.scalars().first(),
        "source": source,
    }


async def _personalized_question(db: AsyncSession, user_id: int, generator) -> Optional[DailyQuestion]:
    result = await db.execute(
        select(QuestionAnswer)
        .where(QuestionAnswer.user_id == user_id)
        .order_by(QuestionAnswer.date.desc(), QuestionAnswer.id.desc())
        .limit(5)
    )
    history = [
        {"question": a.question.question, "answer": a.answer}
        for a in result.scalars().all()
    ]
    if not history:
        return None

    try:
        generated = await generator.generate_personalized_question(history)
    except GenerationError as e:
        logger.warning(f"[ai] personalised question failed for user {user_id}, using selector: {e.message}")
        return None

    question = DailyQuestion(
        question=generated.question, category=generated.category, tag=generated.tag,
    )
    db.add(question)
    await db.flush()
    return question
