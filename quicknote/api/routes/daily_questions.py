# quicknote/api/routes/daily_questions.py
"""
Daily reflective question endpoints.

GET  /daily-questions/recommended        → next question + how it was picked
GET  /daily-questions/today              → today's assigned question (created on first call)
POST /daily-questions/answers            → record (or replace) an answer
GET  /daily-questions/answers            → answer history, newest first
POST /daily-questions/ratings            → rate a question 1–5
GET  /daily-questions/ratings            → the user's ratings
GET  /daily-questions/ratings/{id}       → one rating (or null)
GET  /daily-questions/dashboard          → week progress, streak, top tags
GET  /daily-questions/activity           → dense yearly heatmap
GET  /daily-questions/review             → week/month/year review stats
GET  /daily-questions/streak             → streak stats
GET  /daily-questions/growth             → first vs latest answer per category
POST /daily-questions/ai/generate        → generate + store AI questions
POST /daily-questions/ai/ping            → check an AI provider config
GET  /daily-questions/ai/status          → is a server-side provider configured
"""
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from quicknote.api.deps import get_current_user, get_selector_config, get_session_factory, get_today
from quicknote.core.errors import AIUnavailableError, GenerationError
from quicknote.db.session import get_db
from quicknote.models.user import User
from quicknote.schemas.daily_questions import (
    ActivityData, AIConfigIn, AIStatusOut, AnswerOut, AnswerSubmit, DashboardSummary,
    GenerateRequest, GeneratedQuestionsOut, GrowthComparisonOut, PingOut, PingRequest,
    QuestionOut, RatingOut, RatingSubmit, RecommendedQuestionOut, ReviewStats,
    StreakStats, TodayQuestionOut,
)
from quicknote.services import ai_service, answer_service, question_service, rating_service, stats_service
from quicknote.services.recommendation import SelectorConfig
from quicknote.tasks.background import after_answer_recorded

router = APIRouter(prefix="/daily-questions", tags=["Daily Questions"])


def _ai_config(payload: Optional[AIConfigIn]) -> Optional[ai_service.AIConfig]:
    if payload is None:
        return None
    return ai_service.AIConfig(
        base_url=payload.base_url,
        api_key=payload.api_key,
        model=payload.model,
        prompt=payload.prompt,
    )


# ── Questions ─────────────────────────────────────────────────────────────────

@router.get("/recommended", response_model=RecommendedQuestionOut)
async def get_recommended_question(
    category: Optional[str] = Query(default=None, max_length=50),
    current_user: User = Depends(get_current_user),
    config: SelectorConfig = Depends(get_selector_config),
    db: AsyncSession = Depends(get_db),
):
    """
    Next question for the user. Mixes preference-weighted picks (categories
    they rate highly) with uniform exploration. Nothing is written.
    """
    selection = await question_service.get_recommended_question(
        db, current_user.id, config=config, category_hint=category,
    )
    return RecommendedQuestionOut(
        question=QuestionOut.model_validate(selection.question),
        source=selection.source,
    )


@router.get("/today", response_model=TodayQuestionOut)
async def get_today_question(
    use_ai: bool = False,
    current_user: User = Depends(get_current_user),
    config: SelectorConfig = Depends(get_selector_config),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    """
    Today's question, assigned once per user per day. With use_ai=true and a
    configured provider, a new day's question is personalised from recent
    answers; any AI failure falls back to the normal recommendation.
    """
    generator = None
    if use_ai:
        try:
            generator = ai_service.build_generator()
        except AIUnavailableError:
            generator = None

    today_question = await question_service.get_today_question(
        db, current_user.id, today, generator=generator, config=config,
    )
    return TodayQuestionOut(
        date=today_question["date"],
        question=QuestionOut.model_validate(today_question["question"]),
        answered=today_question["answered"],
        answer=today_question["answer"],
        source=today_question["source"],
    )


# ── Answers ───────────────────────────────────────────────────────────────────

@router.post("/answers", response_model=AnswerOut, status_code=201)
async def answer_question(
    payload: AnswerSubmit,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
    session_factory=Depends(get_session_factory),
    db: AsyncSession = Depends(get_db),
):
    """Record today's answer. Answering the same question again today replaces the text."""
    answer = await answer_service.record_answer(
        db, current_user.id, payload.question_id, payload.answer, today,
    )
    out = AnswerOut.model_validate(answer)

    background_tasks.add_task(after_answer_recorded, current_user.id, today, session_factory)
    return out


@router.get("/answers", response_model=List[AnswerOut])
async def get_answer_history(
    limit: int = Query(default=30, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    answers = await answer_service.get_answer_history(db, current_user.id, limit)
    return [AnswerOut.model_validate(a) for a in answers]


# ── Ratings ───────────────────────────────────────────────────────────────────

@router.post("/ratings", response_model=RatingOut)
async def rate_question(
    payload: RatingSubmit,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    record = await rating_service.rate_question(db, current_user.id, payload.question_id, payload.rating)
    return RatingOut.model_validate(record)


@router.get("/ratings", response_model=List[RatingOut])
async def get_user_ratings(
    limit: int = Query(default=100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    records = await rating_service.get_user_ratings(db, current_user.id, limit)
    return [RatingOut.model_validate(r) for r in records]


@router.get("/ratings/{question_id}", response_model=RatingOut)
async def get_question_rating(
    question_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rating = await rating_service.get_question_rating(db, current_user.id, question_id)
    return RatingOut(question_id=question_id, rating=rating)


# ── Stats ─────────────────────────────────────────────────────────────────────

@router.get("/dashboard", response_model=DashboardSummary)
async def get_dashboard_summary(
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.get_dashboard_summary(db, current_user.id, today)


@router.get("/activity", response_model=ActivityData)
async def get_activity_data(
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.get_activity_data(db, current_user.id, year or today.year)


@router.get("/review", response_model=ReviewStats)
async def get_review_stats(
    period: Literal["week", "month", "year"] = "week",
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.get_review_stats(db, current_user.id, period, today)


@router.get("/streak", response_model=StreakStats)
async def get_streak_stats(
    current_user: User = Depends(get_current_user),
    today: date = Depends(get_today),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.get_streak_stats(db, current_user.id, today)


@router.get("/growth", response_model=GrowthComparisonOut)
async def get_growth_comparison(
    limit: int = Query(default=5, ge=1, le=20),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await stats_service.get_growth_comparison(db, current_user.id, limit)


# ── AI ────────────────────────────────────────────────────────────────────────

@router.post("/ai/generate", response_model=GeneratedQuestionsOut)
async def generate_ai_questions(
    payload: GenerateRequest,
    current_user: User = Depends(get_current_user),
    config: SelectorConfig = Depends(get_selector_config),
    db: AsyncSession = Depends(get_db),
):
    """
    Generate questions with the caller's AI config (or the server's) and add
    them to the question bank. Upstream failures surface as 502.
    """
    generator = ai_service.build_generator(_ai_config(payload.ai_config))
    result = await ai_service.generate_ai_questions(
        db, generator, payload.count, user_id=current_user.id, config=config,
    )
    return GeneratedQuestionsOut(
        questions=[QuestionOut.model_validate(q) for q in result["questions"]],
        count=result["count"],
        preference_applied=result["preference_applied"],
        used_categories=result["used_categories"],
    )


@router.post("/ai/ping", response_model=PingOut)
async def ping_ai(
    payload: PingRequest,
    _: User = Depends(get_current_user),
):
    """One tiny completion to check credentials and measure latency."""
    try:
        generator = ai_service.build_generator(_ai_config(payload.ai_config))
        result = await generator.ping()
    except (AIUnavailableError, GenerationError) as e:
        return PingOut(success=False, error=e.message)
    return PingOut(success=True, latency_ms=result.latency_ms, model=result.model)


@router.get("/ai/status", response_model=AIStatusOut)
async def ai_status(_: User = Depends(get_current_user)):
    return ai_service.ai_status()
