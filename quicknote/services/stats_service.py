# quicknote/services/stats_service.py
"""
Dashboard, heatmap, review and growth statistics for one user.

Queries here only gather rows; the counting rules live in aggregates.py.
"""
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from quicknote.core.config import settings
from quicknote.models.daily_questions import DailyQuestion, QuestionAnswer, QuestionRating
from quicknote.services import aggregates
from quicknote.utils.redis_client import cache_get, cache_set

HIGH_RATING = 4
HIGH_RATED_LIMIT = 5
TOP_TAGS_LIMIT = 3


def activity_cache_key(user_id: int, year: int) -> str:
    return f"activity:{user_id}:{year}"


def week_dates(today: date) -> List[date]:
    """Monday..Sunday of the ISO week containing `today`."""
    start = aggregates.period_start("week", today)
    return [start + timedelta(days=i) for i in range(7)]


async def _active_dates(db: AsyncSession, user_id: int) -> List[date]:
    result = await db.execute(
        select(QuestionAnswer.date).where(QuestionAnswer.user_id == user_id).distinct()
    )
    return list(result.scalars().all())


async def _answer_categories(db: AsyncSession, user_id: int) -> List[Optional[str]]:
    result = await db.execute(
        select(DailyQuestion.category)
        .join(QuestionAnswer, QuestionAnswer.question_id == DailyQuestion.id)
        .where(QuestionAnswer.user_id == user_id)
    )
    return list(result.scalars().all())


# ── Streaks ───────────────────────────────────────────────────────────────────

async def get_streak_stats(db: AsyncSession, user_id: int, today: date) -> dict:
    active = await _active_dates(db, user_id)
    return {
        "current_streak": aggregates.current_streak(active, today),
        "longest_streak": aggregates.longest_streak(active),
        "total_active_days": len(set(active)),
    }


# ── Dashboard ─────────────────────────────────────────────────────────────────

async def get_dashboard_summary(db: AsyncSession, user_id: int, today: date) -> dict:
    active = set(await _active_dates(db, user_id))
    week = week_dates(today)
    answered_this_week = sum(1 for d in week if d in active and d <= today)

    result = await db.execute(
        select(QuestionAnswer.date, func.count(QuestionAnswer.id))
        .where(
            QuestionAnswer.user_id == user_id,
            QuestionAnswer.date >= week[0],
            QuestionAnswer.date <= week[-1],
        )
        .group_by(QuestionAnswer.date)
    )
    week_counts = dict(result.all())

    top_tags = aggregates.tag_distribution(await _answer_categories(db, user_id))[:TOP_TAGS_LIMIT]
    return {
        "weekly_progress": {"answered": answered_this_week, "total": 7},
        "current_streak": aggregates.current_streak(active, today),
        "top_tags": [{"tag": t["tag"], "count": t["count"]} for t in top_tags],
        "today_answered": today in active,
        "week_activity": [
            {
                "date": d.isoformat(),
                "count": week_counts.get(d, 0),
                "level": aggregates.activity_level(week_counts.get(d, 0)),
            }
            for d in week
        ],
    }


# ── Heatmap ───────────────────────────────────────────────────────────────────

async def get_activity_data(db: AsyncSession, user_id: int, year: int) -> dict:
    """Dense per-day activity for `year`. Cached in Redis when it is available."""
    key = activity_cache_key(user_id, year)
    cached = await cache_get(key)
    if cached is not None:
        return cached

    result = await db.execute(
        select(QuestionAnswer.date, func.count(QuestionAnswer.id))
        .where(
            QuestionAnswer.user_id == user_id,
            QuestionAnswer.date >= date(year, 1, 1),
            QuestionAnswer.date <= date(year, 12, 31),
        )
        .group_by(QuestionAnswer.date)
    )
    counts: Dict[date, int] = {day: count for day, count in result.all()}

    data = {
        "year": year,
        "activities": aggregates.activity_for_year(counts, year),
        "total_activities": sum(counts.values()),
        "active_days": sum(1 for c in counts.values() if c > 0),
    }
    await cache_set(key, data, ttl=settings.ACTIVITY_CACHE_TTL)
    return data


# ── Review ────────────────────────────────────────────────────────────────────

async def get_review_stats(db: AsyncSession, user_id: int, period: str, today: date) -> dict:
    since = aggregates.period_start(period, today)

    result = await db.execute(
        select(QuestionAnswer)
        .where(
            QuestionAnswer.user_id == user_id,
            QuestionAnswer.date >= since,
            QuestionAnswer.date <= today,
        )
        .order_by(QuestionAnswer.date.desc(), QuestionAnswer.created_at.desc(), QuestionAnswer.id.desc())
    )
    answers = list(result.scalars().all())

    ratings: Dict[int, int] = {}
    question_ids = {a.question_id for a in answers}
    if question_ids:
        rated = await db.execute(
            select(QuestionRating.question_id, QuestionRating.rating).where(
                QuestionRating.user_id == user_id,
                QuestionRating.question_id.in_(question_ids),
            )
        )
        ratings = dict(rated.all())

    items = [
        {
            "id": a.id,
            "question_id": a.question_id,
            "question": a.question.question,
            "category": a.question.category,
            "answer": a.answer,
            "date": a.date,
            "rating": ratings.get(a.question_id),
        }
        for a in answers
    ]
    high_rated = sorted(
        (item for item in items if (item["rating"] or 0) >= HIGH_RATING),
        key=lambda item: (-item["rating"], -item["date"].toordinal(), -item["id"]),
    )[:HIGH_RATED_LIMIT]

    answered_days = len({a.date for a in answers})
    total = len(answers)
    return {
        "period": period,
        "total_answers": total,
        "answered_days": answered_days,
        "avg_answers_per_day": round(total / answered_days, 1) if answered_days else 0.0,
        "tag_distribution": aggregates.tag_distribution(item["category"] for item in items),
        "high_rated_questions": high_rated,
        "answers": items,
    }


# ── Growth ────────────────────────────────────────────────────────────────────

async def get_growth_comparison(db: AsyncSession, user_id: int, limit: int = 5) -> dict:
    result = await db.execute(
        select(QuestionAnswer)
        .where(QuestionAnswer.user_id == user_id)
        .order_by(QuestionAnswer.date, QuestionAnswer.id)
    )
    points = [
        aggregates.AnswerPoint(
            category=a.question.category,
            question=a.question.question,
            answer=a.answer,
            date=a.date,
            order=a.id,
        )
        for a in result.scalars().all()
    ]
    return {"comparisons": aggregates.growth_comparison(points, limit)}
