# quicknote/schemas/daily_questions.py
"""Request/response models for the /daily-questions routes."""
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Requests ──────────────────────────────────────────────────────────────────

class AnswerSubmit(BaseModel):
    question_id: int
    answer: str = Field(min_length=1, max_length=10000)


class RatingSubmit(BaseModel):
    question_id: int
    rating: int = Field(ge=1, le=5)


class AIConfigIn(BaseModel):
    base_url: str = Field(min_length=1, max_length=500, pattern=r"^https?://")
    api_key: str = Field(min_length=1, max_length=500)
    model: Optional[str] = Field(default=None, max_length=200)
    prompt: Optional[str] = Field(default=None, max_length=4000)


class GenerateRequest(BaseModel):
    count: int = Field(default=5, ge=1, le=20)
    ai_config: Optional[AIConfigIn] = None


class PingRequest(BaseModel):
    ai_config: Optional[AIConfigIn] = None


# ── Responses ─────────────────────────────────────────────────────────────────

class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question: str
    category: Optional[str] = None
    tag: Optional[str] = None


class RecommendedQuestionOut(BaseModel):
    question: QuestionOut
    source: Literal["preference", "random"]
    offline: bool = False   # set by clients serving the local sample bank


class TodayQuestionOut(BaseModel):
    date: date
    question: QuestionOut
    answered: bool
    answer: Optional[str] = None
    source: Literal["existing", "preference", "random", "ai"]


class AnswerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_id: int
    question: QuestionOut
    answer: str
    date: date
    created_at: datetime
    updated_at: Optional[datetime] = None


class RatingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: int
    rating: Optional[int] = None


class WeeklyProgress(BaseModel):
    answered: int
    total: int


class TagCount(BaseModel):
    tag: str
    count: int


class TagShare(TagCount):
    percentage: float


class Activity(BaseModel):
    date: str
    count: int
    level: int = Field(ge=0, le=4)


class DashboardSummary(BaseModel):
    weekly_progress: WeeklyProgress
    current_streak: int
    top_tags: List[TagCount]
    today_answered: bool
    week_activity: List[Activity]


class ActivityData(BaseModel):
    year: int
    activities: List[Activity]
    total_activities: int
    active_days: int


class ReviewAnswer(BaseModel):
    id: int
    question_id: int
    question: str
    category: Optional[str] = None
    answer: str
    date: date
    rating: Optional[int] = None


class ReviewStats(BaseModel):
    period: Literal["week", "month", "year"]
    total_answers: int
    answered_days: int
    avg_answers_per_day: float
    tag_distribution: List[TagShare]
    high_rated_questions: List[ReviewAnswer]
    answers: List[ReviewAnswer]


class StreakStats(BaseModel):
    current_streak: int
    longest_streak: int
    total_active_days: int


class AnswerSnapshot(BaseModel):
    question: str
    answer: str
    date: date


class Comparison(BaseModel):
    category: str
    total_answers: int
    first_answer: AnswerSnapshot
    latest_answer: AnswerSnapshot
    all_answers: List[AnswerSnapshot]


class GrowthComparisonOut(BaseModel):
    comparisons: List[Comparison]


class GeneratedQuestionsOut(BaseModel):
    questions: List[QuestionOut]
    count: int
    preference_applied: bool
    used_categories: List[str]


class PingOut(BaseModel):
    success: bool
    latency_ms: Optional[int] = None
    model: Optional[str] = None
    error: Optional[str] = None


class AIStatusOut(BaseModel):
    configured: bool
    provider: str
    model: Optional[str] = None
