# quicknote/models/daily_questions.py
"""
ORM models for the daily reflective question system.

Questions are immutable once written. Everything a user does against them
(assignment, answers, ratings) lives in per-user tables keyed so that the
database unique constraints carry the idempotence rules:

    UserDailyQuestion  one row per (user, date)
    QuestionAnswer     one row per (user, question, date), upserted
    QuestionRating     one row per (user, question), upserted
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Date,
    UniqueConstraint, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from quicknote.db.session import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DailyQuestion(Base):
    __tablename__ = "daily_questions"

    id = Column(Integer, primary_key=True, index=True)
    question = Column(Text, nullable=False)
    category = Column(String(50), nullable=True, index=True)   # "growth", "gratitude", ...
    tag = Column(String(50), nullable=True)                    # "introspection", "action", ...
    created_at = Column(DateTime, default=utcnow)


class UserDailyQuestion(Base):
    """The question served to a user on a given calendar date."""
    __tablename__ = "user_daily_questions"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_user_daily_questions_user_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("daily_questions.id"), nullable=False)
    date = Column(Date, nullable=False)
    answered = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    question = relationship("DailyQuestion", lazy="joined")


class QuestionAnswer(Base):
    __tablename__ = "question_answers"
    __table_args__ = (
        UniqueConstraint("user_id", "question_id", "date", name="uq_question_answers_user_question_date"),
        Index("idx_question_answers_user_date", "user_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    question_id = Column(Integer, ForeignKey("daily_questions.id"), nullable=False)
    date = Column(Date, nullable=False)
    answer = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    question = relationship("DailyQuestion", lazy="joined")


class QuestionRating(Base):
    __tablename__ = "question_ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "question_id", name="uq_question_ratings_user_question"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_question_ratings_rating_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("daily_questions.id"), nullable=False)
    rating = Column(Integer, nullable=False)   # 1–5 stars
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    question = relationship("DailyQuestion", lazy="joined")
