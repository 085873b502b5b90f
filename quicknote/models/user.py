# quicknote/models/user.py
from sqlalchemy import Column, String, Integer, Boolean, DateTime
from quicknote.db.session import Base
from quicknote.models.daily_questions import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
