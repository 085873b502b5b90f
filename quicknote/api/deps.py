# quicknote/api/deps.py
from datetime import date

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from quicknote.core.security import decode_access_token
from quicknote.db.session import AsyncSessionLocal, get_db
from quicknote.models.user import User
from quicknote.services.recommendation import SelectorConfig

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_access_token(token)
    if user_id is None or not user_id.isdigit():
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise credentials_exc
    return user


def get_today() -> date:
    """The reference day for "today" questions and streaks. Overridden in tests."""
    return date.today()


def get_session_factory():
    """Session factory for work that outlives the request (background tasks)."""
    return AsyncSessionLocal


def get_selector_config() -> SelectorConfig:
    return SelectorConfig.from_settings()
