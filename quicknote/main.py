# quicknote/main.py
"""
QuickNote Daily Questions – FastAPI Application Entry Point
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quicknote.core.config import settings
from quicknote.core.errors import DomainError, domain_error_handler
from quicknote.db.session import engine, Base, AsyncSessionLocal

# Import all models so Base.metadata knows about them
from quicknote.models import user  # noqa: F401
from quicknote.models import daily_questions as dq_models  # noqa: F401

from quicknote.api.routes import auth, daily_questions
from quicknote.services.question_service import seed_questions

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("quicknote")

app = FastAPI(
    title=settings.APP_NAME,
    description="Daily reflective questions: recommendations, ratings, streaks and review stats",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(DomainError, domain_error_handler)


# ── Startup: Create DB tables, seed the question bank ─────────────────────────
@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        await seed_questions(db)
        await db.commit()

    logger.info(f"{settings.APP_NAME} started. Tables created.")
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            m = sorted(route.methods)[0] if route.methods else "     "
            logger.debug(f"   {m:7s} {route.path}")

    daily_routes = [r.path for r in app.routes if "daily-questions" in getattr(r, "path", "")]
    if not daily_routes:
        logger.error("Daily Questions routes NOT registered!")


# ── API Routes ────────────────────────────────────────────────────────────────
API_PREFIX = "/api"

app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(daily_questions.router, prefix=API_PREFIX)


@app.get("/api/health", tags=["Health"])
async def health_check():
    return {"status": "ok", "app": settings.APP_NAME}
