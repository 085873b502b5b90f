# quicknote/services/ai_service.py
"""
LLM question generation.

Two transports speak the same chat-completions dialect:
  - GroqTransport              the server's own Groq key (AsyncGroq SDK)
  - OpenAICompatibleTransport  any user-supplied OpenAI-style endpoint
                               (OpenRouter, DeepSeek, ...) over httpx

Every request asks for a JSON object response and the reply is validated
against a pydantic model. Anything else (HTTP error, timeout, empty content,
bad JSON, wrong shape) raises GenerationError. There is no retry here and no
attempt to dig JSON out of free text; the caller decides whether to fall
back to the question bank.
"""
import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Annotated, List, Optional, Sequence, Type, TypeVar

import httpx
from groq import APIError, AsyncGroq
from pydantic import BaseModel, Field, StringConstraints, ValidationError as SchemaError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quicknote.core.config import settings
from quicknote.core.errors import AIUnavailableError, GenerationError
from quicknote.models.daily_questions import DailyQuestion
from quicknote.services.question_service import load_affinity
from quicknote.services.recommendation import SelectorConfig, top_preferred

logger = logging.getLogger("ai_service")

DEFAULT_CATEGORIES = [
    "reflection", "planning", "gratitude", "growth", "relationships",
    "values", "logic", "philosophy", "creativity", "psychology",
]
TAGS = [
    "thinking", "introspection", "learning", "possibilities",
    "optimization", "social", "values", "action",
]

DEFAULT_ROLE_PROMPT = """You are an experienced life coach and counsellor. Write deep, open-ended
questions that help a person reflect on themselves and grow.

Guidelines:
1. Each question should provoke genuine thought, not a yes/no answer.
2. Be concrete rather than abstract.
3. Questions should help the user understand themselves, plan ahead, or improve daily life.
4. There is no right answer to any question."""


# ── Response shapes ───────────────────────────────────────────────────────────

QuestionText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Label = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]


class GeneratedQuestion(BaseModel):
    question: QuestionText
    category: Label   # stored in String(50) columns
    tag: Optional[Label] = None


class GeneratedBatch(BaseModel):
    questions: List[GeneratedQuestion] = Field(min_length=1)


@dataclass(frozen=True)
class AIConfig:
    base_url: str
    api_key: str
    model: Optional[str] = None
    prompt: Optional[str] = None


@dataclass(frozen=True)
class PingResult:
    latency_ms: int
    model: str
    base_url: str


def default_model_for(base_url: str) -> str:
    url = base_url.lower()
    if "openrouter" in url:
        return "anthropic/claude-3.5-sonnet"
    if "deepseek" in url:
        return "deepseek-chat"
    if "groq" in url:
        return settings.GROQ_MODEL
    return "gpt-4o-mini"


# ── Transports ────────────────────────────────────────────────────────────────

class OpenAICompatibleTransport:
    """POST {base_url}/chat/completions with a bearer key."""

    provider = "openai-compatible"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._http_transport = http_transport

    def _headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        if "openrouter" in self.base_url:
            headers["X-Title"] = settings.APP_NAME
        return headers

    async def complete(
        self,
        model: str,
        messages: list,
        max_tokens: int,
        temperature: float = 0.7,
        json_mode: bool = True,
    ) -> str:
        body = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._http_transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions", headers=self._headers(), json=body,
                )
        except httpx.HTTPError as e:
            raise GenerationError(f"AI provider unreachable: {e}") from e

        if response.status_code >= 400:
            raise GenerationError(f"AI API error: {response.status_code} - {response.text[:200]}")

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationError("AI provider returned an unexpected response body.") from e


_groq_client: Optional[AsyncGroq] = None


def _get_groq_client() -> AsyncGroq:
    global _groq_client
    if _groq_client is None:
        _groq_client = AsyncGroq(api_key=settings.GROQ_API_KEY, timeout=settings.AI_TIMEOUT_SECONDS)
    return _groq_client


class GroqTransport:
    provider = "groq"
    base_url = "https://api.groq.com"

    def __init__(self, client: Optional[AsyncGroq] = None):
        self._client = client

    async def complete(
        self,
        model: str,
        messages: list,
        max_tokens: int,
        temperature: float = 0.7,
        json_mode: bool = True,
    ) -> str:
        client = self._client or _get_groq_client()
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                **kwargs,
            )
        except APIError as e:
            raise GenerationError(f"Groq API error: {e}") from e

        try:
            return response.choices[0].message.content or ""
        except (IndexError, AttributeError, TypeError) as e:
            raise GenerationError("Groq returned an unexpected response body.") from e


# ── Generator ─────────────────────────────────────────────────────────────────

Shape = TypeVar("Shape", bound=BaseModel)


def _parse(content: str, shape: Type[Shape]) -> Shape:
    if not content.strip():
        raise GenerationError("No content in AI response.")
    try:
        return shape.model_validate(json.loads(content))
    except json.JSONDecodeError as e:
        raise GenerationError(f"AI response is not valid JSON: {e.msg}") from e
    except SchemaError as e:
        raise GenerationError(f"AI response does not match the expected shape ({e.error_count()} errors).") from e


class QuestionGenerator:
    def __init__(self, transport, model: str, role_prompt: Optional[str] = None):
        self.transport = transport
        self.model = model
        self.role_prompt = role_prompt or DEFAULT_ROLE_PROMPT

    async def generate_questions(
        self, count: int = 5, categories: Optional[Sequence[str]] = None,
    ) -> List[GeneratedQuestion]:
        category_list = ", ".join(categories) if categories else ", ".join(DEFAULT_CATEGORIES)
        format_prompt = f"""

Write {count} questions.

"category" must be one of: {category_list}
"tag" must be one of: {", ".join(TAGS)}

Respond with a JSON object of exactly this shape:
{{"questions": [{{"question": "question text", "category": "category", "tag": "tag"}}]}}"""

        content = await self.transport.complete(
            self.model,
            [
                {"role": "system", "content": "You write reflective journaling questions. Respond with a JSON object only."},
                {"role": "user", "content": self.role_prompt + format_prompt},
            ],
            max_tokens=2000,
            temperature=0.8,
        )
        batch = _parse(content, GeneratedBatch)
        return batch.questions[:count]

    async def generate_personalized_question(self, history: Sequence[dict]) -> GeneratedQuestion:
        """One follow-up question built from the user's latest answers."""
        recent = "\n\n".join(
            f"Question: {h['question']}\nAnswer: {h['answer']}" for h in list(history)[:5]
        )
        prompt = f"""{self.role_prompt}

Here are the user's most recent answers:

{recent}

Write ONE new question that continues from what they wrote and helps them
dig deeper. Do not repeat a question they have already answered.

Respond with a JSON object of exactly this shape:
{{"question": "question text", "category": "one of: {", ".join(DEFAULT_CATEGORIES[:6])}", "tag": "one of: {", ".join(TAGS)}"}}"""

        content = await self.transport.complete(
            self.model,
            [
                {"role": "system", "content": "You write reflective journaling questions. Respond with a JSON object only."},
                {"role": "user", "content": prompt},
            ],
            max_tokens=500,
            temperature=0.9,
        )
        return _parse(content, GeneratedQuestion)

    async def ping(self) -> PingResult:
        started = time.perf_counter()
        await self.transport.complete(
            self.model,
            [{"role": "user", "content": "Hi"}],
            max_tokens=5,
            json_mode=False,
        )
        latency_ms = int((time.perf_counter() - started) * 1000)
        return PingResult(latency_ms=latency_ms, model=self.model, base_url=self.transport.base_url)


def build_generator(config: Optional[AIConfig] = None) -> QuestionGenerator:
    """
    Pick a provider: the caller's own endpoint first, then the server's
    AI_BASE_URL/AI_API_KEY, then GROQ_API_KEY.
    """
    timeout = settings.AI_TIMEOUT_SECONDS
    if config is not None:
        transport = OpenAICompatibleTransport(config.base_url, config.api_key, timeout)
        return QuestionGenerator(transport, config.model or default_model_for(config.base_url), config.prompt)

    if settings.AI_BASE_URL and settings.AI_API_KEY:
        transport = OpenAICompatibleTransport(settings.AI_BASE_URL, settings.AI_API_KEY, timeout)
        return QuestionGenerator(transport, settings.AI_MODEL or default_model_for(settings.AI_BASE_URL))

    if settings.GROQ_API_KEY:
        return QuestionGenerator(GroqTransport(), settings.AI_MODEL or settings.GROQ_MODEL)

    raise AIUnavailableError("AI service not configured. Set AI_BASE_URL and AI_API_KEY, or GROQ_API_KEY.")


def ai_status() -> dict:
    try:
        generator = build_generator()
    except AIUnavailableError:
        return {"configured": False, "provider": "none", "model": None}
    return {
        "configured": True,
        "provider": generator.transport.provider,
        "model": generator.model,
    }


# ── Persisting generated questions ────────────────────────────────────────────

async def generate_ai_questions(
    db: AsyncSession,
    generator: QuestionGenerator,
    count: int,
    user_id: Optional[int] = None,
    config: Optional[SelectorConfig] = None,
    rng: Optional[random.Random] = None,
) -> dict:
    """
    Generate `count` questions and add them to the question store.

    With a user, the same preference ratio as the selector decides whether the
    request is steered toward that user's favourite categories or left open.
    Questions whose text already exists are reused rather than duplicated.
    """
    config = config or SelectorConfig.from_settings()
    rng = rng or random.Random()

    used_categories: List[str] = []
    if user_id is not None:
        affinity = await load_affinity(db, user_id)
        preferred = top_preferred(affinity, config.min_preferred_average)
        if preferred and rng.random() < config.preference_ratio:
            used_categories = preferred

    generated = await generator.generate_questions(count, used_categories or None)

    texts = [g.question.strip() for g in generated]
    result = await db.execute(select(DailyQuestion).where(DailyQuestion.question.in_(texts)))
    existing = {q.question: q for q in result.scalars().all()}

    stored: List[DailyQuestion] = []
    for g, text in zip(generated, texts):
        question = existing.get(text)
        if question is None:
            question = DailyQuestion(question=text, category=g.category, tag=g.tag)
            db.add(question)
            existing[text] = question
        if question not in stored:
            stored.append(question)
    await db.flush()

    logger.info(
        f"[ai] generated {len(generated)} questions ({len(stored)} stored), "
        f"preference={'on' if used_categories else 'off'}"
    )
    return {
        "questions": stored,
        "count": len(stored),
        "preference_applied": bool(used_categories),
        "used_categories": used_categories,
    }
