import json
import random
from datetime import timedelta
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy import func, select

from quicknote.core.errors import AIUnavailableError, GenerationError
from quicknote.models.daily_questions import DailyQuestion
from quicknote.services import ai_service, answer_service, question_service, rating_service
from quicknote.services.ai_service import (
    AIConfig,
    OpenAICompatibleTransport,
    QuestionGenerator,
    build_generator,
    generate_ai_questions,
)
from quicknote.services.recommendation import SelectorConfig


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _generator(handler, requests=None) -> QuestionGenerator:
    def recording(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return handler(request)

    transport = OpenAICompatibleTransport(
        "https://llm.example.com/v1", "sk-test", timeout=5, http_transport=httpx.MockTransport(recording),
    )
    return QuestionGenerator(transport, "test-model")


BATCH = {
    "questions": [
        {"question": "What did you learn from today's mistake?", "category": "growth", "tag": "learning"},
        {"question": "Who made you smile this week?", "category": "gratitude", "tag": "social"},
    ]
}


@pytest.mark.asyncio
async def test_generate_questions_requests_json_and_validates():
    requests = []
    generator = _generator(lambda r: httpx.Response(200, json=_completion(json.dumps(BATCH))), requests)

    questions = await generator.generate_questions(count=2, categories=["growth", "gratitude"])

    assert [q.category for q in questions] == ["growth", "gratitude"]
    sent = json.loads(requests[0].content)
    assert requests[0].url == "https://llm.example.com/v1/chat/completions"
    assert requests[0].headers["Authorization"] == "Bearer sk-test"
    assert sent["model"] == "test-model"
    assert sent["response_format"] == {"type": "json_object"}
    assert "growth, gratitude" in sent["messages"][1]["content"]


@pytest.mark.asyncio
async def test_free_text_reply_is_rejected():
    reply = "Sure! Here are some questions:\n```json\n" + json.dumps(BATCH) + "\n```"
    generator = _generator(lambda r: httpx.Response(200, json=_completion(reply)))
    with pytest.raises(GenerationError):
        await generator.generate_questions(count=2)


@pytest.mark.asyncio
async def test_wrong_shape_is_rejected():
    generator = _generator(lambda r: httpx.Response(200, json=_completion(json.dumps({"questions": []}))))
    with pytest.raises(GenerationError):
        await generator.generate_questions(count=2)


@pytest.mark.asyncio
async def test_http_error_is_generation_error():
    generator = _generator(lambda r: httpx.Response(401, text="invalid api key"))
    with pytest.raises(GenerationError) as exc:
        await generator.generate_questions(count=1)
    assert "401" in exc.value.message
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_unreachable_provider_is_generation_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    generator = _generator(refuse)
    with pytest.raises(GenerationError):
        await generator.ping()


@pytest.mark.asyncio
async def test_personalized_question():
    reply = {"question": "What would a band teach you about teamwork?", "category": "growth", "tag": "learning"}
    requests = []
    generator = _generator(lambda r: httpx.Response(200, json=_completion(json.dumps(reply))), requests)

    question = await generator.generate_personalized_question(
        [{"question": "What would you try if you could not fail?", "answer": "start a band"}]
    )
    assert question.category == "growth"
    assert "start a band" in json.loads(requests[0].content)["messages"][1]["content"]


@pytest.mark.asyncio
async def test_ping_reports_latency():
    requests = []
    generator = _generator(lambda r: httpx.Response(200, json=_completion("Hello")), requests)

    result = await generator.ping()

    assert result.latency_ms >= 0
    assert result.model == "test-model"
    assert "response_format" not in json.loads(requests[0].content)


def test_build_generator_without_config_is_unavailable():
    with pytest.raises(AIUnavailableError):
        build_generator()
    assert ai_service.ai_status() == {"configured": False, "provider": "none", "model": None}


def test_build_generator_with_user_config():
    generator = build_generator(AIConfig(base_url="https://api.deepseek.com/v1", api_key="k"))
    assert generator.model == "deepseek-chat"
    assert generator.transport.provider == "openai-compatible"


@pytest.mark.asyncio
async def test_generated_questions_are_stored_once(db, user):
    generator = _generator(lambda r: httpx.Response(200, json=_completion(json.dumps(BATCH))))

    first = await generate_ai_questions(db, generator, 2)
    second = await generate_ai_questions(db, generator, 2)

    assert first["count"] == 2
    assert [q.id for q in second["questions"]] == [q.id for q in first["questions"]]
    total = await db.scalar(select(func.count()).select_from(DailyQuestion))
    assert total == 2


@pytest.mark.asyncio
async def test_generation_steers_toward_preferred_categories(db, user, questions):
    for q in questions:
        if q.category == "growth":
            await rating_service.rate_question(db, user.id, q.id, 5)

    requests = []
    generator = _generator(lambda r: httpx.Response(200, json=_completion(json.dumps(BATCH))), requests)
    result = await generate_ai_questions(
        db, generator, 2, user_id=user.id,
        config=SelectorConfig(preference_ratio=1.0), rng=random.Random(0),
    )

    assert result["preference_applied"] is True
    assert result["used_categories"] == ["growth"]
    prompt = json.loads(requests[0].content)["messages"][1]["content"]
    assert '"category" must be one of: growth\n' in prompt


@pytest.mark.asyncio
async def test_generation_without_ratings_is_open(db, user, questions):
    generator = _generator(lambda r: httpx.Response(200, json=_completion(json.dumps(BATCH))))
    result = await generate_ai_questions(
        db, generator, 2, user_id=user.id, config=SelectorConfig(preference_ratio=1.0),
    )
    assert result["preference_applied"] is False
    assert result["used_categories"] == []


class FakeGenerator:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.histories = []

    async def generate_personalized_question(self, history):
        self.histories.append(list(history))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.mark.asyncio
async def test_today_question_personalised_from_history(db, user, questions, today):
    await answer_service.record_answer(db, user.id, questions[0].id, "start a band", today - timedelta(days=1))
    generator = FakeGenerator(reply=ai_service.GeneratedQuestion(
        question="What would your band sound like?", category="creativity", tag="possibilities",
    ))

    result = await question_service.get_today_question(db, user.id, today, generator=generator)

    assert result["source"] == "ai"
    assert result["question"].question == "What would your band sound like?"
    assert generator.histories[0][0]["answer"] == "start a band"


@pytest.mark.asyncio
async def test_today_question_falls_back_when_ai_fails(db, user, questions, today):
    await answer_service.record_answer(db, user.id, questions[0].id, "start a band", today - timedelta(days=1))
    generator = FakeGenerator(error=GenerationError("boom"))

    result = await question_service.get_today_question(
        db, user.id, today, generator=generator, rng=random.Random(0),
    )
    assert result["source"] in {"preference", "random"}
    assert result["question"].id in {q.id for q in questions}


@pytest.mark.asyncio
async def test_today_question_without_history_skips_ai(db, user, questions, today):
    generator = FakeGenerator(error=AssertionError("should not be called"))
    result = await question_service.get_today_question(db, user.id, today, generator=generator)
    assert result["source"] == "random"
    assert generator.histories == []


@pytest.mark.asyncio
async def test_groq_transport_uses_json_mode():
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        message = SimpleNamespace(content=json.dumps(BATCH))
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    generator = QuestionGenerator(ai_service.GroqTransport(client=client), "llama-3.3-70b-versatile")

    questions = await generator.generate_questions(count=1)

    assert len(questions) == 1
    assert calls[0]["response_format"] == {"type": "json_object"}
    assert calls[0]["model"] == "llama-3.3-70b-versatile"


@pytest.mark.asyncio
@pytest.mark.parametrize("item", [
    {"question": "   ", "category": "growth"},
    {"question": "What now?", "category": "  "},
    {"question": "What now?", "category": "g" * 51},
    {"question": "What now?", "category": "growth", "tag": "t" * 51},
])
async def test_malformed_generated_question_is_not_stored(db, user, item):
    payload = json.dumps({"questions": [item]})
    generator = _generator(lambda r: httpx.Response(200, json=_completion(payload)))

    with pytest.raises(GenerationError):
        await generate_ai_questions(db, generator, 1)

    total = await db.scalar(select(func.count()).select_from(DailyQuestion))
    assert total == 0


@pytest.mark.asyncio
async def test_generated_text_is_trimmed():
    payload = json.dumps({"questions": [{"question": "  What now?  ", "category": " growth ", "tag": "action"}]})
    generator = _generator(lambda r: httpx.Response(200, json=_completion(payload)))

    questions = await generator.generate_questions(count=1)

    assert questions[0].question == "What now?"
    assert questions[0].category == "growth"


@pytest.mark.asyncio
async def test_groq_empty_choices_is_generation_error():
    async def create(**kwargs):
        return SimpleNamespace(choices=[])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    generator = QuestionGenerator(ai_service.GroqTransport(client=client), "llama-3.3-70b-versatile")

    with pytest.raises(GenerationError):
        await generator.generate_questions(count=1)
