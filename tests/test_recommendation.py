import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import pytest

from quicknote.core.errors import NotFoundError
from quicknote.services import question_service, rating_service
from quicknote.services.recommendation import (
    SelectorConfig,
    estimate_affinity,
    preferred_categories,
    select_question,
    top_preferred,
)


@dataclass(frozen=True)
class Q:
    id: int
    category: Optional[str]


POOL = [
    Q(1, "growth"), Q(2, "growth"), Q(3, "growth"),
    Q(4, "gratitude"), Q(5, "gratitude"),
    Q(6, "reflection"), Q(7, None),
]

RATINGS = [("growth", 5), ("growth", 5), ("growth", 4), ("gratitude", 2), ("gratitude", 1)]


def test_estimate_affinity_averages_and_counts():
    affinity = estimate_affinity(RATINGS + [(None, 5)])
    assert set(affinity) == {"growth", "gratitude"}
    assert affinity["growth"].rating_count == 3
    assert affinity["growth"].average_rating == pytest.approx(14 / 3)
    assert affinity["gratitude"].average_rating == pytest.approx(1.5)
    assert preferred_categories(affinity) == {"growth": 3}


def test_top_preferred_orders_by_rating_count():
    affinity = estimate_affinity([("values", 5), ("growth", 4), ("growth", 5), ("logic", 3)])
    assert top_preferred(affinity, 4.0) == ["growth", "values"]


def test_zero_ratings_always_random():
    config = SelectorConfig(preference_ratio=1.0)
    for seed in range(50):
        selection = select_question(POOL, {}, [], config, rng=random.Random(seed))
        assert selection.source == "random"


def test_preferred_category_with_full_ratio():
    affinity = estimate_affinity(RATINGS)
    config = SelectorConfig(preference_ratio=1.0)
    for seed in range(50):
        selection = select_question(POOL, affinity, [], config, rng=random.Random(seed))
        assert selection.source == "preference"
        assert selection.question.category == "growth"


WEIGHTED_POOL = [Q(1, "growth"), Q(2, "growth"), Q(3, "growth"), Q(8, "values"), Q(9, "values")]


def _preferred_picks(ratings, seeds=400):
    affinity = estimate_affinity(ratings)
    config = SelectorConfig(preference_ratio=1.0)
    picks = {"growth": 0, "values": 0}
    for seed in range(seeds):
        selection = select_question(WEIGHTED_POOL, affinity, [], config, rng=random.Random(seed))
        assert selection.source == "preference"
        picks[selection.question.category] += 1
    return picks


def test_preferred_categories_weighted_by_rating_count():
    picks = _preferred_picks([("growth", 5), ("growth", 5), ("growth", 5), ("values", 5)])
    assert picks["values"] > 0
    assert picks["growth"] > 1.8 * picks["values"]


def test_equal_rating_counts_share_the_picks():
    picks = _preferred_picks([("growth", 5), ("growth", 4), ("values", 5), ("values", 4)])
    assert picks["growth"] >= 100
    assert picks["values"] >= 100


def test_zero_ratio_never_uses_preferences():
    affinity = estimate_affinity(RATINGS)
    config = SelectorConfig(preference_ratio=0.0)
    for seed in range(20):
        assert select_question(POOL, affinity, [], config, rng=random.Random(seed)).source == "random"


def test_recent_history_is_excluded():
    config = SelectorConfig(preference_ratio=0.0)
    recent = [1, 2, 3, 4, 5, 6]
    for seed in range(20):
        assert select_question(POOL, {}, recent, config, rng=random.Random(seed)).question.id == 7


def test_exhausted_history_reuses_the_pool():
    config = SelectorConfig(preference_ratio=1.0)
    affinity = estimate_affinity(RATINGS)
    selection = select_question(POOL, affinity, [q.id for q in POOL], config, rng=random.Random(3))
    assert selection.source == "random"
    assert selection.question in POOL


def test_preferred_exhausted_falls_back_to_random():
    config = SelectorConfig(preference_ratio=1.0)
    affinity = estimate_affinity(RATINGS)
    selection = select_question(POOL, affinity, [1, 2, 3], config, rng=random.Random(0))
    assert selection.source == "random"
    assert selection.question.category != "growth"


def test_category_hint_narrows_without_changing_source():
    config = SelectorConfig(preference_ratio=1.0)
    for seed in range(20):
        selection = select_question(POOL, {}, [], config, rng=random.Random(seed), category_hint="gratitude")
        assert selection.source == "random"
        assert selection.question.category == "gratitude"


def test_seeded_rng_is_deterministic():
    config = SelectorConfig()
    affinity = estimate_affinity(RATINGS)
    first = select_question(POOL, affinity, [], config, rng=random.Random(42))
    shuffled = list(reversed(POOL))
    second = select_question(shuffled, affinity, [], config, rng=random.Random(42))
    assert first == second


def test_empty_pool_returns_none():
    assert select_question([], {}, [], SelectorConfig(), rng=random.Random(0)) is None


@pytest.mark.asyncio
async def test_empty_question_store_is_not_found(db, user):
    with pytest.raises(NotFoundError):
        await question_service.get_recommended_question(db, user.id, rng=random.Random(0))


@pytest.mark.asyncio
async def test_growth_preference_until_exhausted(db, user, questions, today):
    growth = [q for q in questions if q.category == "growth"]
    gratitude = [q for q in questions if q.category == "gratitude"]
    for q, stars in zip(growth, (5, 5, 4)):
        await rating_service.rate_question(db, user.id, q.id, stars)
    for q, stars in zip(gratitude, (2, 1)):
        await rating_service.rate_question(db, user.id, q.id, stars)

    affinity = await question_service.load_affinity(db, user.id)
    assert affinity["growth"].average_rating == pytest.approx(4.67, abs=0.01)
    assert affinity["gratitude"].average_rating == pytest.approx(1.5)

    config = SelectorConfig(preference_ratio=1.0, recent_window=10)
    rng = random.Random(11)
    served = []
    for offset in range(3):
        picked = await question_service.get_today_question(
            db, user.id, today + timedelta(days=offset), config=config, rng=rng,
        )
        assert picked["source"] == "preference"
        assert picked["question"].category == "growth"
        served.append(picked["question"].id)
    assert sorted(served) == sorted(q.id for q in growth)

    after = await question_service.get_today_question(
        db, user.id, today + timedelta(days=3), config=config, rng=rng,
    )
    assert after["source"] == "random"
    assert after["question"].category != "growth"


@pytest.mark.asyncio
async def test_today_question_is_stable_for_the_day(db, user, questions, today):
    first = await question_service.get_today_question(db, user.id, today, rng=random.Random(1))
    again = await question_service.get_today_question(db, user.id, today, rng=random.Random(2))
    assert again["source"] == "existing"
    assert again["question"].id == first["question"].id
    assert again["answered"] is False


@pytest.mark.asyncio
async def test_recent_ids_merge_served_and_answered(db, user, questions, today):
    await question_service.record_assignment(db, user.id, questions[0], today - timedelta(days=2))
    await question_service.record_assignment(db, user.id, questions[1], today - timedelta(days=1))
    assert await question_service.recent_question_ids(db, user.id, 10) == [questions[1].id, questions[0].id]
    assert await question_service.recent_question_ids(db, user.id, 1) == [questions[1].id]


@pytest.mark.asyncio
async def test_seed_only_fills_an_empty_store(db):
    assert await question_service.seed_questions(db) == len(question_service.SAMPLE_QUESTIONS)
    assert await question_service.seed_questions(db) == 0
    pool = await question_service.load_pool(db)
    assert {q.category for q in pool} >= {"growth", "gratitude", "reflection"}


def test_offline_fallback_is_stable_per_day(today):
    assert question_service.fallback_question_for(today) == question_service.fallback_question_for(today)
    assert question_service.fallback_question_for(today) in question_service.SAMPLE_QUESTIONS
