# quicknote/services/recommendation.py
"""
Question recommendation: preference estimation + weighted selection.

Everything in this module is pure. The database-facing code in
question_service.py loads the pool, the rating history and the recent
history, then hands them here together with a random.Random instance, so a
seeded generator always gives the same pick.

Policy
------
1. Draw r in [0, 1).
2. If the user has preferred categories (average rating >= 4.0) and
   r < preference_ratio: pick a preferred category weighted by how many
   ratings it has, then a question from it that was not served recently.
3. Otherwise (or if step 2 finds nothing): uniform pick over the pool minus
   recent history. If recent history covers the whole pool, reuse questions.
"""
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from quicknote.core.config import settings

SOURCE_PREFERENCE = "preference"
SOURCE_RANDOM = "random"


@dataclass(frozen=True)
class SelectorConfig:
    preference_ratio: float = 0.7
    recent_window: int = 10
    min_preferred_average: float = 4.0

    @classmethod
    def from_settings(cls) -> "SelectorConfig":
        return cls(
            preference_ratio=settings.PREFERENCE_RATIO,
            recent_window=settings.RECENT_HISTORY_WINDOW,
            min_preferred_average=settings.PREFERRED_MIN_AVERAGE,
        )


@dataclass(frozen=True)
class CategoryAffinity:
    average_rating: float
    rating_count: int


@dataclass(frozen=True)
class Selection:
    question: object   # anything with .id and .category (ORM row or test double)
    source: str


# ── Preference estimation ─────────────────────────────────────────────────────

def estimate_affinity(ratings: Iterable[Tuple[Optional[str], int]]) -> Dict[str, CategoryAffinity]:
    """
    Fold (category, rating) pairs into per-category average and count.
    Ratings on uncategorised questions carry no preference signal and are skipped.
    """
    totals: Dict[str, List[int]] = {}   # category -> [sum, count]
    for category, rating in ratings:
        if not category:
            continue
        bucket = totals.setdefault(category, [0, 0])
        bucket[0] += rating
        bucket[1] += 1

    return {
        category: CategoryAffinity(average_rating=total / count, rating_count=count)
        for category, (total, count) in totals.items()
    }


def preferred_categories(
    affinity: Dict[str, CategoryAffinity],
    min_average: float = 4.0,
) -> Dict[str, int]:
    """Return {category: rating_count} for categories the user rates highly."""
    return {
        category: a.rating_count
        for category, a in affinity.items()
        if a.rating_count >= 1 and a.average_rating >= min_average
    }


def top_preferred(affinity: Dict[str, CategoryAffinity], min_average: float, limit: int = 3) -> List[str]:
    """Preferred categories ordered by rating count (then name), capped at `limit`."""
    preferred = preferred_categories(affinity, min_average)
    ranked = sorted(preferred.items(), key=lambda item: (-item[1], item[0]))
    return [category for category, _ in ranked[:limit]]


# ── Selection ─────────────────────────────────────────────────────────────────

def _pick_preferred(
    candidates: Sequence,
    weights: Dict[str, int],
    rng: random.Random,
    category_hint: Optional[str],
):
    by_category: Dict[str, list] = {}
    for q in candidates:
        if q.category in weights:
            by_category.setdefault(q.category, []).append(q)
    if not by_category:
        return None

    if category_hint in by_category:
        chosen = category_hint
    else:
        categories = sorted(by_category)
        chosen = rng.choices(categories, weights=[weights[c] for c in categories], k=1)[0]
    return rng.choice(by_category[chosen])


def _pick_random(
    pool: Sequence,
    eligible: Sequence,
    rng: random.Random,
    category_hint: Optional[str],
):
    candidates = eligible or pool
    if category_hint:
        hinted = [q for q in candidates if q.category == category_hint]
        if hinted:
            candidates = hinted
    return rng.choice(candidates)


def select_question(
    pool: Sequence,
    affinity: Dict[str, CategoryAffinity],
    recent_ids: Iterable[int],
    config: SelectorConfig,
    rng: Optional[random.Random] = None,
    category_hint: Optional[str] = None,
) -> Optional[Selection]:
    """
    Choose the next question for a user. Returns None only for an empty pool.

    `category_hint` narrows the pick to one category when that category still
    has eligible questions; it never changes which branch is taken.
    """
    rng = rng or random.Random()
    if not pool:
        return None

    ordered = sorted(pool, key=lambda q: q.id)
    excluded = set(recent_ids)
    eligible = [q for q in ordered if q.id not in excluded]

    r = rng.random()
    weights = preferred_categories(affinity, config.min_preferred_average)
    if weights and r < config.preference_ratio:
        picked = _pick_preferred(eligible, weights, rng, category_hint)
        if picked is not None:
            return Selection(question=picked, source=SOURCE_PREFERENCE)

    return Selection(
        question=_pick_random(ordered, eligible, rng, category_hint),
        source=SOURCE_RANDOM,
    )
