# quicknote/services/aggregates.py
"""
Streak, heatmap and distribution maths over plain values.

Nothing here touches the database; stats_service.py feeds these functions
with dates and rows it has already loaded.
"""
import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

UNKNOWN_TAG = "unknown"
PERIODS = ("week", "month", "year")


def current_streak(active_dates: Iterable[date], today: date) -> int:
    """
    Consecutive active days ending today, or ending yesterday if today has no
    answer yet (so the streak does not reset until a full day is missed).
    """
    days = set(active_dates)
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def longest_streak(active_dates: Iterable[date]) -> int:
    days = sorted(set(active_dates))
    best = run = 0
    previous: Optional[date] = None
    for day in days:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    return best


def activity_level(count: int) -> int:
    """Heatmap bucket: 0 | 1–2 | 3–4 | 5–6 | 7+."""
    if count <= 0:
        return 0
    if count <= 2:
        return 1
    if count <= 4:
        return 2
    if count <= 6:
        return 3
    return 4


def activity_for_year(counts_by_date: Dict[date, int], year: int) -> List[dict]:
    """One {date, count, level} entry for every day of `year`, zeros included."""
    start = date(year, 1, 1)
    total_days = 366 if calendar.isleap(year) else 365
    activities = []
    for offset in range(total_days):
        day = start + timedelta(days=offset)
        count = counts_by_date.get(day, 0)
        activities.append({
            "date": day.isoformat(),
            "count": count,
            "level": activity_level(count),
        })
    return activities


def period_start(period: str, today: date) -> date:
    if period == "week":
        return today - timedelta(days=today.weekday())   # ISO week, Monday
    if period == "month":
        return today.replace(day=1)
    if period == "year":
        return today.replace(month=1, day=1)
    raise ValueError(f"Unknown period: {period!r}")


def tag_distribution(categories: Iterable[Optional[str]]) -> List[dict]:
    counts = Counter(category or UNKNOWN_TAG for category in categories)
    total = sum(counts.values())
    if total == 0:
        return []
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        {"tag": tag, "count": count, "percentage": round(count * 100 / total, 1)}
        for tag, count in ranked
    ]


@dataclass(frozen=True)
class AnswerPoint:
    """The slice of an answer the growth comparison needs."""
    category: Optional[str]
    question: str
    answer: str
    date: date
    order: int = 0   # tie-break for same-day answers (row id or creation order)


def growth_comparison(answers: Sequence[AnswerPoint], limit: int) -> List[dict]:
    """
    For every category answered at least twice, pair the first answer with
    the latest one so the user can see how their thinking moved.
    """
    grouped: Dict[str, List[AnswerPoint]] = {}
    for a in answers:
        grouped.setdefault(a.category or UNKNOWN_TAG, []).append(a)

    comparisons = []
    for category, items in grouped.items():
        if len(items) < 2:
            continue
        chronological = sorted(items, key=lambda a: (a.date, a.order))
        comparisons.append({
            "category": category,
            "total_answers": len(chronological),
            "first_answer": _point_dict(chronological[0]),
            "latest_answer": _point_dict(chronological[-1]),
            "all_answers": [_point_dict(a) for a in chronological],
        })

    comparisons.sort(key=lambda c: (-c["total_answers"], c["category"]))
    return comparisons[:limit]


def _point_dict(a: AnswerPoint) -> dict:
    return {"question": a.question, "answer": a.answer, "date": a.date}
