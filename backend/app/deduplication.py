"""
Title-based trend deduplication and the weekly refresh quota.

Two checks guard trend generation:

1. **Title similarity**: a proposed seed is dropped when its title matches
   any previously seen title after normalisation, or when the shared-word
   ratio reaches ``SIMILARITY_THRESHOLD``.
2. **Weekly quota**: automatic generation runs only when fewer than
   ``WEEKLY_TREND_TARGET`` automatic trends exist inside the rolling window.

Decision rules
--------------
- normalize(a) == normalize(b)                      ->  similar
- |words(a) in words(b)| / max(|a|, |b|) >= 0.8     ->  similar
- otherwise                                         ->  distinct

Usage
-----
    from app.deduplication import filter_unique_seeds, should_refresh_trends

    seeds = filter_unique_seeds(proposed, existing_titles, limit=count)
    if should_refresh_trends(current_week_trends):
        ...
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------
SIMILARITY_THRESHOLD = 0.8  # shared-word ratio at or above this -> similar
WEEKLY_TREND_TARGET = 1  # automatic trends expected per rolling window
QUOTA_WINDOW_DAYS = 7

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def normalize_title(title: str) -> str:
    """Lowercase, strip punctuation and surrounding whitespace."""
    return _PUNCTUATION_RE.sub("", (title or "").lower()).strip()


def word_overlap_ratio(new_title: str, existing_title: str) -> float:
    """Fraction of the new title's words found in the existing title,
    relative to the longer word list."""
    new_words = normalize_title(new_title).split()
    existing_words = normalize_title(existing_title).split()
    longest = max(len(new_words), len(existing_words))
    if longest == 0:
        return 0.0
    common = [word for word in new_words if word in existing_words]
    return len(common) / longest


def is_similar_title(new_title: str, existing_titles: Iterable[str]) -> bool:
    """Return True if *new_title* duplicates any of *existing_titles*."""
    normalized_new = normalize_title(new_title)
    for existing in existing_titles:
        if normalized_new == normalize_title(existing):
            return True
        if word_overlap_ratio(new_title, existing) >= SIMILARITY_THRESHOLD:
            return True
    return False


def filter_unique_seeds(
    seeds: Sequence[Any],
    existing_titles: Iterable[str],
    limit: Optional[int] = None,
) -> List[Any]:
    """Drop seeds whose titles collide with known titles or with each other.

    Seeds may be dicts or objects with a ``title`` attribute. Order is kept
    and at most *limit* seeds are returned.
    """
    seen = list(existing_titles)
    unique: List[Any] = []
    for seed in seeds:
        title = seed["title"] if isinstance(seed, dict) else seed.title
        if is_similar_title(title, seen):
            logger.info(f"Skipping duplicate trend seed: {title!r}")
            continue
        unique.append(seed)
        seen.append(title)
        if limit is not None and len(unique) >= limit:
            break
    return unique


# ---------------------------------------------------------------------------
# Weekly quota
# ---------------------------------------------------------------------------


def current_week_window_start(now: Optional[datetime] = None) -> datetime:
    """Midnight at the start of the day seven days before *now*.

    The day boundary is taken in the timezone of *now*, which defaults to
    the current UTC time.
    """
    now = now or datetime.now(timezone.utc)
    start = now - timedelta(days=QUOTA_WINDOW_DAYS)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def should_refresh_trends(current_week_trends: Sequence[Any]) -> bool:
    return len(current_week_trends) < WEEKLY_TREND_TARGET


def trends_needed(current_week_trends: Sequence[Any]) -> int:
    return max(0, WEEKLY_TREND_TARGET - len(current_week_trends))
