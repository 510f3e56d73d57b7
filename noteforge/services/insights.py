"""Derived views over the note collection."""

import random
from collections import Counter
from datetime import date, timedelta

from noteforge.models.note import FALLBACK_CATEGORY, Note
from noteforge.utils.datetime import utc_now

ACTIVITY_DAYS = 364
RESURFACE_COUNT = 3


def sort_by_category(notes: list[Note]) -> list[Note]:
    """Order notes by category (case-insensitive), newest first within a category."""
    return sorted(
        notes,
        key=lambda n: (
            (n.category or FALLBACK_CATEGORY).lower(),
            -n.timestamp.timestamp(),
        ),
    )


def activity_by_day(
    notes: list[Note], days: int = ACTIVITY_DAYS, today: date | None = None
) -> dict[date, int]:
    """
    Count notes created per day over the trailing window.

    Returns:
        Mapping of every day in the window (oldest first) to its note count
    """
    today = today or utc_now().date()
    start = today - timedelta(days=days)
    counts = Counter(n.timestamp.date() for n in notes)
    return {
        start + timedelta(days=i): counts.get(start + timedelta(days=i), 0)
        for i in range(days + 1)
    }


def random_notes(
    notes: list[Note], count: int = RESURFACE_COUNT, rng: random.Random | None = None
) -> list[Note]:
    """Pick up to ``count`` distinct notes at random to resurface."""
    rng = rng or random.Random()
    return rng.sample(notes, min(count, len(notes)))
