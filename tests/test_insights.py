"""Tests for derived collection views."""

import random
from datetime import UTC, date, datetime, timedelta

from noteforge.services.insights import activity_by_day, random_notes, sort_by_category

from fakes import make_note


def test_sort_by_category_groups_then_newest_first():
    now = datetime.now(UTC)
    older_tech = make_note("a", category="Tech", timestamp=now - timedelta(hours=2))
    newer_tech = make_note("b", category="Tech", timestamp=now)
    lore = make_note("c", category="Lore", timestamp=now - timedelta(days=1))

    ordered = sort_by_category([older_tech, lore, newer_tech])

    assert [n.id for n in ordered] == [lore.id, newer_tech.id, older_tech.id]


def test_activity_by_day_counts_window():
    today = date(2025, 5, 10)
    notes = [
        make_note("x", timestamp=datetime(2025, 5, 10, 9, tzinfo=UTC)),
        make_note("y", timestamp=datetime(2025, 5, 10, 18, tzinfo=UTC)),
        make_note("z", timestamp=datetime(2025, 5, 8, 12, tzinfo=UTC)),
        make_note("old", timestamp=datetime(2020, 1, 1, tzinfo=UTC)),
    ]

    counts = activity_by_day(notes, days=7, today=today)

    assert len(counts) == 8
    assert next(iter(counts)) == date(2025, 5, 3)
    assert counts[date(2025, 5, 10)] == 2
    assert counts[date(2025, 5, 8)] == 1
    assert sum(counts.values()) == 3


def test_random_notes_picks_distinct_notes():
    notes = [make_note(f"thought {i}") for i in range(10)]

    picked = random_notes(notes, count=3, rng=random.Random(7))

    assert len(picked) == 3
    assert len({n.id for n in picked}) == 3
    assert all(n in notes for n in picked)
    assert random_notes(notes, count=3, rng=random.Random(7)) == picked


def test_random_notes_with_small_collection():
    notes = [make_note("only one")]

    assert random_notes(notes, count=3) == notes
    assert random_notes([], count=3) == []
