"""Tests for exporting and importing the note collection."""

import json

import pytest

from noteforge.models.note import AIStatus, Intent
from noteforge.services.note_service import parse_export
from noteforge.utils.exceptions import ImportValidationError

from fakes import make_note


@pytest.mark.asyncio
async def test_export_import_round_trip(runtime):
    await runtime.start()
    for content in ("first thought", "second thought"):
        runtime.store.import_many([make_note(content, tags=["Ideas"], intent="task")])
    exported = json.dumps(runtime.notes.export_notes())
    original = runtime.store.snapshot()

    for note in original:
        runtime.notes.delete_note(note.id)
    result = runtime.notes.import_notes(exported)

    assert result.imported == 2
    assert result.skipped == 0
    restored = runtime.store.snapshot()
    assert [n.id for n in restored] == [n.id for n in original]
    assert restored[0].tags == ["Ideas"]
    assert restored[0].intent == Intent.TASK
    assert restored[0].embedding == pytest.approx(original[0].embedding)
    assert restored[0].timestamp == original[0].timestamp
    await runtime.stop()


@pytest.mark.asyncio
async def test_import_skips_existing_ids(runtime):
    await runtime.start()
    note = make_note("already here")
    runtime.store.import_many([note])

    result = runtime.notes.import_notes([note.to_export(), make_note("new").to_export()])

    assert result.imported == 1
    assert result.skipped == 1
    await runtime.stop()


def test_export_uses_camel_case():
    exported = make_note("x", rag_enabled=True, calendar_sync=False).to_export()
    assert {"id", "content", "timestamp", "aiStatus", "ragEnabled", "calendarSync"} <= exported.keys()


def test_parse_accepts_epoch_millisecond_timestamps():
    notes = parse_export([{"id": "n1", "content": "old note", "timestamp": 1700000000000}])
    assert notes[0].timestamp.year == 2023


def test_parse_keeps_status_and_drops_bad_embeddings():
    notes = parse_export(
        [{"id": "n1", "content": "x", "aiStatus": "error", "embedding": [1, 2, 3]}]
    )
    assert notes[0].ai_status == AIStatus.ERROR
    assert notes[0].embedding is None


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        b"\xff\xfe",
        json.dumps({"id": "n1", "content": "x"}),
        json.dumps([{"id": "n1", "content": "x"}, {"content": "no id"}]),
        json.dumps([{"id": "n1", "content": ""}]),
        json.dumps([{"id": "n1", "content": "x"}, "oops"]),
        json.dumps([{"id": "n1", "content": "x", "aiStatus": "exploded"}]),
    ],
)
def test_parse_rejects_malformed_payloads(payload):
    with pytest.raises(ImportValidationError):
        parse_export(payload)


@pytest.mark.asyncio
async def test_rejected_import_changes_nothing(runtime):
    await runtime.start()
    before = runtime.store.snapshot()
    payload = json.dumps([{"id": "good", "content": "fine"}, {"id": "bad"}])

    with pytest.raises(ImportValidationError):
        runtime.notes.import_notes(payload)

    assert runtime.store.snapshot() == before
    await runtime.stop()


@pytest.mark.asyncio
async def test_import_resumes_notes_exported_mid_enrichment(runtime, classifier):
    await runtime.start()
    payload = [
        {"id": "pending", "content": "half enriched thought", "aiStatus": "processing"},
        {"id": "settled", "content": "finished thought", "aiStatus": "completed"},
    ]

    result = runtime.notes.import_notes(payload)
    await runtime.wait_idle()

    assert result.imported == 2
    assert runtime.store.get("pending").ai_status == AIStatus.COMPLETED
    assert runtime.store.get("pending").headline == "About half"
    assert runtime.store.get("settled").ai_status == AIStatus.COMPLETED
    assert classifier.calls == ["half enriched thought"]
    await runtime.stop()
