"""Tests for the Ollama classifier client."""

import json

import httpx
import pytest

from noteforge.models.context import ContextDocument
from noteforge.models.note import FALLBACK_CATEGORY, Intent, ModelTier
from noteforge.services.classifier import (
    ClassifierProvider,
    normalize_category,
    normalize_headline,
    normalize_intent,
    normalize_tags,
    parse_event_details,
)
from noteforge.utils.exceptions import ClassificationFailure


def ollama_returning(body, status_code=200, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(json.loads(request.content))
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


def classifier_with(transport, **kwargs) -> ClassifierProvider:
    return ClassifierProvider(base_url="http://ollama.test", transport=transport, **kwargs)


def test_normalize_category():
    assert normalize_category("tech") == "Tech"
    assert normalize_category(" Lore ") == "Lore"
    assert normalize_category("Cooking") == FALLBACK_CATEGORY
    assert normalize_category(None) == FALLBACK_CATEGORY


def test_normalize_headline_caps_words():
    assert normalize_headline("one two three four five six seven") == "one two three four five"
    assert normalize_headline("") == "New Entry"
    assert normalize_headline(42) == "New Entry"


def test_normalize_tags_keeps_library_members():
    tags = normalize_tags(["#work", "Work", "unknown", "ideas", 3, "Code", "Music", "Art", "Books"])
    assert tags == ["Work", "Ideas", "Code", "Music", "Art"]
    assert normalize_tags("Work") == []


def test_normalize_intent():
    assert normalize_intent("TASK") == Intent.TASK
    assert normalize_intent("whatever") == Intent.REFERENCE


def test_parse_event_details():
    event = parse_event_details(
        {"title": "Launch", "start": "2025-03-01T09:00:00", "end": "null", "location": ""}
    )
    assert event.title == "Launch"
    assert event.start.hour == 9
    assert event.end is None
    assert event.location is None
    assert parse_event_details({"start": "2025-03-01T09:00:00"}) is None


@pytest.mark.asyncio
async def test_classify_parses_and_normalizes():
    requests: list[dict] = []
    answer = {
        "category": "mission",
        "headline": "Board the shuttle at dawn tomorrow morning",
        "tags": ["Travel", "Urgent", "made-up"],
        "intent": "task",
        "calendar_sync": True,
        "event": {"title": "Shuttle", "start": "2025-06-01T06:00:00"},
    }
    transport = ollama_returning({"response": json.dumps(answer)}, requests=requests)
    classifier = classifier_with(transport)

    result = await classifier.classify("Board the shuttle at dawn", tier=ModelTier.PRO)

    assert result["category"] == "Mission"
    assert result["headline"] == "Board the shuttle at dawn"
    assert result["tags"] == ["Travel", "Urgent"]
    assert result["intent"] == Intent.TASK
    assert result["calendar_sync"] is True
    assert result["event_details"].title == "Shuttle"
    assert requests[0]["model"] == "qwen3:14b"
    assert requests[0]["format"] == "json"
    assert requests[0]["stream"] is False


@pytest.mark.asyncio
async def test_classify_includes_reference_document():
    requests: list[dict] = []
    transport = ollama_returning({"response": "{}"}, requests=requests)
    classifier = classifier_with(transport)
    document = ContextDocument(filename="lore.txt", text="Kestrel is the flagship.")

    result = await classifier.classify("Kestrel update", rag_context=document)

    assert "Kestrel is the flagship." in requests[0]["prompt"]
    assert result["category"] == FALLBACK_CATEGORY
    assert result["calendar_sync"] is False


@pytest.mark.asyncio
async def test_classify_malformed_json_fails():
    classifier = classifier_with(ollama_returning({"response": "not json"}))
    with pytest.raises(ClassificationFailure):
        await classifier.classify("hello")


@pytest.mark.asyncio
async def test_classify_non_object_fails():
    classifier = classifier_with(ollama_returning({"response": "[1, 2]"}))
    with pytest.raises(ClassificationFailure):
        await classifier.classify("hello")


@pytest.mark.asyncio
async def test_remote_error_becomes_classification_failure():
    classifier = classifier_with(ollama_returning({"error": "model not found"}, status_code=404))
    with pytest.raises(ClassificationFailure) as excinfo:
        await classifier.classify("hello")
    assert "model not found" in excinfo.value.detail


@pytest.mark.asyncio
async def test_timeout_becomes_classification_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    classifier = classifier_with(httpx.MockTransport(handler))
    with pytest.raises(ClassificationFailure):
        await classifier.classify("hello")


@pytest.mark.asyncio
async def test_api_key_is_sent():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"response": "{}"})

    classifier = classifier_with(httpx.MockTransport(handler), api_key="secret")
    await classifier.classify("hello")

    assert seen[0].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_reformat_returns_stripped_text_or_original():
    classifier = classifier_with(ollama_returning({"response": "  Clean text.  "}))
    assert await classifier.reformat("messy") == "Clean text."

    classifier = classifier_with(ollama_returning({"response": ""}))
    assert await classifier.reformat("messy") == "messy"


@pytest.mark.asyncio
async def test_check_connection():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": []})

    assert await classifier_with(httpx.MockTransport(handler)).check_connection() is True

    def down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    assert await classifier_with(httpx.MockTransport(down)).check_connection() is False
