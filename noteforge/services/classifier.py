"""Ollama-backed note classification and reformatting."""

import json
import logging
from datetime import datetime
from typing import Any, TypedDict

import httpx

from noteforge.models.context import ContextDocument
from noteforge.models.note import (
    CATEGORIES,
    FALLBACK_CATEGORY,
    TAG_LIBRARY,
    EventDetails,
    Intent,
    ModelTier,
)
from noteforge.utils.exceptions import ClassificationFailure

logger = logging.getLogger(__name__)

MAX_HEADLINE_WORDS = 5
MAX_TAGS = 5
DEFAULT_HEADLINE = "New Entry"

CLASSIFY_SYSTEM_PROMPT = f"""You are an automated Knowledge Engine Librarian.
Analyze the note and provide metadata using ONLY the provided TAG LIBRARY.
RULES:
- category: one of {", ".join(CATEGORIES)}.
- headline: MAX {MAX_HEADLINE_WORDS} words.
- tags: 3-{MAX_TAGS} tags from TAG LIBRARY.
- intent: "task" if the note asks for something to be done, "reference" if it records
  knowledge worth keeping, "ephemeral" if it is a passing thought.
- calendar_sync: true only if the note describes an event at a specific time.
- event: when calendar_sync is true, an object with "title", "start" and optional "end"
  (YYYY-MM-DDTHH:MM:SS) and "location"; otherwise null.
OUTPUT FORMAT: JSON ONLY."""

REFORMAT_SYSTEM_PROMPT = """Reformat notes in authoritative, concise encyclopedic style.
No markdown, single paragraph. AUTHORITATIVE tone. Reply with the reformatted note only."""


class ClassificationResult(TypedDict):
    """Metadata produced for a note."""

    category: str
    headline: str
    tags: list[str]
    intent: Intent
    calendar_sync: bool
    event_details: EventDetails | None


def normalize_category(value: Any) -> str:
    """Map a model-supplied category onto the closed vocabulary."""
    if isinstance(value, str):
        wanted = value.strip().lower()
        for category in CATEGORIES:
            if category.lower() == wanted:
                return category
    return FALLBACK_CATEGORY


def normalize_headline(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_HEADLINE
    words = value.strip().split()
    return " ".join(words[:MAX_HEADLINE_WORDS])


def normalize_tags(value: Any) -> list[str]:
    """Keep tags that exist in the tag library, in library casing, de-duplicated."""
    if not isinstance(value, list):
        return []
    library = {tag.lower(): tag for tag in TAG_LIBRARY}
    tags: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        tag = library.get(item.strip().lstrip("#").lower())
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


def normalize_intent(value: Any) -> Intent:
    if isinstance(value, str):
        try:
            return Intent(value.strip().lower())
        except ValueError:
            pass
    return Intent.REFERENCE


def parse_event_details(value: Any) -> EventDetails | None:
    if not isinstance(value, dict) or not value.get("title"):
        return None

    def _parse_time(raw: Any) -> datetime | None:
        if not raw or raw == "null":
            return None
        try:
            return datetime.fromisoformat(str(raw))
        except (ValueError, TypeError):
            logger.warning(f"Failed to parse event time: {raw}")
            return None

    return EventDetails(
        title=str(value["title"]),
        start=_parse_time(value.get("start")),
        end=_parse_time(value.get("end")),
        location=value.get("location") or None,
    )


class ClassifierProvider:
    """Service for classifying and reformatting notes through the Ollama API."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        models: dict[str, str] | None = None,
        api_key: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the classifier.

        Args:
            base_url: Ollama API base URL
            models: Model name per tier (``flash`` / ``pro``)
            api_key: Optional API key for authentication
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.models = models or {
            ModelTier.FLASH: "qwen3:4b-instruct",
            ModelTier.PRO: "qwen3:14b",
        }
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> dict[str, str]:
        """Get request headers including auth if configured."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport)

    def model_for(self, tier: ModelTier | str) -> str:
        return self.models.get(ModelTier(tier), self.models[ModelTier.FLASH])

    async def check_connection(self) -> bool:
        """
        Check if Ollama is reachable.

        Returns:
            True if connected, False otherwise
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/api/tags",
                    headers=self._get_headers(),
                    timeout=5.0,
                )
                return response.status_code == 200
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def _generate(self, payload: dict[str, Any]) -> str:
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/api/generate",
                    headers=self._get_headers(),
                    json={**payload, "stream": False},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise ClassificationFailure("Classifier timed out") from e
        except httpx.HTTPStatusError as e:
            try:
                error_msg = e.response.json().get("error", str(e))
            except Exception:
                error_msg = str(e)
            raise ClassificationFailure(f"Ollama Error: {error_msg}") from e
        except httpx.HTTPError as e:
            raise ClassificationFailure(f"Ollama unreachable: {e}") from e
        except json.JSONDecodeError as e:
            raise ClassificationFailure("Ollama returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise ClassificationFailure("Ollama returned an unexpected body")
        return data.get("response", "")

    @staticmethod
    def _build_prompt(
        content: str, rag_context: ContextDocument | None, instruction: str
    ) -> str:
        parts = []
        if rag_context is not None:
            parts.append(
                f"REFERENCE DOCUMENT ({rag_context.filename}):\n{rag_context.text}\n"
            )
        parts.append(instruction)
        parts.append(f'USER NOTE: "{content}"')
        return "\n\n".join(parts)

    async def classify(
        self,
        content: str,
        rag_context: ContextDocument | None = None,
        tier: ModelTier | str = ModelTier.FLASH,
    ) -> ClassificationResult:
        """
        Derive category, headline, tags, intent and calendar details for a note.

        Args:
            content: Note text
            rag_context: Optional reference document to ground the answer
            tier: Model tier to use

        Returns:
            Normalized metadata

        Raises:
            ClassificationFailure: On timeout, remote error or malformed output
        """
        instruction = (
            "Analyze the USER NOTE in the context of the REFERENCE DOCUMENT."
            if rag_context is not None
            else "Analyze the USER NOTE."
        )
        instruction += f"\n\nTAG LIBRARY: {', '.join(TAG_LIBRARY)}"
        prompt = self._build_prompt(content, rag_context, instruction)

        response_text = await self._generate(
            {
                "model": self.model_for(tier),
                "system": CLASSIFY_SYSTEM_PROMPT,
                "prompt": prompt,
                "format": "json",
            }
        )

        try:
            result = json.loads(response_text or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse classifier response: {response_text}")
            raise ClassificationFailure("Classifier returned malformed JSON") from e
        if not isinstance(result, dict):
            raise ClassificationFailure("Classifier returned a non-object response")

        calendar_sync = bool(result.get("calendar_sync"))
        event_details = parse_event_details(result.get("event")) if calendar_sync else None

        return {
            "category": normalize_category(result.get("category")),
            "headline": normalize_headline(result.get("headline")),
            "tags": normalize_tags(result.get("tags")),
            "intent": normalize_intent(result.get("intent")),
            "calendar_sync": event_details is not None,
            "event_details": event_details,
        }

    async def reformat(
        self,
        content: str,
        rag_context: ContextDocument | None = None,
        tier: ModelTier | str = ModelTier.FLASH,
    ) -> str:
        """
        Rewrite a note in concise encyclopedic style.

        Returns:
            The rewritten text, or the original when the model answers empty

        Raises:
            ClassificationFailure: On timeout or remote error
        """
        instruction = (
            "Use the REFERENCE DOCUMENT as the authoritative source."
            if rag_context is not None
            else "Rewrite the USER NOTE."
        )
        response_text = await self._generate(
            {
                "model": self.model_for(tier),
                "system": REFORMAT_SYSTEM_PROMPT,
                "prompt": self._build_prompt(content, rag_context, instruction),
            }
        )
        return response_text.strip() or content
