"""Domain and database models."""

from noteforge.models.context import ContextDocument
from noteforge.models.note import (
    CATEGORIES,
    FALLBACK_CATEGORY,
    PLACEHOLDER_CATEGORY,
    PLACEHOLDER_HEADLINE,
    TAG_LIBRARY,
    AIStatus,
    EventDetails,
    Intent,
    ModelTier,
    Note,
)
from noteforge.models.snapshot import KeyValueEntry

__all__ = [
    "CATEGORIES",
    "FALLBACK_CATEGORY",
    "PLACEHOLDER_CATEGORY",
    "PLACEHOLDER_HEADLINE",
    "TAG_LIBRARY",
    "AIStatus",
    "ContextDocument",
    "EventDetails",
    "Intent",
    "KeyValueEntry",
    "ModelTier",
    "Note",
]
