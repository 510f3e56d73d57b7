"""API routes module."""

from noteforge.api.routes.events import router as events_router
from noteforge.api.routes.notes import router as notes_router
from noteforge.api.routes.search import router as search_router
from noteforge.api.routes.settings import router as settings_router

__all__ = ["events_router", "notes_router", "search_router", "settings_router"]
