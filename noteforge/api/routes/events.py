from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from noteforge.api.deps import RuntimeDep

router = APIRouter(tags=["events"])


@router.get("/api/events")
async def events_endpoint(runtime: RuntimeDep):
    """SSE endpoint for real-time updates."""
    return StreamingResponse(
        runtime.events.subscribe(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering for Nginx
        },
    )
