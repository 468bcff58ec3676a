"""HTTP and WebSocket routers."""

from segscribe.routes.events import router as events_router
from segscribe.routes.segments import router as segments_router

__all__ = ["events_router", "segments_router"]
