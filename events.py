#!/usr/bin/env python3
"""
Real-time transport adapter.

Translates an inbound "rss:fetch" request into exactly one outbound event:
"rss:data" carrying the items, or "rss:error" carrying a human-readable
message. The transport itself (socket server, connection handling) lives
outside this package and only needs to supply an emit callable.
"""

from typing import Any, Awaitable, Callable, Dict, Tuple, Union

from config import get_logger
from errors import FeedIngestError, InvalidInputError
from service import IngestionService

# Module-specific logger
logger = get_logger("events")

EVENT_FETCH = "rss:fetch"
EVENT_DATA = "rss:data"
EVENT_ERROR = "rss:error"

Emit = Callable[[str, Dict[str, Any]], Union[None, Awaitable[None]]]


class RssEventHandler:
    """Handles rss:fetch payloads against an IngestionService."""

    def __init__(self, service: IngestionService) -> None:
        self.service = service

    async def handle(self, payload: Any) -> Tuple[str, Dict[str, Any]]:
        """Return the (event name, body) to send back for payload."""
        url = ""
        if isinstance(payload, dict) and isinstance(payload.get("url"), str):
            url = payload["url"].strip()
        if not url:
            return EVENT_ERROR, {"error": str(InvalidInputError())}

        try:
            items = await self.service.fetch_one(url)
        except FeedIngestError as e:
            logger.warning(f"RSS fetch failed: url={url} error={e}")
            return EVENT_ERROR, {"url": url, "error": str(e)}
        except Exception as e:
            logger.error(f"Unexpected error fetching {url}: {e}", exc_info=True)
            return EVENT_ERROR, {"url": url, "error": str(e) or e.__class__.__name__}

        return EVENT_DATA, {"url": url, "items": [item.to_dict() for item in items]}

    async def dispatch(self, payload: Any, emit: Emit) -> None:
        """Handle payload and deliver the result through emit (sync or async)."""
        logger.info(f"Received {EVENT_FETCH} event")
        event, body = await self.handle(payload)
        result = emit(event, body)
        if result is not None and hasattr(result, "__await__"):
            await result
