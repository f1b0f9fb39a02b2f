"""Request/response messaging between the orchestrator and the captured page.

The page lives across a process boundary, so a message may never be
answered: nothing is listening yet, the page navigated away, or a script
hung. ``request`` therefore never raises. A timeout or missing listener
comes back as an undelivered ``PageResponse`` and callers continue with
their defaults.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000

PREPARE_PAGE = "preparePage"
RESTORE_PAGE = "restorePage"
GET_PAGE_METRICS = "getPageMetrics"
SCROLL_TO = "scrollTo"


class PageMessage(BaseModel):
    """A structured ``{action, payload}`` message for the page side."""

    action: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timeout_ms: int = DEFAULT_TIMEOUT_MS


class PageResponse(BaseModel):
    """The page's answer.

    ``delivered`` is False when the message never reached a listener or
    timed out; ``success`` is False whenever the action did not complete.
    """

    success: bool = False
    data: dict[str, Any] = Field(default_factory=dict)
    error: str = ""
    delivered: bool = True

    @classmethod
    def undelivered(cls, reason: str) -> "PageResponse":
        return cls(success=False, delivered=False, error=reason)


class NoListenerError(Exception):
    """Raised by a channel when nothing on the page side handles messages."""


@runtime_checkable
class PageChannel(Protocol):
    """Host capability that delivers a message to a tab and awaits the reply."""

    async def send(self, tab_id: str, message: PageMessage) -> PageResponse: ...


async def request(
    channel: PageChannel,
    tab_id: str,
    action: str,
    payload: dict[str, Any] | None = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> PageResponse:
    """Send *action* to *tab_id* and wait at most *timeout_ms* for the reply.

    Args:
        channel: The host's page channel.
        tab_id: Target tab.
        action: One of the page actions (``preparePage``, ``scrollTo``...).
        payload: Action argument.
        timeout_ms: Upper bound on the round trip.

    Returns:
        The page's response, or an undelivered response on timeout, a
        missing listener, or a transport failure.
    """
    message = PageMessage(action=action, payload=payload or {}, timeout_ms=timeout_ms)
    try:
        return await asyncio.wait_for(channel.send(tab_id, message), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        logger.warning("Page message %s to tab %s timed out after %dms", action, tab_id, timeout_ms)
        return PageResponse.undelivered(f"timed out after {timeout_ms}ms")
    except NoListenerError as exc:
        logger.info("No page listener for %s on tab %s: %s", action, tab_id, exc)
        return PageResponse.undelivered(f"no listener: {exc}")
    except Exception as exc:
        logger.warning("Page message %s to tab %s failed: %s", action, tab_id, exc)
        return PageResponse.undelivered(str(exc))
