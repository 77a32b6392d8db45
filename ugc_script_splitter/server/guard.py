"""Outer route deadline with first-responder-wins response writing.

WHY: A long script can keep the pipeline busy for many minutes. The HTTP
route has its own hard deadline: once it passes, the caller gets a 504 even
though upstream calls may still be in flight. Both the pipeline and the
deadline timer then race to produce the response, and exactly one of them
may win.

HOW: ResponseSlot wraps an asyncio.Future. offer() fills it if it is still
empty and reports whether the offer won; later offers are dropped and
logged. respond_within_deadline() starts the pipeline as a task, arms a
loop.call_later() timer, and lets each of them offer a response.

RULES:
- First offer wins; every later offer is dropped (never overwrites)
- On deadline: 504 {"ok": false, "error": "route_timeout"}
- The pipeline task is not cancelled on deadline; its late result is
  logged and discarded
- The pipeline's exception is always retrieved (no "never retrieved" warnings)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

ROUTE_TIMEOUT_BODY = {"ok": False, "error": "route_timeout"}


class ResponseSlot:
    """A single-assignment slot for an HTTP response."""

    def __init__(self, name: str = "response") -> None:
        self.name = name
        self._future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()

    @property
    def filled(self) -> bool:
        return self._future.done()

    def offer(self, response: Response, source: str) -> bool:
        """Fill the slot if empty. Returns True if this offer won."""
        if self._future.done():
            logger.info("[%s] %s finished after response was sent; dropping", self.name, source)
            return False
        self._future.set_result(response)
        logger.debug("[%s] response produced by %s", self.name, source)
        return True

    async def wait(self) -> Response:
        return await self._future


async def respond_within_deadline(
    work: Awaitable[Any],
    *,
    deadline_s: float,
    on_success: Callable[[Any], Response],
    on_error: Callable[[BaseException], Response],
    name: str = "request",
) -> Response:
    """Run work and return whichever response is ready first.

    Args:
        work: The pipeline coroutine.
        deadline_s: Outer route deadline in seconds.
        on_success: Builds the response from work's result.
        on_error: Builds the response from work's exception.
        name: Log prefix for this request.

    Returns:
        The winning response.
    """
    loop = asyncio.get_running_loop()
    slot = ResponseSlot(name)
    task = asyncio.ensure_future(work)

    def _pipeline_done(t: asyncio.Future) -> None:
        if t.cancelled():
            slot.offer(on_error(asyncio.CancelledError()), "pipeline")
            return
        exc = t.exception()
        if exc is not None:
            if slot.filled:
                logger.warning("[%s] pipeline failed after deadline: %s", name, exc)
            slot.offer(on_error(exc), "pipeline")
        else:
            slot.offer(on_success(t.result()), "pipeline")

    def _deadline() -> None:
        if slot.offer(JSONResponse(status_code=504, content=ROUTE_TIMEOUT_BODY), "deadline"):
            logger.error("[%s] route deadline of %.1fs reached", name, deadline_s)

    task.add_done_callback(_pipeline_done)
    timer: Optional[asyncio.TimerHandle] = loop.call_later(deadline_s, _deadline)
    try:
        return await slot.wait()
    finally:
        timer.cancel()
