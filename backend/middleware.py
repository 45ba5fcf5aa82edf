"""
ASGI middleware limiting the size of webhook trigger bodies.
"""
import logging

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class PayloadLimitMiddleware:
    """
    Reject POST bodies on ``path`` larger than ``limit`` bytes with 413.

    A declared Content-Length over the limit is refused before reading.
    Otherwise the body is buffered while counting bytes, so chunked or
    length-less uploads are held to the same limit, then replayed to the
    application.
    """

    def __init__(self, app: ASGIApp, path: str, limit: int) -> None:
        self.app = app
        self.path = path
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http" or scope.get("method") != "POST" or scope.get("path") != self.path:
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > self.limit:
            logger.warning("[WEBHOOK] Rejected %s byte payload", length)
            await self._reject(scope, receive, send)
            return

        body = bytearray()
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body.extend(message.get("body", b""))
            if len(body) > self.limit:
                logger.warning("[WEBHOOK] Rejected streamed payload over %s bytes", self.limit)
                await self._reject(scope, receive, send)
                return
            more_body = message.get("more_body", False)

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": bytes(body), "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    @staticmethod
    async def _reject(scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(
            status_code=413,
            content={"status": "error", "message": "Payload too large"},
        )
        await response(scope, receive, send)
