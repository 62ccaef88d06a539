from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.utils.request_context import clear_request_id, new_request_id, set_request_id


class RequestIdMiddleware:
    """
    Pure ASGI so streamed (text/event-stream) bodies pass through untouched
    and the request id stays set while the body is being produced.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        rid = Headers(scope=scope).get("X-Request-Id") or new_request_id()

        # 1) For logging (contextvar)
        set_request_id(rid)

        # 2) For error handlers (request.state.request_id)
        scope.setdefault("state", {})["request_id"] = rid

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)["X-Request-Id"] = rid
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            clear_request_id()
