from __future__ import annotations

import logging
from enum import Enum
from typing import AsyncGenerator, Awaitable, Callable, List, Optional

import anyio
import httpx

from app.gateway.errors import (
    ClientInputError,
    ConfigurationError,
    GatewayError,
    UpstreamError,
    UpstreamExhausted,
)
from app.gateway.events import ErrorEvent, ResultEvent, StatusEvent, StreamEvent
from app.gateway.retry import RetrySchedule
from app.llm.llm_client import ChatCompletionClient, InferenceRequest, UpstreamReply
from app.observability.metrics import (
    ANALYZE_REQUESTS_TOTAL,
    UPSTREAM_ATTEMPTS_TOTAL,
    UPSTREAM_CALL_SECONDS,
)

logger = logging.getLogger(__name__)

CONNECTING_MESSAGE = "Connecting to MedGemma..."
EXHAUSTED_MESSAGE = "MedGemma is still waking up. Please wait a moment and try again."
UNREADABLE_MESSAGE = "Upstream returned an unreadable response"

Sleep = Callable[[float], Awaitable[None]]
DisconnectProbe = Callable[[], Awaitable[bool]]


# -----------------------------
# State machine
# -----------------------------

class GatewayState(str, Enum):
    CONNECTING = "connecting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    UNAVAILABLE = "unavailable"
    FAILURE = "failure"


def classify_reply(reply: UpstreamReply) -> AttemptOutcome:
    # Only 503 means "warming up"; 502/504 are terminal like any other error.
    if reply.unavailable:
        return AttemptOutcome.UNAVAILABLE
    if reply.ok and not reply.parse_failed:
        return AttemptOutcome.SUCCESS
    return AttemptOutcome.FAILURE


def next_state(outcome: AttemptOutcome, retry_index: int, schedule: RetrySchedule) -> GatewayState:
    """
    Transition out of CONNECTING after one upstream attempt.

    retry_index is the number of wake-up waits already consumed.
    """
    if outcome is AttemptOutcome.SUCCESS:
        return GatewayState.SUCCEEDED
    if outcome is AttemptOutcome.UNAVAILABLE and schedule.has_retry(retry_index):
        return GatewayState.WAITING
    return GatewayState.FAILED


# -----------------------------
# Gateway
# -----------------------------

class InferenceGateway:
    """
    Presents one logical "analyze" operation over a cold-starting upstream.

    stream() yields status events while it waits out 503s on the fixed
    schedule, then exactly one terminal ResultEvent or ErrorEvent. A
    disconnected caller stops the loop without a terminal event.

    Usage (route):
        gateway.validate(req)            # raises before any bytes are sent
        async for ev in gateway.stream(req, is_disconnected=request.is_disconnected):
            yield encode_sse(ev)
    """

    def __init__(
        self,
        client_factory: Callable[[], ChatCompletionClient],
        *,
        api_key: str,
        schedule: Optional[RetrySchedule] = None,
        sleep: Sleep = anyio.sleep,
    ):
        self._client_factory = client_factory
        self._api_key = api_key
        self._schedule = schedule or RetrySchedule.default()
        self._sleep = sleep

    @property
    def schedule(self) -> RetrySchedule:
        return self._schedule

    def validate(self, req: InferenceRequest) -> None:
        if not (req.prompt or "").strip():
            raise ClientInputError("Invalid request: prompt is required")
        if not self._api_key:
            raise ConfigurationError("Upstream API key is not configured")

    async def stream(
        self,
        req: InferenceRequest,
        *,
        is_disconnected: Optional[DisconnectProbe] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        self.validate(req)

        schedule = self._schedule
        max_attempts = schedule.max_attempts
        client = self._client_factory()

        try:
            yield StatusEvent(message=CONNECTING_MESSAGE, phase="connecting")

            state = GatewayState.CONNECTING
            retry_index = 0

            while state is GatewayState.CONNECTING:
                if await _disconnected(is_disconnected):
                    state = GatewayState.CANCELLED
                    break

                try:
                    reply = await client.complete(req)
                except httpx.HTTPError as e:
                    UPSTREAM_ATTEMPTS_TOTAL.labels(status="transport_error").inc()
                    logger.error("upstream transport error attempt=%d err=%s", retry_index + 1, e)
                    ANALYZE_REQUESTS_TOTAL.labels(result="error").inc()
                    yield ErrorEvent(
                        error=f"Upstream request failed: {type(e).__name__}: {e}",
                        code=UpstreamError.code,
                    )
                    return

                UPSTREAM_ATTEMPTS_TOTAL.labels(status=str(reply.status_code)).inc()
                UPSTREAM_CALL_SECONDS.observe(reply.latency_ms / 1000.0)

                outcome = classify_reply(reply)
                state = next_state(outcome, retry_index, schedule)

                if state is GatewayState.SUCCEEDED:
                    logger.info(
                        "analyze ok attempts=%d latency_ms=%d",
                        retry_index + 1,
                        reply.latency_ms,
                    )
                    ANALYZE_REQUESTS_TOTAL.labels(result="ok").inc()
                    yield ResultEvent(result=reply.content())
                    return

                if state is GatewayState.WAITING:
                    step = schedule.step(retry_index)
                    logger.info(
                        "upstream waking up attempt=%d/%d retry_in_s=%s",
                        retry_index + 1,
                        max_attempts,
                        step.delay_seconds,
                    )
                    yield StatusEvent(
                        message=step.message,
                        phase="waking",
                        attempt=retry_index + 1,
                        max_attempts=max_attempts,
                        retry_sec=step.delay_seconds,
                    )
                    await self._sleep(step.delay_seconds)

                    if await _disconnected(is_disconnected):
                        state = GatewayState.CANCELLED
                        break

                    retry_index += 1
                    yield StatusEvent(
                        message=f"Trying again (attempt {retry_index + 1} of {max_attempts})...",
                        phase="retrying",
                        attempt=retry_index + 1,
                        max_attempts=max_attempts,
                    )
                    state = GatewayState.CONNECTING
                    continue

                # FAILED
                ANALYZE_REQUESTS_TOTAL.labels(result="error").inc()
                if outcome is AttemptOutcome.UNAVAILABLE:
                    logger.warning("upstream still unavailable after %d attempts", retry_index + 1)
                    yield ErrorEvent(error=EXHAUSTED_MESSAGE, code=UpstreamExhausted.code)
                elif reply.parse_failed:
                    logger.error("upstream unreadable body status=%d body=%s", reply.status_code, reply.body_text[:500])
                    yield ErrorEvent(
                        error=UNREADABLE_MESSAGE,
                        details=reply.body_text,
                        code=UpstreamError.code,
                    )
                else:
                    logger.error("upstream error status=%d body=%s", reply.status_code, reply.body_text[:500])
                    yield ErrorEvent(
                        error=f"Upstream API error: {reply.status_code}",
                        details=reply.body_text,
                        code=UpstreamError.code,
                    )
                return

            logger.info("analyze cancelled: client disconnected after %d attempt(s)", retry_index + 1)
            ANALYZE_REQUESTS_TOTAL.labels(result="cancelled").inc()
        finally:
            await client.aclose()

    async def run(self, req: InferenceRequest) -> str:
        """
        Drive stream() to its terminal event for callers that want a plain
        value (photo extraction). Raises the matching GatewayError on failure.
        """
        statuses: List[StatusEvent] = []
        events = self.stream(req)
        try:
            async for ev in events:
                if isinstance(ev, StatusEvent):
                    statuses.append(ev)
                elif isinstance(ev, ResultEvent):
                    return ev.result
                else:
                    raise _error_from_event(ev)
        finally:
            await events.aclose()
        # Only reachable when cancelled; run() has no disconnect probe.
        raise UpstreamError(f"Analysis ended without a result after {len(statuses)} status update(s)")


async def _disconnected(probe: Optional[DisconnectProbe]) -> bool:
    if probe is None:
        return False
    return bool(await probe())


def _error_from_event(ev: ErrorEvent) -> GatewayError:
    if ev.code == UpstreamExhausted.code:
        return UpstreamExhausted(ev.error, details=ev.details)
    return UpstreamError(ev.error, details=ev.details)
