import asyncio

import httpx
import pytest

from app.gateway.errors import ClientInputError, ConfigurationError, UpstreamError, UpstreamExhausted
from app.gateway.events import ErrorEvent, ResultEvent, StatusEvent
from app.gateway.inference_gateway import (
    CONNECTING_MESSAGE,
    EXHAUSTED_MESSAGE,
    UNREADABLE_MESSAGE,
    AttemptOutcome,
    GatewayState,
    InferenceGateway,
    classify_reply,
    next_state,
)
from app.gateway.retry import RetrySchedule
from app.llm.llm_client import NO_RESPONSE_TEXT, HttpChatCompletionClient, InferenceRequest, UpstreamReply


def _ok(text: str) -> UpstreamReply:
    return UpstreamReply(
        status_code=200,
        body_text="{}",
        payload={"choices": [{"message": {"content": text}}]},
    )


def _busy() -> UpstreamReply:
    return UpstreamReply(status_code=503, body_text="model is loading")


class _ScriptedUpstream:
    """Returns the scripted replies in order; exceptions in the script are raised."""

    def __init__(self, replies):
        self._replies = list(replies)
        self.calls = []
        self.closed = False

    @property
    def model_id(self) -> str:
        return "scripted"

    async def complete(self, req):
        self.calls.append(req)
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self):
        self.closed = True


class _RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class _DisconnectAfter:
    """Reports "connected" for the first `n` checks, then "disconnected"."""

    def __init__(self, n: int):
        self.n = n
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.calls > self.n


def _gateway(upstream, *, schedule=None, api_key="test-key"):
    sleep = _RecordingSleep()
    factory_calls = []

    def factory():
        factory_calls.append(1)
        return upstream

    gw = InferenceGateway(factory, api_key=api_key, schedule=schedule, sleep=sleep)
    return gw, sleep, factory_calls


def _collect(gw, req, **kwargs):
    async def go():
        return [ev async for ev in gw.stream(req, **kwargs)]

    return asyncio.run(go())


def test_immediate_success_is_one_connecting_status_then_result():
    upstream = _ScriptedUpstream([_ok("Your creatinine looks stable.")])
    gw, sleep, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"))

    assert events == [
        StatusEvent(message=CONNECTING_MESSAGE, phase="connecting"),
        ResultEvent(result="Your creatinine looks stable."),
    ]
    assert sleep.delays == []
    assert len(upstream.calls) == 1
    assert upstream.closed is True


def test_three_503s_then_success_emits_three_wait_pairs():
    upstream = _ScriptedUpstream([_busy(), _busy(), _busy(), _ok("fourth attempt payload")])
    gw, sleep, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"))

    phases = [ev.phase for ev in events if isinstance(ev, StatusEvent)]
    assert phases == ["connecting", "waking", "retrying", "waking", "retrying", "waking", "retrying"]
    assert events[-1] == ResultEvent(result="fourth attempt payload")
    assert len(upstream.calls) == 4

    assert sleep.delays == [5.0, 8.0, 10.0]
    assert sum(sleep.delays) == gw.schedule.total_delay_seconds(3)

    waking = [ev for ev in events if isinstance(ev, StatusEvent) and ev.phase == "waking"]
    assert [ev.attempt for ev in waking] == [1, 2, 3]
    assert all(ev.max_attempts == 11 for ev in waking)
    assert [ev.retry_sec for ev in waking] == [5.0, 8.0, 10.0]
    assert waking[0].message == gw.schedule.step(0).message

    retrying = [ev for ev in events if isinstance(ev, StatusEvent) and ev.phase == "retrying"]
    assert retrying[0].message == "Trying again (attempt 2 of 11)..."
    assert retrying[-1].message == "Trying again (attempt 4 of 11)..."


def test_all_503_ends_with_error_and_no_result():
    schedule = RetrySchedule.from_delays([1, 2])
    upstream = _ScriptedUpstream([_busy(), _busy(), _busy()])
    gw, sleep, _ = _gateway(upstream, schedule=schedule)

    events = _collect(gw, InferenceRequest(prompt="explain"))

    assert not any(isinstance(ev, ResultEvent) for ev in events)
    assert events[-1] == ErrorEvent(error=EXHAUSTED_MESSAGE)
    assert len(upstream.calls) == schedule.max_attempts == 3
    assert sleep.delays == [1.0, 2.0]


def test_at_least_one_status_precedes_terminal_event():
    for script in ([_ok("x")], [_busy(), _ok("y")], [UpstreamReply(status_code=500, body_text="boom")]):
        gw, _, _ = _gateway(_ScriptedUpstream(script))
        events = _collect(gw, InferenceRequest(prompt="explain"))

        assert isinstance(events[0], StatusEvent)
        assert events[-1].terminal is True
        assert sum(1 for ev in events if ev.terminal) == 1


@pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
def test_blank_prompt_fails_before_any_upstream_call(prompt):
    upstream = _ScriptedUpstream([_ok("never")])
    gw, sleep, factory_calls = _gateway(upstream)

    with pytest.raises(ClientInputError) as e:
        gw.validate(InferenceRequest(prompt=prompt))
    assert e.value.status_code == 400

    with pytest.raises(ClientInputError):
        _collect(gw, InferenceRequest(prompt=prompt))

    assert upstream.calls == []
    assert factory_calls == []
    assert sleep.delays == []


def test_missing_api_key_is_configuration_error():
    upstream = _ScriptedUpstream([_ok("never")])
    gw, _, _ = _gateway(upstream, api_key="")

    with pytest.raises(ConfigurationError) as e:
        gw.validate(InferenceRequest(prompt="explain"))

    assert e.value.status_code == 500
    assert upstream.calls == []


@pytest.mark.parametrize("status", [400, 500, 502, 504])
def test_non_503_error_is_terminal_and_not_retried(status):
    upstream = _ScriptedUpstream([UpstreamReply(status_code=status, body_text="upstream said no"), _ok("unused")])
    gw, sleep, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"))

    assert events[-1] == ErrorEvent(error=f"Upstream API error: {status}", details="upstream said no")
    assert len(upstream.calls) == 1
    assert sleep.delays == []
    assert upstream.closed is True


def test_transport_error_becomes_error_event():
    upstream = _ScriptedUpstream([httpx.ConnectError("connection refused")])
    gw, _, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"))

    assert isinstance(events[-1], ErrorEvent)
    assert "ConnectError" in events[-1].error
    assert events[-1].code == UpstreamError.code
    assert upstream.closed is True


def test_success_without_content_uses_fallback_text():
    upstream = _ScriptedUpstream([UpstreamReply(status_code=200, body_text="{}", payload={"choices": []})])
    gw, _, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"))

    assert events[-1] == ResultEvent(result=NO_RESPONSE_TEXT)


def test_unreadable_success_body_is_an_error_not_a_result():
    upstream = _ScriptedUpstream([UpstreamReply(status_code=200, body_text="<html>proxy page</html>", parse_failed=True)])
    gw, sleep, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"))

    assert events[-1] == ErrorEvent(error=UNREADABLE_MESSAGE, details="<html>proxy page</html>")
    assert events[-1].code == UpstreamError.code
    assert not any(isinstance(ev, ResultEvent) for ev in events)
    assert len(upstream.calls) == 1
    assert sleep.delays == []


def test_html_page_from_http_client_ends_with_error_event():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy page</html>"))

    def factory():
        return HttpChatCompletionClient(
            api_key="k",
            url="https://upstream.test/v1/chat/completions",
            model="m",
            transport=transport,
        )

    gw = InferenceGateway(factory, api_key="k", sleep=_RecordingSleep())

    events = _collect(gw, InferenceRequest(prompt="explain"))

    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].details == "<html>proxy page</html>"


def test_unreadable_body_makes_run_raise_upstream_error():
    upstream = _ScriptedUpstream([UpstreamReply(status_code=200, body_text="not json", parse_failed=True)])
    gw, _, _ = _gateway(upstream)

    with pytest.raises(UpstreamError) as e:
        asyncio.run(gw.run(InferenceRequest(prompt="extract")))

    assert e.value.message == UNREADABLE_MESSAGE
    assert e.value.details == "not json"


def test_image_is_forwarded_to_upstream():
    upstream = _ScriptedUpstream([_ok("seen")])
    gw, _, _ = _gateway(upstream)

    _collect(gw, InferenceRequest(prompt="explain", image_data="aGVsbG8="))

    assert upstream.calls[0].image_data == "aGVsbG8="


def test_disconnect_during_backoff_stops_without_terminal_event():
    upstream = _ScriptedUpstream([_busy(), _ok("nobody listening")])
    gw, sleep, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"), is_disconnected=_DisconnectAfter(1))

    assert [ev.phase for ev in events] == ["connecting", "waking"]
    assert not any(ev.terminal for ev in events)
    assert len(upstream.calls) == 1
    assert sleep.delays == [5.0]
    assert upstream.closed is True


def test_disconnect_before_first_attempt_makes_no_upstream_call():
    upstream = _ScriptedUpstream([_ok("never")])
    gw, _, _ = _gateway(upstream)

    events = _collect(gw, InferenceRequest(prompt="explain"), is_disconnected=_DisconnectAfter(0))

    assert events == [StatusEvent(message=CONNECTING_MESSAGE, phase="connecting")]
    assert upstream.calls == []


def test_run_returns_result_text():
    upstream = _ScriptedUpstream([_busy(), _ok('[{"name":"Creatinine","value":"1.2 mg/dL"}]')])
    gw, _, _ = _gateway(upstream)

    text = asyncio.run(gw.run(InferenceRequest(prompt="extract", image_data="abc")))

    assert text.startswith("[")
    assert len(upstream.calls) == 2


def test_run_raises_exhausted_when_schedule_runs_out():
    upstream = _ScriptedUpstream([_busy(), _busy()])
    gw, _, _ = _gateway(upstream, schedule=RetrySchedule.from_delays([1]))

    with pytest.raises(UpstreamExhausted) as e:
        asyncio.run(gw.run(InferenceRequest(prompt="extract")))

    assert e.value.message == EXHAUSTED_MESSAGE
    assert e.value.status_code == 503


def test_run_raises_upstream_error_with_body_details():
    upstream = _ScriptedUpstream([UpstreamReply(status_code=401, body_text='{"error":"bad key"}')])
    gw, _, _ = _gateway(upstream)

    with pytest.raises(UpstreamError) as e:
        asyncio.run(gw.run(InferenceRequest(prompt="extract")))

    assert e.value.status_code == 502
    assert e.value.details == '{"error":"bad key"}'


# -----------------------------
# Pure transitions
# -----------------------------

def test_classify_reply_only_503_is_unavailable():
    assert classify_reply(UpstreamReply(status_code=503)) is AttemptOutcome.UNAVAILABLE
    assert classify_reply(UpstreamReply(status_code=200)) is AttemptOutcome.SUCCESS
    assert classify_reply(UpstreamReply(status_code=204)) is AttemptOutcome.SUCCESS
    assert classify_reply(UpstreamReply(status_code=502)) is AttemptOutcome.FAILURE
    assert classify_reply(UpstreamReply(status_code=504)) is AttemptOutcome.FAILURE
    assert classify_reply(UpstreamReply(status_code=200, parse_failed=True)) is AttemptOutcome.FAILURE


def test_next_state_transitions():
    schedule = RetrySchedule.from_delays([1, 2])

    assert next_state(AttemptOutcome.SUCCESS, 0, schedule) is GatewayState.SUCCEEDED
    assert next_state(AttemptOutcome.SUCCESS, 2, schedule) is GatewayState.SUCCEEDED
    assert next_state(AttemptOutcome.UNAVAILABLE, 0, schedule) is GatewayState.WAITING
    assert next_state(AttemptOutcome.UNAVAILABLE, 1, schedule) is GatewayState.WAITING
    assert next_state(AttemptOutcome.UNAVAILABLE, 2, schedule) is GatewayState.FAILED
    assert next_state(AttemptOutcome.FAILURE, 0, schedule) is GatewayState.FAILED
