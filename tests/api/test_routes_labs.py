import base64
import io

from PIL import Image
from fastapi.testclient import TestClient

from app.api.dependencies import get_gateway
from app.gateway.inference_gateway import EXHAUSTED_MESSAGE, InferenceGateway
from app.gateway.retry import RetrySchedule
from app.labs.extraction import PARSE_ERROR_MESSAGE
from app.labs.prompts import build_extraction_prompt, build_history_extraction_prompt
from app.llm.llm_client import UpstreamReply
from app.main import create_app


def _make_png_bytes(width: int = 64, height: int = 64) -> bytes:
    img = Image.new("RGB", (width, height))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _ok(text: str) -> UpstreamReply:
    return UpstreamReply(status_code=200, payload={"choices": [{"message": {"content": text}}]})


class _ScriptedUpstream:
    def __init__(self, replies):
        self._replies = list(replies)
        self.calls = []

    @property
    def model_id(self) -> str:
        return "scripted"

    async def complete(self, req):
        self.calls.append(req)
        return self._replies.pop(0)

    async def aclose(self):
        pass


async def _no_sleep(seconds):
    return None


def _client(upstream) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_gateway] = lambda: InferenceGateway(
        lambda: upstream,
        api_key="test-key",
        schedule=RetrySchedule.from_delays([1]),
        sleep=_no_sleep,
    )
    return TestClient(app)


def _files(data: bytes = None, content_type: str = "image/png", name: str = "labs.png"):
    return {"file": (name, data if data is not None else _make_png_bytes(), content_type)}


def test_extract_current_labs_from_photo():
    answer = '```json\n[{"name":"Creatinine","value":"1.6 mg/dL (H)"},{"name":"eGFR","value":"52"}]\n```'
    upstream = _ScriptedUpstream([_ok(answer)])
    client = _client(upstream)

    resp = client.post("/api/labs/extract", files=_files(), headers={"X-Request-Id": "req-ex-1"})

    assert resp.status_code == 200
    assert resp.headers["X-Request-Id"] == "req-ex-1"
    assert resp.json() == {
        "kind": "current",
        "labs": [
            {"name": "Creatinine", "value": "1.6 mg/dL (H)"},
            {"name": "eGFR", "value": "52"},
        ],
    }

    req = upstream.calls[0]
    assert req.prompt == build_extraction_prompt()
    assert req.image_data


def test_extract_history_uses_short_prompt_and_survives_cold_start():
    upstream = _ScriptedUpstream([UpstreamReply(status_code=503), _ok('[{"name":"BUN","value":"18 mg/dL"}]')])
    client = _client(upstream)

    resp = client.post("/api/labs/extract", files=_files(), data={"kind": "history"})

    assert resp.status_code == 200
    assert resp.json()["kind"] == "history"
    assert resp.json()["labs"] == [{"name": "BUN", "value": "18 mg/dL"}]
    assert len(upstream.calls) == 2
    assert upstream.calls[0].prompt == build_history_extraction_prompt()


def test_extract_pdf_is_forwarded():
    pdf = b"%PDF-1.4\n%lab report\n%%EOF\n"
    upstream = _ScriptedUpstream([_ok("[]")])
    client = _client(upstream)

    resp = client.post("/api/labs/extract", files=_files(pdf, "application/pdf", "labs.pdf"))

    assert resp.status_code == 200
    assert resp.json()["labs"] == []
    assert upstream.calls[0].image_data == base64.b64encode(pdf).decode("ascii")


def test_extract_unparseable_answer_is_422_parse_error():
    upstream = _ScriptedUpstream([_ok("Sorry, the photo is too blurry to read.")])
    client = _client(upstream)

    resp = client.post("/api/labs/extract", files=_files())

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "parse_error"
    assert resp.json()["error"]["message"] == PARSE_ERROR_MESSAGE


def test_extract_upstream_error_is_502_with_details():
    upstream = _ScriptedUpstream([UpstreamReply(status_code=400, body_text='{"message":"image too large"}')])
    client = _client(upstream)

    resp = client.post("/api/labs/extract", files=_files())

    assert resp.status_code == 502
    err = resp.json()["error"]
    assert err["code"] == "upstream_error"
    assert "Upstream API error: 400" in err["message"]
    assert "image too large" in err["message"]


def test_extract_exhausted_is_503():
    upstream = _ScriptedUpstream([UpstreamReply(status_code=503)] * 2)
    client = _client(upstream)

    resp = client.post("/api/labs/extract", files=_files())

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "upstream_exhausted"
    assert resp.json()["error"]["message"] == EXHAUSTED_MESSAGE


def test_extract_rejects_unsupported_file_type():
    upstream = _ScriptedUpstream([])
    client = _client(upstream)

    resp = client.post("/api/labs/extract", files=_files(b"hello", "text/plain", "notes.txt"))

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "unsupported_file_type"
    assert upstream.calls == []


def test_extract_rejects_invalid_kind():
    client = _client(_ScriptedUpstream([]))

    resp = client.post("/api/labs/extract", files=_files(), data={"kind": "future"})

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_extract_requires_file():
    client = _client(_ScriptedUpstream([]))

    resp = client.post("/api/labs/extract", data={"kind": "current"})

    assert resp.status_code == 422


def test_labs_status_classifies_each_lab():
    client = _client(_ScriptedUpstream([]))
    body = {
        "labs": [
            {"name": "Creatinine", "value": "1.2 mg/dL"},
            {"name": "Potassium", "value": "5.6 mmol/L"},
            {"name": "BUN", "value": "32"},
            {"name": "Vitamin D", "value": "30"},
        ]
    }

    resp = client.post("/api/labs/status", json=body)

    assert resp.status_code == 200
    data = resp.json()
    assert [(lab["label"], lab["level"]) for lab in data["labs"]] == [
        ("Within target", "ok"),
        ("Discuss with team", "discuss"),
        ("Above target", "watch"),
        ("See analysis", "watch"),
    ]
    assert data["okCount"] == 1
    assert data["watchCount"] == 3


def test_health_and_metrics():
    client = _client(_ScriptedUpstream([]))

    assert client.get("/health").json() == {"status": "ok"}

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "analyze_requests_total" in metrics.text


def test_unknown_route_uses_error_schema():
    client = _client(_ScriptedUpstream([]))

    resp = client.get("/api/nope")

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "http_error"


def test_openapi_documents_error_schema():
    client = _client(_ScriptedUpstream([]))

    paths = client.get("/openapi.json").json()["paths"]

    for path, status in (("/api/analyze", "400"), ("/api/labs/extract", "502"), ("/api/tts", "500")):
        schema = paths[path]["post"]["responses"][status]["content"]["application/json"]["schema"]
        assert schema["$ref"].endswith("/ErrorResponse")
