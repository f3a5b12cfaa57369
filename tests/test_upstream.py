import base64
import json

import httpx
import pytest

from apex_claw.ai.client import ZaiClient
from apex_claw.ai.models import FileRef, Message
from apex_claw.ai.upstream.auth import TokenProvider, decode_jwt_payload, user_id_from_token
from apex_claw.ai.upstream.signing import generate_signature
from apex_claw.ai.upstream.version import FeVersionTracker
from apex_claw.config import UpstreamConfig
from apex_claw.core.types import Role
from apex_claw.errors import UpstreamAuthError, UpstreamError, UpstreamTransientError

NOW = 1_735_732_800.0


def make_jwt(payload: dict) -> str:
    def seg(obj) -> str:
        return base64.urlsafe_b64encode(json.dumps(obj).encode()).decode().rstrip("=")

    return f"{seg({'alg': 'HS256'})}.{seg(payload)}.signature"


def sse(*deltas: str) -> bytes:
    lines = [
        "data: " + json.dumps({"type": "chat:completion", "data": {"phase": "answer", "delta_content": d}})
        for d in deltas
    ]
    return ("\n".join(lines) + "\ndata: [DONE]\n").encode()


TOKEN = make_jwt({"id": "user-7", "exp": NOW + 3600})


def test_decode_jwt_payload_without_padding():
    token = make_jwt({"id": "abc"})
    assert decode_jwt_payload(token) == {"id": "abc"}
    assert user_id_from_token(token) == "abc"


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.!!!.c"])
def test_decode_jwt_payload_rejects_garbage(token):
    with pytest.raises(UpstreamAuthError):
        decode_jwt_payload(token)


@pytest.mark.asyncio
async def test_static_token_skips_auth_endpoint():
    def handler(request):
        raise AssertionError("auth endpoint must not be called")

    async with httpx.AsyncClient(base_url="https://chat.z.ai", transport=httpx.MockTransport(handler)) as http:
        provider = TokenProvider(http, static_token="static")
        assert await provider.get_token() == "static"
        assert provider.is_static


@pytest.mark.asyncio
async def test_guest_token_is_cached_until_expiry():
    calls = []
    now = [NOW]

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"token": make_jwt({"id": "guest", "exp": now[0] + 600})})

    async with httpx.AsyncClient(base_url="https://chat.z.ai", transport=httpx.MockTransport(handler)) as http:
        provider = TokenProvider(http, refresh_margin_seconds=60, clock=lambda: now[0])
        first = await provider.get_token()
        now[0] += 300
        assert await provider.get_token() == first
        assert calls == ["/api/v1/auths/"]

        now[0] += 250  # inside the refresh margin
        await provider.get_token()
        assert len(calls) == 2

        provider.invalidate()
        await provider.get_token()
        assert len(calls) == 3


@pytest.mark.asyncio
async def test_guest_token_failure():
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    async with httpx.AsyncClient(base_url="https://chat.z.ai", transport=transport) as http:
        with pytest.raises(UpstreamAuthError):
            await TokenProvider(http).get_token()


class Upstream:
    """Records requests and answers completions with a canned SSE body."""

    def __init__(self, status: int = 200, body: bytes = sse("Hello", " world")):
        self.status = status
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/":
            return httpx.Response(200, text='<script src="/_app/prod-fe-1.0.123/start.js"></script>')
        if request.url.path == "/api/v1/files/":
            return httpx.Response(self.status, json={"id": "f-1", "filename": "cat.jpg", "meta": {"size": 3}})
        return httpx.Response(self.status, content=self.body)


def make_client(upstream: Upstream, model_token: str = TOKEN) -> ZaiClient:
    return ZaiClient(UpstreamConfig(token=model_token), transport=httpx.MockTransport(upstream), clock=lambda: NOW)


@pytest.mark.asyncio
async def test_send_streams_and_signs_request():
    upstream = Upstream()
    client = make_client(upstream)
    deltas = []

    async def on_delta(chunk):
        deltas.append(chunk)

    history = [
        Message(Role.SYSTEM, "sys"),
        Message(Role.USER, "what time is it"),
        Message(Role.ASSISTANT, "<tool_call>datetime />"),
        Message(Role.TOOL, "12:00", name="datetime"),
    ]
    text = await client.send("GLM-4.7-thinking", history, on_delta=on_delta)
    await client.aclose()

    assert text == "Hello world"
    assert deltas == ["Hello", " world"]

    request = upstream.requests[0]
    assert request.url.path == "/api/v2/chat/completions"
    params = request.url.params
    assert params["user_id"] == "user-7"
    assert params["version"] == "0.0.1"
    assert params["platform"] == "web"
    assert params["timestamp"] == str(int(NOW * 1000))
    assert request.headers["Authorization"] == f"Bearer {TOKEN}"

    body = json.loads(request.content)
    assert body["model"] == "glm-4.7"
    assert body["stream"] is True
    assert body["features"]["enable_thinking"] is True
    assert body["features"]["auto_web_search"] is False
    assert body["messages"][-1]["role"] == "user"
    assert body["messages"][-1]["content"].startswith("[Tool result: datetime]\n12:00")
    assert "files" not in body

    expected_sig = generate_signature("user-7", params["requestId"], body["signature_prompt"], int(NOW * 1000))
    assert request.headers["X-Signature"] == expected_sig


@pytest.mark.asyncio
async def test_send_includes_files():
    upstream = Upstream()
    client = make_client(upstream)
    ref = FileRef(id="f-1", url="/api/v1/files/f-1", name="cat.jpg", size=3, item_id="item")

    await client.send("GLM-5", [Message(Role.USER, "Describe this image.")], files=[ref])
    await client.aclose()

    body = json.loads(upstream.requests[0].content)
    assert body["files"][0]["id"] == "f-1"
    assert body["files"][0]["ref_user_msg_id"] == body["current_user_message_id"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [(401, UpstreamAuthError), (500, UpstreamTransientError), (429, UpstreamError)],
)
async def test_send_maps_http_errors(status, error):
    client = make_client(Upstream(status=status, body=b"nope"))
    with pytest.raises(error) as exc:
        await client.send("GLM-4.7", [Message(Role.USER, "hi")])
    await client.aclose()
    assert exc.value.status_code == status


@pytest.mark.asyncio
async def test_send_transport_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = ZaiClient(UpstreamConfig(token=TOKEN), transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamTransientError):
        await client.send("GLM-4.7", [Message(Role.USER, "hi")])
    await client.aclose()


@pytest.mark.asyncio
async def test_upload_returns_file_ref():
    upstream = Upstream(status=201)
    client = make_client(upstream)

    ref = await client.upload(b"abc", "cat.jpg")
    await client.aclose()

    assert ref.id == "f-1"
    assert ref.size == 3
    assert ref.raw == {"id": "f-1", "filename": "cat.jpg", "meta": {"size": 3}}
    assert b'name="file"' in upstream.requests[0].content


@pytest.mark.asyncio
async def test_upload_rejects_error_status():
    client = make_client(Upstream(status=400))
    with pytest.raises(UpstreamError):
        await client.upload(b"abc", "cat.jpg")
    await client.aclose()


@pytest.mark.asyncio
async def test_fe_version_refresh():
    upstream = Upstream()
    async with httpx.AsyncClient(base_url="https://chat.z.ai", transport=httpx.MockTransport(upstream)) as http:
        tracker = FeVersionTracker(http)
        assert await tracker.refresh() == "prod-fe-1.0.123"
        assert await tracker.health_check()
