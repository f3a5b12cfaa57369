import httpx
import pytest

from apex_claw.ai.conversation import TOOL_ERROR_TEMPLATE, build_messages, latest_user_content
from apex_claw.ai.models import FileRef, Message
from apex_claw.ai.transcription import Transcriber, TranscriptionError, extract_transcript
from apex_claw.config import TranscriptionConfig
from apex_claw.core.context import ContextStore, InvocationContext
from apex_claw.core.types import Role



def test_context_mapping_and_header():
    ctx = InvocationContext(
        owner_id="1",
        chat_id="-100",
        message_id="9",
        sender_id="1",
        reply_to_msg_id="8",
        group_id="-100",
        extras={"file_name": "a.txt"},
    )
    mapping = ctx.as_mapping()
    assert mapping["telegram_id"] == "-100"
    assert mapping["reply_to_msg_id"] == "8"
    assert mapping["file_name"] == "a.txt"
    assert ctx.header() == (
        "[TG Context: sender_id=1 | chat_id=-100 | msg_id=9 | group_id=-100 | reply_id=8 | file_name=a.txt]"
    )


def test_snapshot_is_detached():
    ctx = InvocationContext(owner_id="1", chat_id="2", extras={"k": "v"})
    snap = ctx.snapshot()
    assert snap == ctx
    assert snap.extras is not ctx.extras


def test_context_store_keeps_latest_per_owner():
    store = ContextStore()
    store.install(InvocationContext(owner_id="1", chat_id="a"))
    store.install(InvocationContext(owner_id="1", chat_id="b"))
    assert store.get("1").chat_id == "b"
    store.clear("1")
    assert store.get("1") is None


def test_tool_messages_become_user_turns():
    history = [
        Message(Role.SYSTEM, "sys"),
        Message(Role.USER, "read it"),
        Message(Role.ASSISTANT, "<tool_call>read_file />"),
        Message(Role.TOOL, "error: missing required arg path", name="read_file"),
    ]
    messages = build_messages(history)
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == TOOL_ERROR_TEMPLATE.format(
        name="read_file", content="error: missing required arg path"
    )
    assert latest_user_content(messages) == messages[-1]["content"]
    assert latest_user_content([]) == ""


def test_file_ref_request_dict():
    ref = FileRef(id="f", url="/api/v1/files/f", name="a.jpg", size=3, item_id="i")
    data = ref.to_request_dict("msg-1")
    assert data["id"] == "f"
    assert data["itemId"] == "i"
    assert data["ref_user_msg_id"] == "msg-1"

    raw = FileRef(id="f", url="", name="a.jpg", size=3, raw={"id": "f", "extra": 1})
    assert raw.to_request_dict("m")["extra"] == 1


@pytest.mark.parametrize(
    "body,expected",
    [
        ('{"text": " hello "}', "hello"),
        ('{"result": []}\n{"result": [{"alternative": [{"transcript": "buy milk"}]}]}', "buy milk"),
        ("not json", ""),
    ],
)
def test_extract_transcript(body, expected):
    assert extract_transcript(body) == expected


@pytest.mark.asyncio
async def test_transcriber():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"text": "call mom"})

    config = TranscriptionConfig(url="https://stt.example/v1", api_key="k", language="de-DE")
    transcriber = Transcriber(config, transport=httpx.MockTransport(handler))

    assert await transcriber.transcribe(b"ogg") == "call mom"
    assert seen[0].url.params["lang"] == "de-DE"
    assert seen[0].headers["Authorization"] == "Bearer k"
    assert seen[0].content == b"ogg"


@pytest.mark.asyncio
async def test_transcriber_failure():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"result": []}))
    transcriber = Transcriber(TranscriptionConfig(url="https://stt.example/v1"), transport=transport)
    with pytest.raises(TranscriptionError):
        await transcriber.transcribe(b"ogg")
