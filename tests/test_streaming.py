import pytest

from apex_claw.ai.streaming import ChunkBuffer, StreamGate
from apex_claw.ai.toolcall import clean_reply


class Sink:
    def __init__(self):
        self.chunks: list[str] = []

    async def __call__(self, chunk: str) -> None:
        self.chunks.append(chunk)


@pytest.mark.asyncio
async def test_buffer_flushes_on_size():
    sink = Sink()
    buf = ChunkBuffer(sink, flush_bytes=10)
    await buf.write("12345")
    assert sink.chunks == []
    await buf.write("67890")
    assert sink.chunks == ["1234567890"]


@pytest.mark.asyncio
async def test_buffer_flushes_up_to_paragraph_break():
    sink = Sink()
    buf = ChunkBuffer(sink, flush_bytes=800)
    await buf.write("first paragraph\n")
    await buf.write("\nsecond half")
    assert sink.chunks == ["first paragraph\n\n"]
    await buf.write(" of a sentence\n\nthird")
    assert sink.chunks == ["first paragraph\n\n", "second half of a sentence\n\n"]
    await buf.flush()
    assert sink.chunks[-1] == "third"


@pytest.mark.asyncio
async def test_size_flush_cuts_at_whitespace():
    sink = Sink()
    buf = ChunkBuffer(sink, flush_bytes=16)
    await buf.write("hello wonderful world")
    assert sink.chunks == ["hello wonderful "]
    await buf.flush()
    assert sink.chunks == ["hello wonderful ", "world"]


@pytest.mark.asyncio
async def test_size_flush_never_splits_an_open_element():
    sink = Sink()
    buf = ChunkBuffer(sink, flush_bytes=28)
    await buf.write("Result: <b>very bold words</b> done")
    await buf.flush()
    assert sink.chunks == ["Result: ", "<b>very bold words</b> done"]


@pytest.mark.asyncio
async def test_size_flush_without_whitespace_cuts_hard():
    sink = Sink()
    buf = ChunkBuffer(sink, flush_bytes=4)
    await buf.write("abcdefghij")
    assert sink.chunks == ["abcd", "efgh"]


@pytest.mark.asyncio
async def test_buffer_counts_utf8_bytes():
    sink = Sink()
    buf = ChunkBuffer(sink, flush_bytes=4)
    await buf.write("éé")  # 4 bytes, 2 characters
    assert sink.chunks == ["éé"]


@pytest.mark.asyncio
async def test_explicit_flush_sends_remainder():
    sink = Sink()
    buf = ChunkBuffer(sink)
    await buf.write("tail")
    await buf.flush()
    await buf.flush()
    assert sink.chunks == ["tail"]
    assert buf.text == "tail"


@pytest.mark.asyncio
async def test_gate_holds_back_partial_marker():
    sink = Sink()
    buf = ChunkBuffer(sink)
    gate = StreamGate(buf)
    await gate.feed("Hello <tool")
    await buf.flush()
    assert sink.chunks == ["Hello"]


@pytest.mark.asyncio
async def test_gate_stops_at_marker():
    sink = Sink()
    buf = ChunkBuffer(sink)
    gate = StreamGate(buf)
    for piece in ["Checking", " now <tool_", 'call>exec cmd="ls" />', " trailing"]:
        await gate.feed(piece)
    await gate.finish("Checking now")
    await buf.flush()
    assert "".join(sink.chunks) == "Checking now"


@pytest.mark.asyncio
async def test_gate_finish_releases_unstreamed_rest():
    sink = Sink()
    buf = ChunkBuffer(sink)
    gate = StreamGate(buf)
    await gate.feed("<think>hidden</think>")
    await gate.finish("visible answer")
    await buf.flush()
    assert sink.chunks == ["visible answer"]


@pytest.mark.asyncio
async def test_gate_without_buffer_is_noop():
    gate = StreamGate(None)
    await gate.feed("anything")
    await gate.finish("anything")


@pytest.mark.asyncio
async def test_prose_around_think_block_is_one_message():
    sink = Sink()
    buf = ChunkBuffer(sink)
    gate = StreamGate(buf)
    for piece in ["Hello ", "<think>pl", "an</think> ", "world"]:
        await gate.feed(piece)
    await gate.finish(clean_reply("Hello <think>plan</think> world"))
    await buf.flush()
    assert sink.chunks == ["Hello world"]
