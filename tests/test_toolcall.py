import pytest

from apex_claw.ai.toolcall import clean_reply, parse_tool_call, render_tool_call


@pytest.mark.parametrize(
    "text",
    [
        '<tool_call>echo msg="hi" />',
        'pre<tool_call>echo msg="hi" /></tool_call>',
        '<tool_call>echo msg="hi"></tool_call>',
    ],
)
def test_envelope_variants(text):
    call = parse_tool_call(text)
    assert call is not None
    assert call.name == "echo"
    assert call.args == {"msg": "hi"}


def test_envelope_without_args():
    call = parse_tool_call("<tool_call>echo />")
    assert call is not None
    assert call.name == "echo"
    assert call.args == {}


def test_no_envelope():
    assert parse_tool_call("just an answer") is None
    assert parse_tool_call("<tool_call>never closed") is None


def test_only_first_envelope_is_used():
    call = parse_tool_call('<tool_call>echo msg="a" /> then <tool_call>datetime />')
    assert call.name == "echo"
    assert call.args == {"msg": "a"}


def test_offsets_point_at_envelope():
    text = 'Sure.\n<tool_call>read_file path="a.txt" />'
    call = parse_tool_call(text)
    assert text[: call.start] == "Sure.\n"
    assert call.end == len(text)


def test_invalid_names_are_rejected():
    assert parse_tool_call('<tool_call>1bad x="y" />') is None
    assert parse_tool_call("<tool_call>" + "a" * 101 + " />") is None


def test_malformed_attributes_give_empty_map():
    call = parse_tool_call("<tool_call>echo msg=hi />")
    assert call.name == "echo"
    assert call.args == {}


def test_values_are_kept_verbatim():
    call = parse_tool_call('<tool_call>echo msg="  padded  " />')
    assert call.args == {"msg": "  padded  "}


def test_quoted_terminator_does_not_end_envelope():
    text = '<tool_call>write_file path="a.html" content="<p>hi<br/></p>" /> after'
    call = parse_tool_call(text)
    assert call.args == {"path": "a.html", "content": "<p>hi<br/></p>"}
    assert text[call.end :] == " after"


def test_unbalanced_quote_gives_empty_map():
    call = parse_tool_call('<tool_call>echo msg="oops />')
    assert call.name == "echo"
    assert call.args == {}


def test_oversized_envelope_is_rejected():
    assert parse_tool_call('<tool_call>echo msg="' + "x" * 10_001 + '" />') is None
    assert parse_tool_call("<tool_call> />") is None


def test_newline_after_name():
    call = parse_tool_call('<tool_call>echo\n  msg="hi" />')
    assert (call.name, call.args) == ("echo", {"msg": "hi"})


def test_args_json_is_canonical():
    call = parse_tool_call('<tool_call>x b="2" a="1" />')
    assert call.args_json == '{"a": "1", "b": "2"}'


@pytest.mark.parametrize(
    "name,attrs",
    [
        ("datetime", {}),
        ("read_file", {"path": "notes/today.md"}),
        ("schedule_task", {"label": "tea", "prompt": "remind me", "run_at": "15m", "repeat": "daily"}),
    ],
)
def test_render_then_parse(name, attrs):
    call = parse_tool_call(render_tool_call(name, attrs))
    assert (call.name, call.args) == (name, attrs)


AWKWARD_VALUES = [
    "a/>b",
    "<br/>",
    " padded",
    "trailing ",
    "x > y",
    "</tool_call>",
    "line one\nline two",
    "",
    "ünïcödé /> 表",
    "=\\'",
]


@pytest.mark.parametrize("value", AWKWARD_VALUES)
def test_render_then_parse_any_quote_free_value(value):
    call = parse_tool_call(render_tool_call("echo", {"msg": value}))
    assert call.args == {"msg": value}


def test_render_then_parse_many_attrs():
    attrs = {f"k{i}": value for i, value in enumerate(AWKWARD_VALUES)}
    text = "Working on it.\n" + render_tool_call("write_file", attrs) + " trailing prose"

    call = parse_tool_call(text)

    assert (call.name, call.args) == ("write_file", attrs)
    assert text[call.end :] == " trailing prose"


def test_clean_reply_strips_think_blocks():
    assert clean_reply("<think>\nplan\n</think>\n\nAnswer ") == "Answer"
    assert clean_reply("a<think>x</think>b") == "ab"
    assert clean_reply("Hello <think>plan</think> world") == "Hello world"
