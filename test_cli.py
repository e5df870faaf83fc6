import pytest
from click.testing import CliRunner

from cli import main


@pytest.fixture
def invoke(tmp_path, vocab_dir):
    runner = CliRunner()
    env = {"C_ROOT": str(tmp_path), "C_VOCAB_DIR": str(vocab_dir), "C_LOG_LEVEL": "WARNING"}

    def _invoke(*args, input=None):
        return runner.invoke(main, list(args), env=env, input=input)

    return _invoke


def test_encode_decode_count(invoke):
    result = invoke("encode", "hello world")
    assert result.exit_code == 0, result.output
    assert result.output.strip() == "259 264"

    result = invoke("decode", "259", "264")
    assert result.output == "hello world\n"

    result = invoke("count", "-", input="hello world\n")
    assert result.output.strip() == "2"


def test_decode_error_is_reported(invoke):
    result = invoke("decode", "999999")
    assert result.exit_code == 1
    assert "unknown token id" in result.output


def test_missing_vocabulary(tmp_path):
    result = CliRunner().invoke(main, ["--vocab-dir", str(tmp_path / "none"), "count", "x"],
                                env={"C_ROOT": str(tmp_path)})
    assert result.exit_code == 1
    assert "Error" in result.output


def test_session_workflow(invoke, tmp_path):
    result = invoke("session", "new", "work", "--vendor", "anthropic", "--max-tokens", "1050")
    assert result.exit_code == 0, result.output
    assert (tmp_path / ".c" / "sessions" / "work.yaml").is_file()

    assert invoke("session", "new", "work").exit_code == 1

    invoke("session", "append", "work", "hello")
    invoke("session", "append", "work", "hello world", "--role", "assistant")
    invoke("session", "append", "work", "-", input="hi\n")

    result = invoke("session", "show", "work")
    assert result.output.splitlines() == [
        "work (anthropic, 1050 tokens)",
        "  0  human: hello",
        "  1  assistant: hello world",
        "  2  human: hi",
    ]

    assert invoke("session", "pin", "work", "0").exit_code == 0
    assert "  0* human: hello" in invoke("session", "show", "work").output

    # reply reservation (1000) + "\n\nAssistant:" (2 + 10) leaves 38 tokens for the turns
    # "\n\nHuman: hello" (10, pinned), "\n\nHuman: hi" (11) and "\n\nAssistant: hello world" (15)
    result = invoke("session", "window", "work")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines()[-1] == "3 of 3 messages, 5 history tokens"

    result = invoke("session", "window", "work", "--overhead", "1046")
    assert result.output.splitlines() == [
        "  0* human: hello",
        "  2  human: hi",
        "2 of 3 messages, 3 history tokens",
    ]

    result = invoke("session", "window", "work", "--overhead", "1050")
    assert result.exit_code == 1
    assert "unpin" in result.output


def test_max_history_limits_window(invoke):
    result = invoke("session", "new", "long", "--vendor", "anthropic", "--max-history", "1040")
    assert result.exit_code == 0, result.output
    assert "long (anthropic, 100000 tokens)" in invoke("session", "show", "long").output

    invoke("session", "append", "long", "hello", "--pin")
    invoke("session", "append", "long", "hello world", "--role", "assistant")
    invoke("session", "append", "long", "hi")

    result = invoke("session", "window", "long")
    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == [
        "  0* human: hello",
        "  2  human: hi",
        "2 of 3 messages, 3 history tokens",
    ]


def test_pin_index_out_of_range(invoke):
    invoke("session", "new", "s")
    result = invoke("session", "pin", "s", "3")
    assert result.exit_code == 2


def test_unknown_session(invoke):
    result = invoke("session", "show", "ghost")
    assert result.exit_code == 1
    assert "not found" in result.output
