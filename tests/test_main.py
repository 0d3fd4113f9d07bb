import asyncio
import contextlib
import json
import os
import signal
from unittest.mock import patch

import pytest

from juno.llm.base import LLMProvider
from juno.llm.embeddings import HashingEmbedder
from juno.main import _cancel_on_sigint, main


def _frame(payload: dict) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


class QueryProvider(LLMProvider):
    """Requests getContext once, then answers with the retrieved file path."""

    def __init__(self, settings) -> None:
        self.requests: list[list[dict]] = []

    async def stream_chat(self, messages, *, model, functions=None, function_call=None, temperature=None):
        self.requests.append(messages)
        if messages[-1]["role"] == "function":
            context = json.loads(messages[-1]["content"])
            answer = context.splitlines()[0]
            yield _frame({"choices": [{"delta": {"content": answer}}]})
        else:
            yield _frame(
                {"choices": [{"delta": {"function_call": {"name": "getContext", "arguments": '{"query": "sqlite"}'}}}]}
            )
        yield b"data: [DONE]\n\n"


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    root = tmp_path / "repo"
    root.mkdir()
    (root / "db.py").write_text("sqlite connection helper\n", encoding="utf-8")
    (root / "ui.ts").write_text("render button component\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JUNO_API_KEY", "sk-test")
    monkeypatch.setenv("JUNO_STORAGE_ROOT", str(tmp_path / "store"))
    monkeypatch.delenv("JUNO_ACTIVE_INDEXING", raising=False)
    return root


def _run(*argv: str) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main(list(argv))
    return excinfo.value.code


def _hashing_embedder(settings):
    return HashingEmbedder(dimension=64)


def test_missing_api_key_exits_with_configuration_status(workspace, monkeypatch, capsys):
    monkeypatch.delenv("JUNO_API_KEY")

    assert _run("--workspace", str(workspace), "index") == 2
    assert "Missing setting: OpenAI API Key" in capsys.readouterr().err


def test_index_query_and_delete(workspace, capsys):
    with patch("juno.main.OpenAIEmbedder", _hashing_embedder):
        assert _run("--workspace", str(workspace), "index") == 0
        assert "Indexed 2 files" in capsys.readouterr().out

        assert _run("--workspace", str(workspace), "index") == 0
        assert "2 unchanged" in capsys.readouterr().out

        with patch("juno.main.OpenAIProvider", QueryProvider):
            assert _run("--workspace", str(workspace), "query", "where is sqlite used?") == 0
        captured = capsys.readouterr()
        assert "filePath: db.py" in captured.out
        assert "[gathering data: sqlite]" in captured.err

    assert _run("--workspace", str(workspace), "delete-index") == 0
    assert "Vector index deleted" in capsys.readouterr().out


def test_query_without_index_asks_for_indexing(workspace, capsys):
    with patch("juno.main.OpenAIProvider", QueryProvider):
        assert _run("--workspace", str(workspace), "query", "anything") == 1

    assert "needs to be indexed first" in capsys.readouterr().err


def test_index_file_uses_workspace_relative_path(workspace, capsys):
    with patch("juno.main.OpenAIEmbedder", _hashing_embedder):
        assert _run("--workspace", str(workspace), "index-file", str(workspace / "ui.ts")) == 0

    assert "Indexed 1 files" in capsys.readouterr().out


class RecordingProvider(LLMProvider):
    """Answers every request with ``reply``; optionally sets an event mid-stream once."""

    def __init__(self, reply: str = "ok", interrupt: list[asyncio.Event] | None = None) -> None:
        self.reply = reply
        self.requests: list[list[dict]] = []
        self._interrupt = interrupt

    async def stream_chat(self, messages, *, model, functions=None, function_call=None, temperature=None):
        self.requests.append(messages)
        yield _frame({"choices": [{"delta": {"content": self.reply}}]})
        if self._interrupt is not None and len(self.requests) == 1:
            self._interrupt[-1].set()
            yield _frame({"choices": [{"delta": {"content": " never shown"}}]})
        yield b"data: [DONE]\n\n"


def _feed_input(monkeypatch, *lines: str) -> None:
    answers = iter(lines)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))


def test_all_missing_settings_are_reported_together(workspace, monkeypatch, capsys):
    monkeypatch.delenv("JUNO_API_KEY")
    monkeypatch.setenv("JUNO_MODEL", "")

    assert _run("--workspace", str(workspace), "index") == 2
    err = capsys.readouterr().err
    assert "Missing settings: OpenAI API Key, Chat Model" in err
    assert "Set JUNO_API_KEY, JUNO_MODEL in the environment" in err


def test_suggest_sends_file_as_scratchpad(workspace, capsys):
    provider = RecordingProvider("Use a context manager.")

    with patch("juno.main.OpenAIProvider", lambda settings: provider):
        assert _run("--workspace", str(workspace), "suggest", str(workspace / "db.py")) == 0

    system, user = provider.requests[0]
    assert system["content"].startswith("You are a python coding assistant named Juno.")
    assert "how to improve their code" in system["content"]
    assert system["content"].endswith("sqlite connection helper\n")
    assert user == {"role": "user", "content": "How may I improve this code?"}
    assert "Use a context manager." in capsys.readouterr().out


def test_create_code_session_uses_code_instructions(workspace, monkeypatch):
    provider = RecordingProvider("def add(a, b): ...")
    _feed_input(monkeypatch, "write add", "")

    with patch("juno.main.OpenAIProvider", lambda settings: provider):
        assert _run("--workspace", str(workspace), "create-code", "--scratchpad", str(workspace / "db.py")) == 0

    system, user = provider.requests[0]
    assert "you should only output python code" in system["content"]
    assert user == {"role": "user", "content": "write add"}


def test_cancelled_reply_keeps_chat_session_alive(workspace, monkeypatch, capsys):
    events: list[asyncio.Event] = []

    @contextlib.contextmanager
    def cancel_scope():
        events.append(asyncio.Event())
        yield events[-1]

    provider = RecordingProvider("partial", interrupt=events)
    _feed_input(monkeypatch, "first question", "second question", "")

    with patch("juno.main.OpenAIProvider", lambda settings: provider), patch(
        "juno.main._cancel_on_sigint", cancel_scope
    ):
        assert _run("--workspace", str(workspace), "chat") == 0

    assert len(provider.requests) == 2
    assert [m["content"] for m in provider.requests[1] if m["role"] != "system"] == ["second question"]
    assert "[reply cancelled]" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_sigint_sets_cancel_event_instead_of_interrupting():
    with _cancel_on_sigint() as cancel_event:
        os.kill(os.getpid(), signal.SIGINT)
        await asyncio.wait_for(cancel_event.wait(), timeout=1)

    assert cancel_event.is_set()
