"""
Tests for the Thinker loop, its response parsing and the coding assistant.
"""

import asyncio
import json
import tempfile
import shutil
from pathlib import Path

from session_hub.agents.coding_assistant import suggest_code
from session_hub.agents.prompts import (
    build_think_prompt, parse_think_response, parse_topic_response, strip_fences
)
from session_hub.agents.thinker import Thinker, THINKER_ID
from session_hub.core.session_state import SessionState
from session_hub.reasoning.backends import CompletionResult, OllamaBackend, select_backend
from session_hub.utils.config import ReasoningConfig

class FakeBackend:
    """Backend returning a canned completion, optionally held until released."""

    name = "fake"
    model = "fake-model"

    def __init__(self, text=None, error=None, hold=False):
        self.text = text
        self.error = error
        self.calls = 0
        self.completed = 0
        self.gate = asyncio.Event() if hold else None

    async def complete(self, system, user, max_tokens=600):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        self.completed += 1
        if self.error:
            return CompletionResult(backend=self.name, model=self.model, error=self.error)
        return CompletionResult(text=self.text, backend=self.name, model=self.model)

async def _settle(thinker, rounds=50):
    for _ in range(rounds):
        if not thinker.busy:
            return
        await asyncio.sleep(0.01)

def _state_with_topic():
    state = SessionState()
    state.register_agent("a", name="Alice")
    state.propose_topic("a", title="Clean water")
    return state

def test_concurrent_triggers_run_one_cycle():
    async def scenario():
        state = _state_with_topic()
        backend = FakeBackend("MESSAGE: Working on it\nCODE: print('filter')", hold=True)
        thinker = Thinker(state, backend, initial_delay=3600, interval=3600)
        await thinker.start()

        first = thinker.trigger()
        second = thinker.trigger()
        skipped = await thinker.run_once()
        await asyncio.sleep(0.01)
        busy = thinker.busy

        backend.gate.set()
        await _settle(thinker)
        await thinker.stop()
        return state, backend, first, second, skipped, busy

    state, backend, first, second, skipped, busy = asyncio.run(scenario())
    assert first is True
    assert second is False
    assert skipped is False
    assert busy is True
    assert backend.calls == 1
    assert state.bot_messages[-1]["from_id"] == THINKER_ID
    assert state.bot_messages[-1]["text"] == "Working on it"
    assert state.code_buffer.endswith("print('filter')")

def test_thinker_registers_as_agent():
    async def scenario():
        state = SessionState()
        thinker = Thinker(state, None, initial_delay=3600)
        await thinker.start()
        running = thinker.running
        await thinker.stop()
        return state, running

    state, running = asyncio.run(scenario())
    assert running
    agent = state.agent_state[THINKER_ID]
    assert agent["source"] == "self"
    assert agent["intro"]
    assert state.bot_joined_log[-1]["agent_id"] == THINKER_ID

def test_thinker_proposes_topic_when_none_current():
    async def scenario():
        state = SessionState()
        backend = FakeBackend("TITLE: Clean water for villages\nBODY: Cheap filters.")
        thinker = Thinker(state, backend, initial_delay=3600)
        await thinker.start()
        ran = await thinker.run_once()
        await thinker.stop()
        return state, ran

    state, ran = asyncio.run(scenario())
    assert ran
    topic = state.current_topic
    assert topic["title"] == "Clean water for villages"
    assert topic["body"] == "Cheap filters."
    assert topic["committed_bots"] == [THINKER_ID]

def test_backend_error_is_a_no_op():
    async def scenario():
        state = _state_with_topic()
        backend = FakeBackend(error="HTTP 500: boom")
        thinker = Thinker(state, backend, initial_delay=3600)
        await thinker.start()
        buffer_before = state.code_buffer
        messages_before = len(state.bot_messages)
        await thinker.run_once()
        busy = thinker.busy
        await thinker.stop()
        return state, buffer_before, messages_before, busy

    state, buffer_before, messages_before, busy = asyncio.run(scenario())
    assert state.code_buffer == buffer_before
    assert len(state.bot_messages) == messages_before
    assert not busy

def test_no_backend_skips_cycle():
    async def scenario():
        state = _state_with_topic()
        thinker = Thinker(state, None, initial_delay=3600)
        await thinker.start()
        await thinker.run_once()
        await thinker.stop()
        return thinker

    thinker = asyncio.run(scenario())
    assert thinker.cycles == 0

def test_message_from_other_agent_triggers_cycle():
    async def scenario():
        state = _state_with_topic()
        backend = FakeBackend("MESSAGE: Hello Alice\nCODE: none")
        thinker = Thinker(state, backend, initial_delay=3600)
        await thinker.start()
        state.post_message("a", "Thinker, any ideas?")
        await asyncio.sleep(0.01)
        await _settle(thinker)
        await thinker.stop()
        return state, backend

    state, backend = asyncio.run(scenario())
    assert backend.calls == 1
    assert state.bot_messages[-1]["text"] == "Hello Alice"
    assert state.code_edits == []

def test_stop_lets_scheduled_cycle_finish_and_discards_result():
    async def scenario():
        state = _state_with_topic()
        backend = FakeBackend("MESSAGE: Late reply\nCODE: late = True", hold=True)
        thinker = Thinker(state, backend, initial_delay=0, interval=3600)
        await thinker.start()
        await asyncio.sleep(0.05)
        started = backend.calls

        await thinker.stop()
        buffer_after_stop = state.code_buffer
        messages_after_stop = len(state.bot_messages)

        backend.gate.set()
        await _settle(thinker)
        return state, backend, started, buffer_after_stop, messages_after_stop, thinker.busy

    state, backend, started, buffer_after_stop, messages_after_stop, busy = asyncio.run(scenario())
    assert started == 1
    assert backend.completed == 1
    assert not busy
    assert state.code_buffer == buffer_after_stop
    assert len(state.bot_messages) == messages_after_stop
    assert all(m["from_id"] != THINKER_ID or m["text"] != "Late reply" for m in state.bot_messages)

class FailingRecall:
    """Memory recall client whose lookups always blow up."""

    enabled = True

    async def retrieve(self, query):
        raise RuntimeError("recall service exploded")

def test_recall_failure_does_not_skip_cycle():
    async def scenario():
        state = _state_with_topic()
        backend = FakeBackend("MESSAGE: Reasoning without memory\nCODE: none")
        thinker = Thinker(state, backend, initial_delay=3600, memory_recall=FailingRecall())
        await thinker.start()
        await thinker.run_once()
        await thinker.stop()
        return state, backend

    state, backend = asyncio.run(scenario())
    assert backend.calls == 1
    assert state.bot_messages[-1]["text"] == "Reasoning without memory"

def test_trigger_requires_running_thinker():
    thinker = Thinker(SessionState(), FakeBackend("x"))
    assert not thinker.trigger()

def test_parse_think_response():
    message, code = parse_think_response(
        "MESSAGE: Adding the sensor loop.\nCODE:\n```python\nwhile True:\n    read()\n```"
    )
    assert message == "Adding the sensor loop."
    assert code == "while True:\n    read()"

    message, code = parse_think_response("MESSAGE: Just chatting\nCODE: none")
    assert message == "Just chatting"
    assert code is None

    assert parse_think_response("") == ("", None)
    assert parse_think_response(None) == ("", None)

def test_parse_topic_response():
    title, body = parse_topic_response("TITLE: Flood alerts\nBODY: SMS alerts for river levels.")
    assert title == "Flood alerts"
    assert body == "SMS alerts for river levels."

    assert parse_topic_response("no markers here") == ("", "")

def test_strip_fences():
    assert strip_fences("```js\nconst a = 1;\n```") == "const a = 1;"
    assert strip_fences("x = 1") == "x = 1"

def test_think_prompt_is_bounded():
    state = _state_with_topic()
    state.append_code("a", "z" * 10000)
    for i in range(60):
        state.post_message("a", f"note {i}")

    system, user = build_think_prompt(state.context_for_agents(), THINKER_ID, "Thinker")
    assert "Thinker" in system
    assert "Clean water" in user
    assert "note 59" in user
    assert "note 10" not in user
    assert "z" * 6001 not in user

def test_select_backend_order():
    assert select_backend(ReasoningConfig()) is None

    backend = select_backend(ReasoningConfig(groq_api_key="k", anthropic_api_key="k2"))
    assert backend.name == "groq"

    backend = select_backend(ReasoningConfig(ollama_base_url="http://localhost:11434/",
                                             groq_api_key="k"),
                             model_override="custom")
    assert backend.name == "ollama"
    assert backend.model == "custom"
    assert backend.base_url == "http://localhost:11434"

def test_backend_transport_failure_returns_error():
    backend = OllamaBackend("http://127.0.0.1:1", timeout=2.0)
    result = asyncio.run(backend.complete("system", "user"))
    assert not result.ok
    assert result.error
    assert result.backend == "ollama"

def test_suggest_code_with_backend():
    temp_dir = Path(tempfile.mkdtemp())

    try:
        log_path = temp_dir / "assistant-log.jsonl"
        state = _state_with_topic()
        backend = FakeBackend("```python\ndef purify():\n    return True\n```")

        out = asyncio.run(suggest_code(state.context_for_agents(), "add purify",
                                       backend, str(log_path)))
        assert out["suggestion"] == "def purify():\n    return True"
        assert out["model"] == "fake-model"

        entries = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert entries[-1]["request"] == "add purify"
        assert entries[-1]["context_summary"]["topic"] == "Clean water"

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def test_suggest_code_without_backend():
    out = asyncio.run(suggest_code(SessionState().context_for_agents(), None, None))
    assert out["suggestion"] is None
    assert out["placeholder"] is True
    assert out["error"]
