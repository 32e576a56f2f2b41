"""Co-pilot turn loop tests.

Scenario coverage:
  test_outline_scenario      — a SCRIPT_REPLACE turn rewrites the script and
                               adds one model message
  TestFailure                — transport/protocol errors leave the document
                               untouched and append the fallback message
  TestUndo                   — one level of undo, taken per turn
  TestSingleFlight           — a second submit while a turn is in flight is
                               dropped at the door
  TestClose                  — a reply arriving after close is discarded
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import StubLLM, agent_json
from scriptboard.agent import CopilotAgent
from scriptboard.llm import AgentProtocolError, AgentTransportError, HttpLLM
from scriptboard.models import AgentResponse, ConversationMessage
from scriptboard.session import FALLBACK_MESSAGE, Conversation, Session, TurnState


def _replace(content: str) -> dict:
    return {"type": "SCRIPT_REPLACE", "payload": {"content": content}}


def _append(content: str) -> dict:
    return {"type": "SCRIPT_APPEND", "payload": {"content": content}}


def _session(responses: list, script: str = "") -> tuple[Session, StubLLM]:
    llm = StubLLM({"copilot": responses})
    return Session(CopilotAgent(llm), script=script), llm


class BlockingAgent:
    """Agent whose reply is held until release() is called."""

    def __init__(self, response: AgentResponse | Exception) -> None:
        self.response = response
        self.calls = 0
        self.started = asyncio.Event()
        self._release = asyncio.Event()

    def release(self) -> None:
        self._release.set()

    async def send_turn(self, user_text, script_snapshot, history) -> AgentResponse:
        self.calls += 1
        self.started.set()
        await self._release.wait()
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class TestConversation:
    def test_append_keeps_order(self) -> None:
        c = Conversation()
        c.append("user", "one")
        c.append("model", "two")
        assert [m.content for m in c.messages] == ["one", "two"]
        assert len(c) == 2

    def test_messages_is_a_snapshot(self) -> None:
        c = Conversation()
        c.append("user", "one")
        snapshot = c.messages
        c.append("model", "two")
        assert len(snapshot) == 1


# ---------------------------------------------------------------------------
# Successful turns
# ---------------------------------------------------------------------------

async def test_outline_scenario():
    session, llm = _session([agent_json("Here's an outline", _replace("ACT I\n..."))])

    outcome = await session.submit("outline a 3-act story about a fox")

    assert outcome.status == "applied"
    assert session.document.script_text == "ACT I\n..."
    assert session.conversation.messages == (
        ConversationMessage(role="user", content="outline a 3-act story about a fox"),
        ConversationMessage(role="model", content="Here's an outline"),
    )
    assert outcome.result.script_modified is True
    assert session.state is TurnState.IDLE
    llm.assert_exhausted()


async def test_history_excludes_new_user_turn():
    session, llm = _session([agent_json("first"), agent_json("second")])
    await session.submit("hello")
    await session.submit("again")

    first_history = llm.calls[0][1].history
    second_history = llm.calls[1][1].history
    assert first_history == []
    assert [m.content for m in second_history] == ["hello", "first"]


async def test_script_snapshot_sent_with_turn():
    session, llm = _session([agent_json("ok")], script="INT. DEN - NIGHT")
    await session.submit("continue")
    assert "INT. DEN - NIGHT" in llm.calls[0][1].message


async def test_reply_without_actions_keeps_undo_empty():
    session, _ = _session([agent_json("1. Line one\n2. Line two")], script="X")
    outcome = await session.submit("what should Mochi say?")
    assert outcome.result.script_modified is False
    assert session.document.undo_snapshot is None
    assert session.document.script_text == "X"


async def test_selection_used_for_insert():
    insert = {"type": "SCRIPT_INSERT_AT_CURSOR", "payload": {"content": " there"}}
    session, _ = _session([agent_json("ok", insert)], script="hello world")
    await session.submit("add a word", selection=(5, 5))
    assert session.document.script_text == "hello there world"


async def test_unknown_action_reported_not_shown():
    suggest = {
        "type": "ASSET_CREATE_SUGGESTION",
        "payload": {"assetName": "Mochi", "assetType": "Character", "description": "A fox."},
    }
    session, _ = _session([agent_json("Meet Mochi", suggest, {"type": "TELEPORT", "payload": {}})])
    outcome = await session.submit("introduce a fox named Mochi")
    assert outcome.status == "applied"
    assert len(session.document.discovered_assets) == 1
    assert outcome.result.new_assets_count == 1
    assert len(outcome.result.warnings) == 1
    assert session.conversation.messages[-1].content == "Meet Mochi"


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_input_rejected(text):
    session, llm = _session([])
    outcome = await session.submit(text)
    assert outcome.status == "rejected"
    assert len(session.conversation) == 0
    assert llm.calls == []


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailure:
    @pytest.mark.parametrize("response", [
        AgentTransportError("Cannot connect to LLM backend"),
        "definitely not json",
        '{"displayText": 5, "actions": []}',
    ])
    async def test_document_untouched(self, response) -> None:
        session, _ = _session([response], script="FADE IN:")
        session.document.undo_snapshot = "older"

        outcome = await session.submit("rewrite everything")

        assert outcome.status == "failed"
        assert session.document.script_text == "FADE IN:"
        assert session.document.undo_snapshot == "older"
        assert session.document.discovered_assets == []

    async def test_fallback_message_appended(self) -> None:
        session, _ = _session([AgentProtocolError("bad")])
        outcome = await session.submit("hello")
        assert [m.role for m in session.conversation.messages] == ["user", "model"]
        assert session.conversation.messages[-1].content == FALLBACK_MESSAGE
        assert outcome.reply.content == FALLBACK_MESSAGE

    async def test_null_completion_becomes_fallback(self) -> None:
        llm = HttpLLM(provider_url="http://localhost:8080", provider_format="openai")
        session = Session(CopilotAgent(llm), script="FADE IN:")
        resp = MagicMock()
        resp.json.return_value = {"choices": [{"message": {"role": "assistant", "content": None}}]}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=resp)):
            outcome = await session.submit("hi")

        assert outcome.status == "failed"
        assert session.document.script_text == "FADE IN:"
        assert [m.content for m in session.conversation.messages] == ["hi", FALLBACK_MESSAGE]
        assert session.busy is False

    async def test_session_usable_after_failure(self) -> None:
        session, _ = _session([AgentTransportError("down"), agent_json("back", _replace("B"))])
        await session.submit("first")
        outcome = await session.submit("second")
        assert outcome.status == "applied"
        assert session.document.script_text == "B"
        assert session.busy is False


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

class TestUndo:
    async def test_undo_restores_state_before_last_turn(self) -> None:
        session, _ = _session(
            [agent_json("one", _replace("first draft")), agent_json("two", _append("more"))],
            script="blank",
        )
        await session.submit("draft it")
        await session.submit("continue")
        assert session.document.script_text == "first draft\nmore"

        assert session.undo() is True
        assert session.document.script_text == "first draft"

    async def test_second_undo_is_noop(self) -> None:
        session, _ = _session(
            [agent_json("one", _replace("A")), agent_json("two", _replace("B"))],
            script="start",
        )
        await session.submit("one")
        await session.submit("two")
        session.undo()
        assert session.undo() is False
        assert session.document.script_text == "A"

    async def test_user_edit_after_turn_is_lost_on_undo(self) -> None:
        session, _ = _session([agent_json("ok", _append("agent"))], script="X")
        await session.submit("go")
        session.update_script("X\nagent\nmine")
        session.undo()
        assert session.document.script_text == "X"


# ---------------------------------------------------------------------------
# Single flight
# ---------------------------------------------------------------------------

class TestSingleFlight:
    async def test_second_submit_dropped(self) -> None:
        agent = BlockingAgent(AgentResponse(display_text="done", actions=[]))
        session = Session(agent)

        first = asyncio.create_task(session.submit("first"))
        await agent.started.wait()
        assert session.busy is True
        assert session.state is TurnState.SENDING

        second = await session.submit("second")
        assert second.status == "rejected"
        assert agent.calls == 1
        assert [m.content for m in session.conversation.messages] == ["first"]

        agent.release()
        outcome = await first
        assert outcome.status == "applied"
        assert session.busy is False
        assert [m.content for m in session.conversation.messages] == ["first", "done"]

    async def test_guard_released_after_failure(self) -> None:
        agent = BlockingAgent(AgentTransportError("timeout"))
        session = Session(agent)
        task = asyncio.create_task(session.submit("first"))
        await agent.started.wait()
        agent.release()
        await task
        assert session.busy is False
        assert session.state is TurnState.IDLE


# ---------------------------------------------------------------------------
# Close while in flight
# ---------------------------------------------------------------------------

class TestClose:
    async def test_reply_after_close_discarded(self) -> None:
        response = AgentResponse.model_validate(
            {"displayText": "late", "actions": [_replace("late script")]}
        )
        agent = BlockingAgent(response)
        session = Session(agent, script="original")

        task = asyncio.create_task(session.submit("go"))
        await agent.started.wait()
        session.close()
        agent.release()
        outcome = await task

        assert outcome.status == "discarded"
        assert session.document.script_text == "original"
        assert [m.content for m in session.conversation.messages] == ["go"]

    async def test_error_after_close_discarded(self) -> None:
        agent = BlockingAgent(AgentTransportError("down"))
        session = Session(agent)
        task = asyncio.create_task(session.submit("go"))
        await agent.started.wait()
        session.close()
        agent.release()
        assert (await task).status == "discarded"
        assert len(session.conversation) == 1

    async def test_submit_on_closed_session_rejected(self) -> None:
        session, llm = _session([])
        session.close()
        assert (await session.submit("hello")).status == "rejected"
        assert llm.calls == []
