"""Editing session: conversation, document, and the co-pilot turn loop.

A Session is created when an editor opens and closed when it goes away.
It owns the document and the conversation exclusively; the presentation
layer reads them and calls the operations below.

Turn flow (Session.submit):
  IDLE → SENDING → APPLIED | FAILED → IDLE

  1. Reject blank input, a second submit while a turn is in flight, and any
     submit on a closed session. The in-flight flag is set before the first
     await, so a rejected submit never reaches the agent.
  2. Append the user message, then call the agent with the prior history.
  3. On success append the model reply and run the action executor.
     On any AgentError append the fallback message; the document is not
     touched.
  4. If the session was closed while the call was in flight, drop the
     response without applying it.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Sequence
from typing import Literal, Protocol

from pydantic import BaseModel

from scriptboard.analysis import AnalysisScheduler
from scriptboard.executor import apply_actions
from scriptboard.llm import AgentError
from scriptboard.models import (
    AgentResponse,
    AssetType,
    ConversationMessage,
    DocumentState,
    ExecutionResult,
    Role,
)

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = ConversationMessage(
    role="model",
    content="Welcome! How can I help you build your story? Try one of these prompts:",
)
FALLBACK_MESSAGE = "Sorry, I encountered an error. Please try again."


class Agent(Protocol):
    async def send_turn(
        self,
        user_text: str,
        script_snapshot: str,
        history: Sequence[ConversationMessage],
    ) -> AgentResponse: ...


class TurnState(str, enum.Enum):
    IDLE = "idle"
    SENDING = "sending"
    APPLIED = "applied"
    FAILED = "failed"


class TurnOutcome(BaseModel):
    """How a submit ended, for callers that await it."""

    status: Literal["rejected", "applied", "failed", "discarded"]
    reply: ConversationMessage | None = None
    result: ExecutionResult | None = None
    error: str | None = None


class Conversation:
    """Append-only ordered chat history."""

    def __init__(self) -> None:
        self._messages: list[ConversationMessage] = []

    def append(self, role: Role, content: str) -> ConversationMessage:
        msg = ConversationMessage(role=role, content=content)
        self._messages.append(msg)
        return msg

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)


class Session:
    """One editing session.

    Args:
        agent:     Co-pilot client used for every turn.
        script:    Initial script text.
        analysis:  Optional debounced analyzer, rescheduled on script changes.
    """

    def __init__(
        self,
        agent: Agent,
        script: str = "",
        analysis: AnalysisScheduler | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.document = DocumentState(script_text=script)
        self.conversation = Conversation()
        self.state = TurnState.IDLE
        self.closed = False
        self._agent = agent
        self._analysis = analysis
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    @property
    def analysis(self) -> AnalysisScheduler | None:
        return self._analysis

    # ------------------------------------------------------------------
    # Co-pilot turn
    # ------------------------------------------------------------------

    async def submit(
        self, user_text: str, selection: tuple[int, int] | None = None,
    ) -> TurnOutcome:
        """Run one co-pilot turn for user_text.

        `selection` is the editor's cursor at send time; when given it is
        used by SCRIPT_INSERT_AT_CURSOR actions.
        """
        if self.closed or self._in_flight or not user_text.strip():
            logger.debug("submit rejected session=%s busy=%s", self.id, self._in_flight)
            return TurnOutcome(status="rejected")

        self._in_flight = True
        self.state = TurnState.SENDING
        try:
            history = self.conversation.messages
            self.conversation.append("user", user_text)
            try:
                response = await self._agent.send_turn(user_text, self.document.script_text, history)
            except AgentError as e:
                if self.closed:
                    return TurnOutcome(status="discarded")
                logger.warning("Co-pilot error session=%s: %s", self.id, e)
                self.state = TurnState.FAILED
                reply = self.conversation.append("model", FALLBACK_MESSAGE)
                return TurnOutcome(status="failed", reply=reply, error=str(e))

            if self.closed:
                logger.info("session %s closed mid-turn, response discarded", self.id)
                return TurnOutcome(status="discarded")

            reply = self.conversation.append("model", response.display_text)
            if selection is not None:
                self.document.cursor_selection = selection
            result = apply_actions(response.actions, self.document)
            self.state = TurnState.APPLIED
            if result.script_modified:
                self._reschedule_analysis()
            return TurnOutcome(status="applied", reply=reply, result=result)
        finally:
            self._in_flight = False
            self.state = TurnState.IDLE

    # ------------------------------------------------------------------
    # Editor operations
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        """Restore the script from before the last agent turn."""
        if not self.document.undo():
            return False
        self._reschedule_analysis()
        return True

    def update_script(self, text: str, selection: tuple[int, int] | None = None) -> None:
        """Take a user edit from the editor."""
        changed = text != self.document.script_text
        self.document.script_text = text
        if selection is not None:
            self.document.cursor_selection = selection
        if changed:
            self._reschedule_analysis()

    def set_selection(self, selection: tuple[int, int] | None) -> None:
        self.document.cursor_selection = selection

    def resolve_asset(self, name: str, asset_type: AssetType) -> bool:
        """Called by the asset manager once an unresolved asset has a record."""
        return self.document.resolve_asset(name, asset_type)

    def close(self) -> None:
        """Mark the session inactive. An in-flight turn is discarded on return."""
        self.closed = True
        if self._analysis is not None:
            self._analysis.cancel()
        logger.info("session %s closed", self.id)

    def _reschedule_analysis(self) -> None:
        if self._analysis is not None and not self.closed:
            self._analysis.schedule(self.document.script_text)
