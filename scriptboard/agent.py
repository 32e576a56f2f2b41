"""Co-pilot agent client.

Sends one user turn plus the live script to the model and returns the
parsed AgentResponse. The client has no side effects beyond the network
call: it never touches conversation or document state, the session applies
what it returns.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from pydantic import ValidationError

from scriptboard.llm import LLM, AgentProtocolError, LLMRequest, strip_fences
from scriptboard.models import AgentResponse, ConversationMessage
from scriptboard.prompts import COPILOT_SYSTEM_INSTRUCTION, copilot_message

logger = logging.getLogger(__name__)

COPILOT_RESPONSE_SCHEMA: dict = {
    "type": "OBJECT",
    "properties": {
        "displayText": {
            "type": "STRING",
            "description": "The conversational, friendly text to display to the user in the chat window.",
        },
        "actions": {
            "type": "ARRAY",
            "description": (
                "Actions for the application to execute automatically. Leave empty if the "
                "request is just a question or doesn't require direct action."
            ),
            "items": {
                "type": "OBJECT",
                "properties": {
                    "type": {
                        "type": "STRING",
                        "description": (
                            "One of: 'SCRIPT_APPEND', 'SCRIPT_REPLACE', 'SCRIPT_INSERT_AT_CURSOR', "
                            "'ASSET_CREATE_SUGGESTION', 'UI_HIGHLIGHT'."
                        ),
                    },
                    "payload": {
                        "type": "OBJECT",
                        "description": "The data needed to perform the action. Shape depends on the type.",
                        "properties": {
                            "content": {"type": "STRING", "description": "For script actions, the text to add or replace."},
                            "assetName": {"type": "STRING", "description": "For asset suggestions, the asset name."},
                            "assetType": {"type": "STRING", "description": "For asset suggestions: 'Character', 'Object' or 'Scene'."},
                            "description": {"type": "STRING", "description": "For asset suggestions, a brief description."},
                            "textToHighlight": {"type": "STRING", "description": "For UI highlighting, the exact script text."},
                        },
                    },
                },
                "required": ["type", "payload"],
            },
        },
    },
    "required": ["displayText", "actions"],
}


def parse_agent_response(output: str) -> AgentResponse:
    """Parse raw model output into an AgentResponse.

    Raises AgentProtocolError when the text is not a JSON object with a
    string displayText and an actions array. Individual malformed actions
    do not fail the parse; they come back as UnknownAction.
    """
    try:
        data = json.loads(strip_fences(output))
    except json.JSONDecodeError as e:
        raise AgentProtocolError(f"Agent returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AgentProtocolError(f"Agent response must be a JSON object, got {type(data).__name__}")
    try:
        return AgentResponse.model_validate(data)
    except ValidationError as e:
        raise AgentProtocolError(f"Agent response does not match schema: {e.error_count()} error(s)") from e


class CopilotAgent:
    """Agent client bound to an LLM backend.

    Args:
        llm:         Any callable matching the LLM protocol.
        temperature: Sampling temperature sent with every turn.
    """

    def __init__(self, llm: LLM, temperature: float | None = 0.7) -> None:
        self._llm = llm
        self._temperature = temperature

    async def send_turn(
        self,
        user_text: str,
        script_snapshot: str,
        history: Sequence[ConversationMessage],
    ) -> AgentResponse:
        """Run one co-pilot turn.

        `history` is every message before the new user turn. Raises
        AgentTransportError or AgentProtocolError; nothing else is caught.
        """
        request = LLMRequest(
            system_instruction=COPILOT_SYSTEM_INSTRUCTION,
            message=copilot_message(user_text, script_snapshot),
            history=list(history),
            response_schema=COPILOT_RESPONSE_SCHEMA,
            temperature=self._temperature,
        )
        output = await self._llm("copilot", request)
        try:
            response = parse_agent_response(output)
        except AgentProtocolError:
            logger.warning("Co-pilot returned unparseable output: %r", output[:500])
            raise
        logger.debug(
            "copilot turn display_len=%d actions=%d",
            len(response.display_text), len(response.actions),
        )
        return response
