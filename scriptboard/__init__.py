"""Scriptboard — script editor co-pilot with a typed action protocol."""

from scriptboard.agent import CopilotAgent  # noqa: F401
from scriptboard.executor import apply_actions  # noqa: F401
from scriptboard.llm import (  # noqa: F401
    AgentError,
    AgentProtocolError,
    AgentTransportError,
    HttpLLM,
)
from scriptboard.session import Session, TurnOutcome  # noqa: F401
