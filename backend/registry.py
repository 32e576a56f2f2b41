"""In-memory registry of open editing sessions.

Sessions live only as long as the process; nothing is persisted. One
registry is created per app and kept on ``app.state.registry``.
"""

import logging

from scriptboard.agent import CopilotAgent
from scriptboard.analysis import AnalysisScheduler, ScriptAnalyzer
from scriptboard.config import Settings
from scriptboard.llm import LLM
from scriptboard.session import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, settings: Settings, llm: LLM | None = None) -> None:
        self.settings = settings
        self._llm = llm or settings.make_llm()
        self._sessions: dict[str, Session] = {}

    def create(self, script: str = "") -> Session:
        """Open a new session with its own agent and analysis scheduler."""
        agent = CopilotAgent(self._llm, temperature=self.settings.copilot_temperature)
        analysis = AnalysisScheduler(
            ScriptAnalyzer(self._llm),
            delay=self.settings.analysis_delay,
            min_length=self.settings.analysis_min_length,
        )
        session = Session(agent, script=script, analysis=analysis)
        self._sessions[session.id] = session
        logger.info("session %s opened (%d chars)", session.id, len(script))
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)
