"""Narrative analysis of the script, re-run after edits settle.

ScriptAnalyzer asks the model for a structured report (pacing, character
voice, show-don't-tell, themes). AnalysisScheduler debounces it: every
script change cancels the pending run and schedules a new one after a quiet
interval, so only the last edit in a burst is analysed.
"""

from __future__ import annotations

import asyncio
import json
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scriptboard.llm import LLM, AgentError, AgentProtocolError, LLMRequest, strip_fences
from scriptboard.prompts import ANALYSIS_SYSTEM_INSTRUCTION

logger = logging.getLogger(__name__)


class _ReportItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PacingPoint(_ReportItem):
    scene_number: float = Field(alias="sceneNumber")
    tension_score: float = Field(alias="tensionScore")  # 1 calm … 10 high tension
    explanation: str


class CharacterVoiceScore(_ReportItem):
    character_name: str = Field(alias="characterName")
    consistency_score: float = Field(alias="consistencyScore")
    analysis: str


class ShowDontTellWarning(_ReportItem):
    scene_number: float = Field(alias="sceneNumber")
    line_text: str = Field(alias="lineText")
    suggestion: str


class ThematicResonance(_ReportItem):
    theme: str
    score: float
    analysis: str


class AnalysisReport(_ReportItem):
    pacing_graph: list[PacingPoint] = Field(alias="pacingGraph")
    character_voice_scores: list[CharacterVoiceScore] = Field(alias="characterVoiceScores")
    show_dont_tell_warnings: list[ShowDontTellWarning] = Field(alias="showDontTellWarnings")
    thematic_resonance: list[ThematicResonance] = Field(alias="thematicResonance")


def _array_of(properties: dict, required: list[str], description: str) -> dict:
    return {
        "type": "ARRAY",
        "description": description,
        "items": {"type": "OBJECT", "properties": properties, "required": required},
    }


ANALYSIS_REPORT_SCHEMA: dict = {
    "type": "OBJECT",
    "properties": {
        "pacingGraph": _array_of(
            {
                "sceneNumber": {"type": "NUMBER"},
                "tensionScore": {"type": "NUMBER", "description": "From 1 (calm) to 10 (high tension)."},
                "explanation": {"type": "STRING", "description": "Briefly justify the score."},
            },
            ["sceneNumber", "tensionScore", "explanation"],
            "Map each scene to a tension score (1-10) with a brief explanation.",
        ),
        "characterVoiceScores": _array_of(
            {
                "characterName": {"type": "STRING"},
                "consistencyScore": {"type": "NUMBER", "description": "From 1 (inconsistent) to 10 (very consistent)."},
                "analysis": {"type": "STRING", "description": "Explain the score, noting out-of-character dialogue."},
            },
            ["characterName", "consistencyScore", "analysis"],
            "Score the dialogue consistency for each major character.",
        ),
        "showDontTellWarnings": _array_of(
            {
                "sceneNumber": {"type": "NUMBER"},
                "lineText": {"type": "STRING", "description": "The exact line that is 'telling'."},
                "suggestion": {"type": "STRING", "description": "A concrete visual action to 'show' instead."},
            },
            ["sceneNumber", "lineText", "suggestion"],
            "Identify lines of pure exposition and suggest visual alternatives.",
        ),
        "thematicResonance": _array_of(
            {
                "theme": {"type": "STRING", "description": "The identified theme, e.g. 'Betrayal'."},
                "score": {"type": "NUMBER", "description": "From 1 to 10, how strongly the theme is present."},
                "analysis": {"type": "STRING", "description": "Where the theme is present or lacking."},
            },
            ["theme", "score", "analysis"],
            "How well the script aligns with its core themes.",
        ),
    },
    "required": ["pacingGraph", "characterVoiceScores", "showDontTellWarnings", "thematicResonance"],
}


class ScriptAnalyzer:
    def __init__(self, llm: LLM) -> None:
        self._llm = llm

    async def analyze(self, script: str) -> AnalysisReport:
        """Request a report for script. Raises AgentError subclasses on failure."""
        request = LLMRequest(
            system_instruction=ANALYSIS_SYSTEM_INSTRUCTION,
            message=script,
            response_schema=ANALYSIS_REPORT_SCHEMA,
        )
        output = await self._llm("analysis", request)
        try:
            return AnalysisReport.model_validate(json.loads(strip_fences(output)))
        except json.JSONDecodeError as e:
            raise AgentProtocolError(f"Analysis returned invalid JSON: {e}") from e
        except ValidationError as e:
            raise AgentProtocolError(f"Analysis report does not match schema: {e.error_count()} error(s)") from e


class AnalysisScheduler:
    """Debounced analysis runner holding the latest report.

    Args:
        analyzer:   Produces reports.
        delay:      Quiet interval in seconds before a scheduled run fires.
        min_length: Scripts shorter than this clear the report instead.
    """

    def __init__(self, analyzer: ScriptAnalyzer, delay: float = 2.0, min_length: int = 200) -> None:
        self._analyzer = analyzer
        self._delay = delay
        self._min_length = min_length
        self._task: asyncio.Task | None = None
        self.report: AnalysisReport | None = None
        self.analyzing = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, script: str) -> None:
        """(Re)start the quiet-interval timer for script.

        Must be called from a running event loop.
        """
        self.cancel()
        if len(script) < self._min_length:
            self.report = None
            return
        self._task = asyncio.get_running_loop().create_task(self._run(script))

    def cancel(self) -> None:
        """Cancel a scheduled run that has not finished yet."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait for the scheduled run, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, script: str) -> None:
        await asyncio.sleep(self._delay)
        self.analyzing = True
        try:
            self.report = await self._analyzer.analyze(script)
            logger.info("script analysis updated (%d chars)", len(script))
        except AgentError as e:
            logger.warning("Script analysis failed: %s", e)
        except Exception:
            # nobody awaits this task; keep the traceback in the log
            logger.exception("Script analysis crashed")
        finally:
            self.analyzing = False
