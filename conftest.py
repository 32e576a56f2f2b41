import json

import pytest

from scriptboard.llm import AgentError, LLMRequest


class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response that is an exception instance is raised instead of returned.
    Raises if a stage is called more times than responses were provided.
    """

    def __init__(self, responses: dict[str, list]) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, LLMRequest]] = []

    async def __call__(self, stage: str, request: LLMRequest) -> str:
        self.calls.append((stage, request))
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {len(self.calls)}"
            )
        response = queue.pop(0)
        if isinstance(response, AgentError):
            raise response
        return response

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(f"StubLLM: unused responses remain: {leftover}")


def agent_json(display_text: str, *actions: dict) -> str:
    """Serialise an agent response the way the model returns it."""
    return json.dumps({"displayText": display_text, "actions": list(actions)})


@pytest.fixture
def stub_llm():
    """Factory: stub_llm(copilot=[...], analysis=[...]) → StubLLM."""
    def make(**responses: list) -> StubLLM:
        return StubLLM(responses)
    return make
