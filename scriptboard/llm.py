"""LLM client — HTTP connection to a structured-output generation backend.

The agent and the analyzer inject an LLM callable matching the protocol:

    async def __call__(self, stage: str, request: LLMRequest) -> str: ...

`stage` identifies which caller is asking (e.g. "copilot", "analysis").
The implementation may use it for logging or routing; the simplest
implementation ignores it. The returned string is the raw response text,
which the caller parses as JSON.

Two implementations are provided:

    HttpLLM   — real HTTP client, supports the Gemini generateContent API and
                 OpenAI-compatible chat completions. Selected by
                 provider_format.
    EchoLLM   — returns the request message back unchanged. Selected with
                 provider_format "echo" to smoke-test the wiring without a
                 running model.

Production code constructs an HttpLLM from settings and hands it to the
session. Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx
from pydantic import BaseModel, Field

from scriptboard.models import ConversationMessage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AgentError(RuntimeError):
    """Base class for every failure of a model round trip."""


class AgentTransportError(AgentError):
    """The backend could not be reached, timed out, or returned an HTTP error."""


class AgentProtocolError(AgentError):
    """A response arrived but does not parse into the expected shape."""


# ---------------------------------------------------------------------------
# Request + protocol
# ---------------------------------------------------------------------------

class LLMRequest(BaseModel):
    """One structured-output generation request.

    Mirrors the chat shape of the upstream APIs: a system instruction, prior
    turns, the new message, and the JSON schema the answer must follow.
    """

    system_instruction: str
    message: str
    history: list[ConversationMessage] = Field(default_factory=list)
    response_schema: dict[str, Any] | None = None
    temperature: float | None = None


class LLM(Protocol):
    async def __call__(self, stage: str, request: LLMRequest) -> str: ...


def strip_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper some backends add around JSON output."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["gemini", "openai"]


def _json_schema(schema: Any) -> Any:
    """Lower-case Gemini-style type names ("OBJECT") for JSON Schema consumers."""
    if isinstance(schema, dict):
        return {
            k: v.lower() if k == "type" and isinstance(v, str) else _json_schema(v)
            for k, v in schema.items()
        }
    if isinstance(schema, list):
        return [_json_schema(v) for v in schema]
    return schema


class HttpLLM:
    """Async HTTP client for structured-output backends.

    Supported formats:
      "gemini"  — POST /v1beta/models/{model}:generateContent
                  Body: {"systemInstruction", "contents", "generationConfig"}
                  Response: {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
      "openai"  — POST /v1/chat/completions
                  Body: {"model", "messages", "response_format"}
                  Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        provider_url:    Base URL of the backend.
        api_key:         API key, or empty string if not required.
        provider_format: Wire format to use. Defaults to "gemini".
        model:           Model identifier.
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "gemini",
        model: str = "gemini-2.5-flash",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            if self._format == "gemini":
                headers["x-goog-api-key"] = self._api_key
            else:
                headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, request: LLMRequest) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            messages = [{"role": "system", "content": request.system_instruction}]
            messages.extend(
                {"role": "assistant" if m.role == "model" else "user", "content": m.content}
                for m in request.history
            )
            messages.append({"role": "user", "content": request.message})
            body: dict = {"messages": messages}
            if self._model:
                body["model"] = self._model
            if request.temperature is not None:
                body["temperature"] = request.temperature
            if request.response_schema is not None:
                body["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {"name": "response", "schema": _json_schema(request.response_schema)},
                }
            return url, body

        # gemini (default)
        url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
        contents = [
            {"role": m.role, "parts": [{"text": m.content}]} for m in request.history
        ]
        contents.append({"role": "user", "parts": [{"text": request.message}]})
        generation_config: dict = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = request.response_schema
        body = {
            "systemInstruction": {"parts": [{"text": request.system_instruction}]},
            "contents": contents,
        }
        if generation_config:
            body["generationConfig"] = generation_config
        return url, body

    def _parse_response(self, data: Any) -> str:
        """Extract the completion text from the response body."""
        if not isinstance(data, dict):
            raise AgentProtocolError("Unexpected response format from LLM backend")

        if self._format == "openai":
            choices = data.get("choices")
            try:
                content = choices[0]["message"]["content"]
            except (TypeError, KeyError, IndexError) as e:
                raise AgentProtocolError(
                    "Unexpected response format from OpenAI-compatible backend"
                ) from e
            # null for refusals and tool-call replies
            if not isinstance(content, str):
                raise AgentProtocolError("OpenAI-compatible backend returned no text content")
            return content

        # gemini
        candidates = data.get("candidates")
        try:
            texts = [p["text"] for p in candidates[0]["content"]["parts"] if "text" in p]
        except (TypeError, KeyError, IndexError) as e:
            raise AgentProtocolError("Unexpected response format from Gemini backend") from e
        if not all(isinstance(t, str) for t in texts):
            raise AgentProtocolError("Gemini backend returned a non-text part")
        return "".join(texts)

    async def __call__(self, stage: str, request: LLMRequest) -> str:
        url, body = self._build_request(request)
        logger.debug(
            "llm call stage=%s url=%s history=%d message_len=%d",
            stage, url, len(request.history), len(request.message),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise AgentTransportError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise AgentTransportError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise AgentTransportError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise AgentTransportError(f"LLM request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise AgentProtocolError("LLM backend returned a non-JSON body") from e

        text = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# EchoLLM — returns the message unchanged; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the request message as-is. No network calls.

    The output won't be valid JSON for structured stages, so an agent turn
    fails with AgentProtocolError and the session falls back to the apology
    message. Use StubLLM in tests when you need controlled responses.
    """

    async def __call__(self, stage: str, request: LLMRequest) -> str:
        logger.debug("EchoLLM stage=%s message_len=%d", stage, len(request.message))
        return request.message
