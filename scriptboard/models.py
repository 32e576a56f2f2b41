"""Core domain models.

The agent, the executor and the session all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
Wire names from the model (``displayText``, ``assetName`` ...) are kept as
aliases; Python code uses the snake_case attribute names.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

Role = Literal["user", "model"]
AssetType = Literal["Character", "Object", "Scene"]


class ConversationMessage(BaseModel):
    """A single entry in a session's append-only chat history."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


# ---------------------------------------------------------------------------
# Actions — the closed instruction set the agent may emit
# ---------------------------------------------------------------------------

class _Action(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, strict=True)


class ScriptAppend(_Action):
    type: Literal["SCRIPT_APPEND"] = "SCRIPT_APPEND"
    content: str


class ScriptReplace(_Action):
    type: Literal["SCRIPT_REPLACE"] = "SCRIPT_REPLACE"
    content: str


class ScriptInsertAtCursor(_Action):
    type: Literal["SCRIPT_INSERT_AT_CURSOR"] = "SCRIPT_INSERT_AT_CURSOR"
    content: str


class AssetCreateSuggestion(_Action):
    type: Literal["ASSET_CREATE_SUGGESTION"] = "ASSET_CREATE_SUGGESTION"
    asset_name: str = Field(alias="assetName")
    asset_type: AssetType = Field(alias="assetType")
    description: str


class UiHighlight(_Action):
    type: Literal["UI_HIGHLIGHT"] = "UI_HIGHLIGHT"
    text_to_highlight: str = Field(alias="textToHighlight")


class UnknownAction(_Action):
    """Catch-all for unrecognised types and payloads of the wrong shape."""

    model_config = ConfigDict(frozen=True, strict=False)

    type: Any = None
    payload: Any = None
    reason: str = ""


AgentAction = Union[
    ScriptAppend,
    ScriptReplace,
    ScriptInsertAtCursor,
    AssetCreateSuggestion,
    UiHighlight,
    UnknownAction,
]

ACTION_TYPES: dict[str, type[_Action]] = {
    "SCRIPT_APPEND": ScriptAppend,
    "SCRIPT_REPLACE": ScriptReplace,
    "SCRIPT_INSERT_AT_CURSOR": ScriptInsertAtCursor,
    "ASSET_CREATE_SUGGESTION": AssetCreateSuggestion,
    "UI_HIGHLIGHT": UiHighlight,
}

SCRIPT_ACTIONS = (ScriptAppend, ScriptReplace, ScriptInsertAtCursor)


def parse_action(raw: Any) -> AgentAction:
    """Turn one wire entry ``{"type": ..., "payload": {...}}`` into an action.

    Never raises: anything that does not match a known type and payload
    shape comes back as UnknownAction with the reason recorded.
    """
    if isinstance(raw, _Action):
        return raw
    if not isinstance(raw, dict):
        return UnknownAction(payload=raw, reason="action entry is not an object")

    action_type = raw.get("type")
    payload = raw.get("payload")
    model = ACTION_TYPES.get(action_type) if isinstance(action_type, str) else None
    if model is None:
        return UnknownAction(type=action_type, payload=payload, reason="unrecognised action type")
    if not isinstance(payload, dict):
        return UnknownAction(type=action_type, payload=payload, reason="payload is not an object")

    try:
        return model.model_validate({k: v for k, v in payload.items() if k != "type"})
    except ValidationError as e:
        return UnknownAction(
            type=action_type, payload=payload,
            reason=f"malformed payload: {e.error_count()} validation error(s)",
        )


class AgentResponse(BaseModel):
    """One agent turn: chat text plus the ordered actions to execute."""

    model_config = ConfigDict(populate_by_name=True)

    display_text: str = Field(alias="displayText")
    actions: list[AgentAction] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def _parse_actions(cls, v: Any) -> list[AgentAction]:
        if not isinstance(v, list):
            raise ValueError("actions must be an array")
        return [parse_action(item) for item in v]


# ---------------------------------------------------------------------------
# Document state
# ---------------------------------------------------------------------------

class AssetSuggestion(BaseModel):
    """An asset the agent mentioned that has no saved record yet."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    asset_name: str = Field(alias="assetName")
    asset_type: AssetType = Field(alias="assetType")
    description: str


class UnresolvedAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: AssetType
    description: str | None = None
    blueprint_id: str | None = None  # set only by the blueprint parser


class DocumentState(BaseModel):
    """The live script buffer and everything the executor may touch.

    Long-lived and mutated in place; owned by exactly one session.
    """

    script_text: str = ""
    undo_snapshot: str | None = None
    cursor_selection: tuple[int, int] | None = None
    discovered_assets: list[AssetSuggestion] = Field(default_factory=list)
    unresolved_assets: list[UnresolvedAsset] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list)

    def undo(self) -> bool:
        """Restore the pre-turn script. Single level: a second call is a no-op."""
        if self.undo_snapshot is None:
            return False
        self.script_text = self.undo_snapshot
        self.undo_snapshot = None
        return True

    def resolve_asset(self, name: str, asset_type: AssetType) -> bool:
        """Drop the first unresolved entry matching name and type."""
        for i, asset in enumerate(self.unresolved_assets):
            if asset.name == name and asset.type == asset_type:
                del self.unresolved_assets[i]
                return True
        return False


class ExecutionResult(BaseModel):
    """What one executor run changed, for the caller to react to."""

    script_modified: bool = False
    new_assets_count: int = 0
    highlights: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
