"""Action executor — applies one agent turn's actions to a document.

Turn flow:
  1. Snapshot the script into the undo slot once, if there is anything to do.
  2. Apply actions in the order received; a later script action overrides
     an earlier one in the same turn.
       SCRIPT_APPEND            → append with a newline separator
       SCRIPT_REPLACE           → replace the whole script
       SCRIPT_INSERT_AT_CURSOR  → splice at the selection, or append raw
       ASSET_CREATE_SUGGESTION  → queue discovered + unresolved asset
       UI_HIGHLIGHT             → forward the text to the presentation layer
       anything else            → skip with a warning
  3. Report what changed so the caller can move UI focus.

Never raises for any action in the list.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from scriptboard.models import (
    AgentAction,
    AssetCreateSuggestion,
    AssetSuggestion,
    DocumentState,
    ExecutionResult,
    ScriptAppend,
    ScriptInsertAtCursor,
    ScriptReplace,
    UiHighlight,
    UnknownAction,
    UnresolvedAsset,
)

logger = logging.getLogger(__name__)

APPEND_SEPARATOR = "\n"


def append_text(script: str, content: str) -> str:
    """Append content, separated by one newline unless the script is empty
    or already ends with one."""
    if not script or script.endswith(APPEND_SEPARATOR):
        return script + content
    return script + APPEND_SEPARATOR + content


def insert_at(script: str, selection: tuple[int, int], content: str) -> tuple[str, int]:
    """Replace the selected range with content. Returns (new_text, new_cursor).

    Offsets are clamped to the text and ordered.
    """
    start, end = sorted(selection)
    start = max(0, min(start, len(script)))
    end = max(0, min(end, len(script)))
    new_text = script[:start] + content + script[end:]
    return new_text, start + len(content)


def apply_actions(actions: Sequence[AgentAction], doc: DocumentState) -> ExecutionResult:
    """Apply actions to doc in order and return what changed."""
    result = ExecutionResult()
    if not actions:
        return result

    doc.undo_snapshot = doc.script_text
    doc.highlights = []

    for action in actions:
        if isinstance(action, ScriptAppend):
            doc.script_text = append_text(doc.script_text, action.content)
            result.script_modified = True

        elif isinstance(action, ScriptReplace):
            doc.script_text = action.content
            result.script_modified = True

        elif isinstance(action, ScriptInsertAtCursor):
            if doc.cursor_selection is not None:
                doc.script_text, cursor = insert_at(
                    doc.script_text, doc.cursor_selection, action.content,
                )
            else:
                doc.script_text += action.content
                cursor = len(doc.script_text)
            doc.cursor_selection = (cursor, cursor)
            result.script_modified = True

        elif isinstance(action, AssetCreateSuggestion):
            doc.discovered_assets.append(AssetSuggestion(
                asset_name=action.asset_name,
                asset_type=action.asset_type,
                description=action.description,
            ))
            doc.unresolved_assets.append(UnresolvedAsset(
                name=action.asset_name,
                type=action.asset_type,
                description=action.description,
            ))
            result.new_assets_count += 1

        elif isinstance(action, UiHighlight):
            doc.highlights.append(action.text_to_highlight)
            result.highlights.append(action.text_to_highlight)

        else:
            reason = action.reason if isinstance(action, UnknownAction) else "unsupported action"
            action_type = getattr(action, "type", None)
            logger.warning("Unknown action %r (%s) — skipped", action_type, reason)
            result.warnings.append(f"{action_type!r}: {reason}")

    return result
