"""Editing session endpoints: document, chat, undo, assets, analysis."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from backend.registry import SessionRegistry
from scriptboard.session import WELCOME_MESSAGE, Session

from .models import ChatBody, CreateSession, ResolveAsset, UpdateScript

router = APIRouter()


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _get_session(request: Request, session_id: str) -> Session:
    session = _registry(request).get(session_id)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


def _session_view(session: Session) -> dict[str, Any]:
    return {
        "id": session.id,
        "state": session.state.value,
        "busy": session.busy,
        "document": session.document.model_dump(mode="json"),
    }


@router.post("/sessions", status_code=201)
async def create_session(request: Request, body: CreateSession):
    """Open a new editing session."""
    session = _registry(request).create(script=body.script)
    return _session_view(session)


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    """Get the document snapshot and turn state of a session."""
    return _session_view(_get_session(request, session_id))


@router.delete("/sessions/{session_id}")
async def close_session(request: Request, session_id: str):
    """Close a session; an in-flight co-pilot reply is discarded."""
    if not _registry(request).close(session_id):
        raise HTTPException(404, "Session not found")
    return {"ok": True}


@router.get("/sessions/{session_id}/messages")
async def get_messages(request: Request, session_id: str):
    """Chat history, led by the welcome message."""
    session = _get_session(request, session_id)
    messages = [WELCOME_MESSAGE, *session.conversation.messages]
    return [m.model_dump() for m in messages]


@router.post("/sessions/{session_id}/chat")
async def chat(request: Request, session_id: str, body: ChatBody):
    """Send a message to the co-pilot and apply its actions."""
    session = _get_session(request, session_id)
    selection = body.selection.as_tuple() if body.selection else None
    outcome = await session.submit(body.message, selection=selection)
    return {
        "outcome": outcome.model_dump(mode="json"),
        **_session_view(session),
    }


@router.put("/sessions/{session_id}/script")
async def update_script(request: Request, session_id: str, body: UpdateScript):
    """Replace the script with the editor's text (user edit)."""
    session = _get_session(request, session_id)
    selection = body.selection.as_tuple() if body.selection else None
    session.update_script(body.text, selection=selection)
    return _session_view(session)


@router.post("/sessions/{session_id}/undo")
async def undo(request: Request, session_id: str):
    """Undo the last co-pilot turn (single level)."""
    session = _get_session(request, session_id)
    if not session.undo():
        raise HTTPException(409, "Nothing to undo")
    return _session_view(session)


@router.get("/sessions/{session_id}/assets")
async def get_assets(request: Request, session_id: str):
    """Asset suggestions discovered by the co-pilot."""
    doc = _get_session(request, session_id).document
    return {
        "discovered": [a.model_dump(by_alias=True) for a in doc.discovered_assets],
        "unresolved": [a.model_dump() for a in doc.unresolved_assets],
    }


@router.post("/sessions/{session_id}/assets/resolve")
async def resolve_asset(request: Request, session_id: str, body: ResolveAsset):
    """Drop an unresolved asset once the asset manager has created it."""
    session = _get_session(request, session_id)
    if not session.resolve_asset(body.name, body.type):
        raise HTTPException(404, "Unresolved asset not found")
    return {"unresolved": [a.model_dump() for a in session.document.unresolved_assets]}


@router.get("/sessions/{session_id}/analysis")
async def get_analysis(request: Request, session_id: str):
    """Latest narrative analysis report, if any."""
    scheduler = _get_session(request, session_id).analysis
    if scheduler is None:
        return {"report": None, "pending": False, "analyzing": False}
    return {
        "report": scheduler.report.model_dump(by_alias=True) if scheduler.report else None,
        "pending": scheduler.pending,
        "analyzing": scheduler.analyzing,
    }
