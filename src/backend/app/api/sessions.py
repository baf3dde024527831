from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..core.deps import require_platform
from ..schemas.transcripts import SessionEndOut, SessionWebhook, TranscriptionIn, TranscriptionOut
from ..services.sessions import SessionManager, get_sessions

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"], dependencies=[Depends(require_platform)])


@router.post("/webhook")
async def session_webhook(
    body: SessionWebhook,
    sessions: SessionManager = Depends(get_sessions),
):
    """Session lifecycle callbacks from the platform."""
    if body.type == "session_request":
        info = await sessions.start(body.session_id, body.user_id)
        return {"status": "success", "display": info.welcome}
    closed = await sessions.end(body.session_id)
    return {"status": "success", "closed": closed}


@router.post("/api/sessions/{session_id}/transcription", response_model=TranscriptionOut)
async def post_transcription(
    session_id: str,
    body: TranscriptionIn,
    sessions: SessionManager = Depends(get_sessions),
):
    event, delivered, display = await sessions.transcription(session_id, body.text, body.is_final)
    if event.is_final:
        logger.info("Final transcript for session %s: %s", session_id, event.text)
    return TranscriptionOut(delivered=delivered, display=display)


@router.post("/api/sessions/{session_id}/end", response_model=SessionEndOut)
async def end_session(
    session_id: str,
    sessions: SessionManager = Depends(get_sessions),
):
    closed = await sessions.end(session_id)
    return SessionEndOut(closed=closed)
