"""
api/routes/sessions.py -- Login history endpoints.

Routes:
  POST /sessions/start  -- record a login-history entry for an existing user
  GET  /sessions/{id}   -- fetch one entry

These rows are the Session entity (login history). They are unrelated to the
server-side session records behind the session cookie.
"""

from fastapi import APIRouter, Request

from api.models import SessionEnvelope, SessionOut, SessionStart
from auth.errors import NotFound, ValidationError
from auth.models import LoginSession
from auth.store import UserStore, to_utc_iso

router = APIRouter(prefix="/sessions")


@router.post("/start", response_model=SessionEnvelope, status_code=201)
def start_session(request: Request, body: SessionStart) -> SessionEnvelope:
    store: UserStore = request.app.state.user_store
    if store.get_by_id(body.user_id) is None:
        raise ValidationError([{"field": "userId", "message": "User does not exist"}])
    session_id = store.create_login_session(
        LoginSession(user_id=body.user_id, start_time=to_utc_iso(body.start_time))
    )
    created = store.get_login_session(session_id)
    return SessionEnvelope(message="Session Started", data=SessionOut.from_session(created))


@router.get("/{session_id}", response_model=SessionEnvelope)
def get_session(request: Request, session_id: int) -> SessionEnvelope:
    store: UserStore = request.app.state.user_store
    session = store.get_login_session(session_id)
    if session is None:
        raise NotFound("Session not found.")
    return SessionEnvelope(message="Session retrieved successfully", data=SessionOut.from_session(session))
