"""
Socket.IO server for case chat.

Clients authenticate with their access token (``auth.token`` or the ``token``
query parameter), land in ``user:{id}`` for notifications, and join
``case:{id}`` rooms explicitly.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import parse_qs

import socketio
from starlette.concurrency import run_in_threadpool

from app.auth.utils import verify_token
from app.config import CORS_ORIGINS
from app.database import SessionLocal
from app.errors import AppError, AuthenticationError
from app.models import MessageType, User
from app.services import chat_service
from app.services.case_service import CaseService

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=CORS_ORIGINS, logger=False)

_loop: Optional[asyncio.AbstractEventLoop] = None


def case_room(case_id: str) -> str:
    return f"case:{case_id}"


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def bind_event_loop(loop: asyncio.AbstractEventLoop):
    """Remember the server loop so sync code (threadpool routes, background tasks) can emit."""
    global _loop
    _loop = loop


def _log_emit_failure(future):
    if not future.cancelled() and future.exception() is not None:
        logger.error(f"Socket emit failed: {future.exception()}")


def emit_threadsafe(event: str, data: dict, room: str):
    if _loop is None or _loop.is_closed():
        logger.debug(f"No running socket loop, dropping '{event}' for {room}")
        return
    future = asyncio.run_coroutine_threadsafe(sio.emit(event, data, room=room), _loop)
    future.add_done_callback(_log_emit_failure)


def _token_from_handshake(environ: dict, auth: Optional[dict]) -> Optional[str]:
    if isinstance(auth, dict) and auth.get("token"):
        return auth["token"]
    query = parse_qs(environ.get("QUERY_STRING", ""))
    tokens = query.get("token")
    return tokens[0] if tokens else None


def _case_id(data) -> Optional[str]:
    if isinstance(data, dict):
        return data.get("case_id")
    return data


def _load_session(user_id: str) -> Optional[dict]:
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
        if user is None or not user.is_active:
            return None
        return {"user_id": user.id, "name": user.full_name, "role": user.role.value}
    finally:
        db.close()


def _can_chat(case_id: Optional[str], user_id: str) -> bool:
    if not case_id:
        return False
    db = SessionLocal()
    try:
        return CaseService(db).user_can_chat(case_id, user_id)
    finally:
        db.close()


def _store_message(case_id: str, user_id: str, data: dict) -> tuple[Optional[dict], Optional[str]]:
    """Persist a chat message; returns (serialized message, error message)."""
    db = SessionLocal()
    try:
        if not CaseService(db).user_can_chat(case_id, user_id):
            return None, "Access denied"
        try:
            message = chat_service.create_message(
                db,
                case_id=case_id,
                sender_id=user_id,
                content=data.get("content"),
                message_type=MessageType(data.get("type") or "TEXT"),
                attachment_url=data.get("attachment_url"),
            )
        except (AppError, ValueError) as e:
            db.rollback()
            logger.warning(f"Rejected socket message for case {case_id}: {e}")
            return None, getattr(e, "message", "Invalid message")
        return chat_service.serialize_message(message), None
    finally:
        db.close()


def _mark_read(case_id: str, user_id: str) -> Optional[int]:
    db = SessionLocal()
    try:
        if not CaseService(db).user_can_chat(case_id, user_id):
            return None
        return chat_service.mark_messages_read(db, case_id, user_id)
    finally:
        db.close()


@sio.event
async def connect(sid, environ, auth=None):
    token = _token_from_handshake(environ, auth)
    if not token:
        raise socketio.exceptions.ConnectionRefusedError("Authentication required")

    try:
        payload = verify_token(token, "access")
    except AuthenticationError:
        raise socketio.exceptions.ConnectionRefusedError("Invalid or expired token")

    session = await run_in_threadpool(_load_session, payload["sub"])
    if session is None:
        raise socketio.exceptions.ConnectionRefusedError("Account unavailable")

    await sio.save_session(sid, session)
    await sio.enter_room(sid, user_room(session["user_id"]))
    logger.info(f"Socket connected: user={session['user_id']} sid={sid}")


@sio.event
async def disconnect(sid):
    logger.info(f"Socket disconnected: sid={sid}")


@sio.event
async def join_case(sid, data):
    session = await sio.get_session(sid)
    case_id = _case_id(data)

    if not await run_in_threadpool(_can_chat, case_id, session["user_id"]):
        await sio.emit("error", {"message": "Access denied to this case"}, to=sid)
        return

    await sio.enter_room(sid, case_room(case_id))
    await sio.emit("joined_case", {"case_id": case_id}, to=sid)
    logger.info(f"User {session['user_id']} joined case room {case_id}")


@sio.event
async def leave_case(sid, data):
    case_id = _case_id(data)
    if case_id:
        await sio.leave_room(sid, case_room(case_id))


@sio.event
async def send_message(sid, data):
    session = await sio.get_session(sid)
    data = data or {}
    case_id = data.get("case_id")
    if not case_id:
        await sio.emit("error", {"message": "Access denied"}, to=sid)
        return

    payload, error = await run_in_threadpool(_store_message, case_id, session["user_id"], data)
    if error:
        await sio.emit("error", {"message": error}, to=sid)
        return

    await sio.emit("message_received", payload, room=case_room(case_id))


@sio.event
async def typing(sid, data):
    session = await sio.get_session(sid)
    data = data or {}
    case_id = data.get("case_id")
    if not case_id:
        return
    await sio.emit(
        "user_typing",
        {
            "case_id": case_id,
            "user_id": session["user_id"],
            "name": session["name"],
            "is_typing": bool(data.get("is_typing")),
        },
        room=case_room(case_id),
        skip_sid=sid,
    )


@sio.event
async def mark_read(sid, data):
    session = await sio.get_session(sid)
    case_id = _case_id(data)

    count = await run_in_threadpool(_mark_read, case_id, session["user_id"]) if case_id else None
    if count is None:
        await sio.emit("error", {"message": "Access denied"}, to=sid)
        return

    await sio.emit(
        "messages_read",
        {"case_id": case_id, "user_id": session["user_id"], "count": count},
        room=case_room(case_id),
    )
