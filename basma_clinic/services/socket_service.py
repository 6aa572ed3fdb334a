"""
Socket.IO service for real-time record lists.

Each socket may hold several record subscriptions (patients list, one
patient's sessions, the all-sessions index). A fresh snapshot is pushed on
every change; everything a socket holds is released when it disconnects.
"""
from typing import Any, Dict, Optional

import socketio

from basma_clinic.database import Unsubscribe
from basma_clinic.exceptions import StoreUnavailable
from basma_clinic.i18n import Translator, resolve_language
from basma_clinic.schemas import PatientOut, SessionIndexOut, SessionOut
from basma_clinic.services import patient_service, session_service
from basma_clinic.services.bilingual_service import BilingualNormalizer
from basma_clinic.utils.logger import get_logger

logger = get_logger("socket")

# Create Socket.IO server
sio = socketio.AsyncServer(
    cors_allowed_origins="*",
    async_mode="asgi",
    logger=False,
    engineio_logger=False,
)

# Store subscriptions per socket: socketId -> {subscriptionKey: unsubscribe}
socket_subscriptions: Dict[str, Dict[str, Unsubscribe]] = {}


def _context(data: Dict[str, Any]):
    translator = Translator(resolve_language(data.get("lang")))
    return translator, BilingualNormalizer(translator.translate)


def _limit(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def release(sid: str, key: Optional[str] = None) -> int:
    """Drop one subscription of a socket (or all of them when ``key`` is None)."""
    subscriptions = socket_subscriptions.get(sid) or {}
    keys = [key] if key is not None else list(subscriptions)
    released = 0
    for k in keys:
        unsubscribe = subscriptions.pop(k, None)
        if unsubscribe is not None:
            unsubscribe()
            released += 1
    return released


async def _hold(sid: str, key: str, subscribe) -> Dict[str, Any]:
    try:
        unsubscribe = await subscribe()
    except StoreUnavailable as e:
        await sio.emit("error", {"message": e.detail, "code": "E503"}, to=sid)
        return {"ok": False, "error": e.detail}
    subscriptions = socket_subscriptions.get(sid)
    if subscriptions is None:
        # socket went away while the subscription was being set up
        unsubscribe()
        return {"ok": False, "error": "disconnected"}
    # re-subscribing under the same key replaces the old subscription (e.g. new search term);
    # swapped only after the await so overlapping subscribes never drop a live handle
    previous = subscriptions.pop(key, None)
    if previous is not None:
        previous()
    subscriptions[key] = unsubscribe
    return {"ok": True, "subscription": key}


@sio.on("connect")
async def connect(sid: str, environ: dict, auth: Optional[dict] = None):
    socket_subscriptions[sid] = {}
    logger.info(f"Socket connected: {sid}")
    return True


@sio.on("disconnect")
async def disconnect(sid: str, *args):
    released = release(sid)
    socket_subscriptions.pop(sid, None)
    logger.info(f"Socket disconnected: {sid} (released {released} subscriptions)")


@sio.on("subscribe_patients")
async def subscribe_patients(sid: str, data: Optional[dict] = None):
    """Live patients list: ``{search?, limit?, lang?}`` -> ``patients`` events."""
    data = data or {}
    translator, normalizer = _context(data)

    async def push(patients):
        payload = [PatientOut.build(p, normalizer, translator).model_dump(by_alias=True, mode="json") for p in patients]
        await sio.emit("patients", payload, to=sid)

    return await _hold(
        sid,
        "patients",
        lambda: patient_service.subscribe_patients(push, data.get("search"), _limit(data.get("limit"))),
    )


@sio.on("subscribe_sessions")
async def subscribe_sessions(sid: str, data: Optional[dict] = None):
    """Live sessions of one patient: ``{patientId, lang?}`` -> ``sessions`` events."""
    data = data or {}
    patient_id = data.get("patientId") or data.get("patient_id")
    if not patient_id:
        await sio.emit("error", {"message": "patientId is required", "code": "E400"}, to=sid)
        return {"ok": False, "error": "patientId is required"}
    translator, normalizer = _context(data)

    async def push(sessions):
        payload = [SessionOut.build(s, normalizer, translator.language).model_dump(by_alias=True, mode="json") for s in sessions]
        await sio.emit("sessions", {"patientId": patient_id, "sessions": payload}, to=sid)

    return await _hold(
        sid,
        f"sessions:{patient_id}",
        lambda: session_service.subscribe_sessions(patient_id, push),
    )


@sio.on("subscribe_all_sessions")
async def subscribe_all_sessions(sid: str, data: Optional[dict] = None):
    """Live sessions index: ``{search?, lang?}`` -> ``all_sessions`` events."""
    data = data or {}
    translator, normalizer = _context(data)
    search = data.get("search")

    async def push(entries):
        if search:
            entries = session_service.search_sessions(entries, search, translator.language, normalizer)
        payload = [SessionIndexOut.build(e, normalizer, translator.language).model_dump(by_alias=True, mode="json") for e in entries]
        await sio.emit("all_sessions", payload, to=sid)

    return await _hold(sid, "all_sessions", lambda: session_service.subscribe_all_sessions(push))


@sio.on("unsubscribe")
async def unsubscribe(sid: str, data: Optional[dict] = None):
    """``{subscription}`` releases one subscription; no payload releases all of them."""
    key = (data or {}).get("subscription")
    return {"ok": True, "released": release(sid, key)}


def get_socket_app():
    """Get Socket.IO ASGI app."""
    return socketio.ASGIApp(sio, socketio_path="socket.io")
