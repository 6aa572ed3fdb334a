"""
Therapy sessions: the per-patient collection plus the flat ``sessionsIndex``.

Each write touches the session, its index entry and the patient's
``sessionCount`` in a single multi-path update.
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from basma_clinic.constants import CategoryDomain, SESSIONS_INDEX_PATH, SESSIONS_PATH
from basma_clinic.database import Listener, Unsubscribe, get_backend, invoke_listener
from basma_clinic.exceptions import NotFound
from basma_clinic.models import Patient, Session, SessionIndexEntry
from basma_clinic.services.bilingual_service import BilingualNormalizer
from basma_clinic.services.patient_service import (
    check_editable,
    get_patient_raw,
    index_path,
    new_session_record,
    patient_path,
    validate_record,
)
from basma_clinic.utils.dates import now_ms
from basma_clinic.utils.logger import get_logger

logger = get_logger("sessions")


def session_path(patient_id: str, session_id: str, *rest: str) -> str:
    return patient_path(patient_id, SESSIONS_PATH, session_id, *rest)


def _sort_key(session: Session):
    # newest session date first; undated sessions sink to the end
    return (session.session_date or date.min, session.created_at, session.id)


def sort_sessions(sessions: Iterable[Session]) -> List[Session]:
    return sorted(sessions, key=_sort_key, reverse=True)


async def create_session(patient_id: str, fields: Dict[str, Any]) -> Session:
    backend = get_backend()
    raw = await get_patient_raw(patient_id)
    patient = Patient.from_storage(patient_id, raw)

    session = new_session_record(backend, patient_id, fields)
    entry = SessionIndexEntry.for_session(session, patient.full_name, patient.national_id)
    await backend.multi_update({
        session_path(patient_id, session.id): session.to_storage(),
        index_path(session.id): entry.to_storage(),
        patient_path(patient_id, "sessionCount"): patient.session_count + 1,
    })
    logger.info(f"Session created: {session.id} for patient {patient_id}")
    return session


async def get_session(patient_id: str, session_id: str) -> Session:
    raw = await get_backend().get(session_path(patient_id, session_id))
    if not isinstance(raw, dict):
        raise NotFound("Session not found", "session.sessionNotFound")
    return Session.from_storage(patient_id, session_id, raw)


async def update_session(patient_id: str, session_id: str, changes: Dict[str, Any]) -> Session:
    """Apply the same field changes to the session and its index entry.

    The patient snapshot fields of the index entry are not touched here.
    """
    backend = get_backend()
    changes = Session.by_field_name(changes)
    check_editable(changes, Session)

    raw = await get_patient_raw(patient_id)
    stored_session = (raw.get(SESSIONS_PATH) or {}).get(session_id)
    if not isinstance(stored_session, dict):
        raise NotFound("Session not found", "session.sessionNotFound")
    current = Session.from_storage(patient_id, session_id, stored_session)
    if not changes:
        return current

    updated = validate_record(Session, {**current.model_dump(), **changes, "updated_at": now_ms()})
    stored = updated.to_storage()
    updates: Dict[str, Any] = {}
    fields = [*changes, "updated_at"]
    for name in fields:
        key = Session.storage_key(name)
        updates[session_path(patient_id, session_id, key)] = stored.get(key)

    index_entry = await backend.get(index_path(session_id))
    if isinstance(index_entry, dict):
        for name in fields:
            key = Session.storage_key(name)
            updates[index_path(session_id, key)] = stored.get(key)
    else:
        # entry went missing: write it back whole
        patient = Patient.from_storage(patient_id, raw)
        logger.warning(f"Index entry missing for session {session_id}; recreating")
        updates[index_path(session_id)] = SessionIndexEntry.for_session(
            updated, patient.full_name, patient.national_id
        ).to_storage()

    await backend.multi_update(updates)
    return updated


async def delete_session(patient_id: str, session_id: str) -> None:
    backend = get_backend()
    raw = await get_patient_raw(patient_id)
    if session_id not in (raw.get(SESSIONS_PATH) or {}):
        raise NotFound("Session not found", "session.sessionNotFound")
    patient = Patient.from_storage(patient_id, raw)
    await backend.multi_update({
        session_path(patient_id, session_id): None,
        index_path(session_id): None,
        patient_path(patient_id, "sessionCount"): max(0, patient.session_count - 1),
    })
    logger.info(f"Session deleted: {session_id} for patient {patient_id}")


def _sessions_from_snapshot(patient_id: str, snapshot: Optional[Dict[str, Any]]) -> List[Session]:
    return sort_sessions(
        Session.from_storage(patient_id, sid, raw)
        for sid, raw in (snapshot or {}).items()
        if isinstance(raw, dict)
    )


def _entries_from_snapshot(snapshot: Optional[Dict[str, Any]]) -> List[SessionIndexEntry]:
    return sort_sessions(
        SessionIndexEntry.from_index(sid, raw)
        for sid, raw in (snapshot or {}).items()
        if isinstance(raw, dict)
    )


async def list_sessions(patient_id: str) -> List[Session]:
    return _sessions_from_snapshot(patient_id, await get_backend().get(patient_path(patient_id, SESSIONS_PATH)))


async def list_all_sessions() -> List[SessionIndexEntry]:
    """All sessions across patients, read from the index only."""
    return _entries_from_snapshot(await get_backend().get(SESSIONS_INDEX_PATH))


async def _subscribe(path: str, build, callback: Listener) -> Unsubscribe:
    active = True

    async def _on_change(snapshot: Any) -> None:
        if active:
            await invoke_listener(callback, build(snapshot))

    stop = await get_backend().listen(path, _on_change)

    def unsubscribe() -> None:
        nonlocal active
        active = False
        stop()

    return unsubscribe


async def subscribe_sessions(patient_id: str, callback: Listener) -> Unsubscribe:
    return await _subscribe(
        patient_path(patient_id, SESSIONS_PATH),
        lambda snapshot: _sessions_from_snapshot(patient_id, snapshot),
        callback,
    )


async def subscribe_all_sessions(callback: Listener) -> Unsubscribe:
    return await _subscribe(SESSIONS_INDEX_PATH, _entries_from_snapshot, callback)


def search_sessions(
    entries: Iterable[SessionIndexEntry],
    term: Optional[str],
    language: str = "en",
    normalizer: Optional[BilingualNormalizer] = None,
) -> List[SessionIndexEntry]:
    """Case-insensitive filter over patient name / national id, notes and session type text."""
    entries = list(entries)
    needle = (term or "").strip().lower()
    if not needle:
        return entries
    normalizer = normalizer or BilingualNormalizer()
    matched = []
    for entry in entries:
        haystack = (
            entry.patient_name,
            entry.patient_national_id,
            entry.notes,
            normalizer.to_display(CategoryDomain.SESSION_TYPE, entry.session_type, language),
        )
        if any(needle in (text or "").lower() for text in haystack):
            matched.append(entry)
    return matched
