"""
Patients in the record store.

Layout: ``patients/{id}`` holds the patient fields and its ``sessions`` child;
``sessionsIndex/{sessionId}`` mirrors every session with a snapshot of the
owning patient's name and national id. Every grouped write goes through one
``multi_update`` so the patient, its sessions, the index and ``sessionCount``
change together.
"""
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import ValidationError

from basma_clinic.config import get_settings
from basma_clinic.constants import PATIENTS_PATH, SESSIONS_INDEX_PATH, SESSIONS_PATH
from basma_clinic.database import Listener, Unsubscribe, get_backend, invoke_listener, join_path
from basma_clinic.exceptions import NotFound, RecordValidationError
from basma_clinic.models import Patient, RecordModel, Session, SessionIndexEntry
from basma_clinic.utils.dates import now_ms
from basma_clinic.utils.logger import get_logger

settings = get_settings()
logger = get_logger("patients")

# الحقول التي يديرها النظام ولا تُعدّل من الواجهة
PROTECTED_FIELDS = frozenset({"id", "session_count", "created_at"})

# patient field -> index snapshot field
SNAPSHOT_FIELDS = {"full_name": "patient_name", "national_id": "patient_national_id"}

M = TypeVar("M", bound=RecordModel)


def patient_path(patient_id: str, *rest: str) -> str:
    return join_path(PATIENTS_PATH, patient_id, *rest)


def index_path(session_id: str, *rest: str) -> str:
    return join_path(SESSIONS_INDEX_PATH, session_id, *rest)


def check_editable(changes: Dict[str, Any], model=Patient) -> None:
    blocked = {
        model.storage_key(name): "patient.fieldNotEditable"
        for name in changes
        if name in PROTECTED_FIELDS or name in model.path_fields
    }
    if blocked:
        raise RecordValidationError(blocked)


def validate_record(model: Type[M], data: Dict[str, Any]) -> M:
    """Build a stored record; pydantic failures become field-level ``RecordValidationError``."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = {}
        for err in e.errors():
            loc = err.get("loc") or ("__root__",)
            name = str(loc[0])
            key = model.storage_key(name) if name in model.model_fields else name
            errors.setdefault(key, "errors.validationFailed")
        raise RecordValidationError(errors) from e


def new_session_record(
    backend, patient_id: str, fields: Dict[str, Any], now: Optional[int] = None
) -> Session:
    """Validate a new session for ``patient_id`` with a fresh id and timestamps."""
    now = now or now_ms()
    data = Session.by_field_name(fields)
    for name in ("id", "patient_id", "created_at", "updated_at"):
        data.pop(name, None)
    return validate_record(
        Session,
        {**data, "id": backend.new_key(), "patient_id": patient_id, "created_at": now, "updated_at": now},
    )


async def create_patient(fields: Dict[str, Any], first_session: Optional[Dict[str, Any]] = None) -> Patient:
    """Create a patient, optionally with its first session, in one atomic write."""
    backend = get_backend()
    now = now_ms()
    data = {k: v for k, v in Patient.by_field_name(fields).items() if k not in PROTECTED_FIELDS}
    patient = validate_record(Patient, {
        **data,
        "id": backend.new_key(),
        "session_count": 1 if first_session else 0,
        "created_at": now,
        "updated_at": now,
    })

    payload = patient.to_storage()
    updates: Dict[str, Any] = {}
    if first_session:
        session = new_session_record(backend, patient.id, first_session, now)
        entry = SessionIndexEntry.for_session(session, patient.full_name, patient.national_id)
        # the session rides inside the patient payload: a multi-path update may not overlap
        payload[SESSIONS_PATH] = {session.id: session.to_storage()}
        updates[index_path(session.id)] = entry.to_storage()
    updates[patient_path(patient.id)] = payload

    await backend.multi_update(updates)
    logger.info(f"Patient created: {patient.id} (sessions: {patient.session_count})")
    return patient


async def get_patient_raw(patient_id: str) -> Dict[str, Any]:
    raw = await get_backend().get(patient_path(patient_id))
    if not isinstance(raw, dict):
        raise NotFound("Patient not found", "patient.patientNotFound")
    return raw


async def get_patient(patient_id: str) -> Patient:
    return Patient.from_storage(patient_id, await get_patient_raw(patient_id))


async def update_patient(patient_id: str, changes: Dict[str, Any]) -> Patient:
    """Merge ``changes`` into the patient.

    Name / national id changes are fanned out to the snapshot fields of every
    index entry belonging to this patient in the same write.
    """
    backend = get_backend()
    changes = Patient.by_field_name(changes)
    check_editable(changes)

    current = await get_patient(patient_id)
    if not changes:
        return current
    now = now_ms()
    updated = validate_record(Patient, {**current.model_dump(), **changes, "updated_at": now})
    stored = updated.to_storage()

    # per-field paths so the nested sessions child is left alone
    updates: Dict[str, Any] = {
        patient_path(patient_id, Patient.storage_key(name)): stored.get(Patient.storage_key(name))
        for name in [*changes, "updated_at"]
    }

    snapshot = {
        SessionIndexEntry.storage_key(index_field): getattr(updated, field)
        for field, index_field in SNAPSHOT_FIELDS.items()
        if field in changes and getattr(updated, field) != getattr(current, field)
    }
    if snapshot:
        entries = await backend.find_children(SESSIONS_INDEX_PATH, "patientId", patient_id)
        for session_id in entries:
            for key, value in snapshot.items():
                updates[index_path(session_id, key)] = value
        logger.info(f"Refreshing patient snapshot on {len(entries)} index entries for {patient_id}")

    await backend.multi_update(updates)
    return updated


async def delete_patient(patient_id: str) -> None:
    """Delete the patient, all of its sessions and every matching index entry."""
    backend = get_backend()
    raw = await get_patient_raw(patient_id)
    session_ids = set((raw.get(SESSIONS_PATH) or {}).keys())
    # entries whose session is already gone from the patient are still removed
    session_ids |= set(await backend.find_children(SESSIONS_INDEX_PATH, "patientId", patient_id))

    updates: Dict[str, Any] = {patient_path(patient_id): None}
    for session_id in session_ids:
        updates[index_path(session_id)] = None
    await backend.multi_update(updates)
    logger.info(f"Patient deleted: {patient_id} (sessions removed: {len(session_ids)})")


def select_patients(
    snapshot: Optional[Dict[str, Any]],
    search_term: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Patient]:
    """Newest first; search (name / national id, case-insensitive) applies before the limit."""
    patients = [
        Patient.from_storage(pid, raw)
        for pid, raw in (snapshot or {}).items()
        if isinstance(raw, dict)
    ]
    term = (search_term or "").strip().lower()
    if term:
        patients = [
            p for p in patients
            if term in p.full_name.lower() or term in p.national_id.lower()
        ]
    patients.sort(key=lambda p: (p.created_at, p.id), reverse=True)
    limit = settings.PATIENTS_LIST_LIMIT if limit is None else limit
    return patients[:limit] if limit > 0 else patients


async def list_patients(search_term: Optional[str] = None, limit: Optional[int] = None) -> List[Patient]:
    return select_patients(await get_backend().get(PATIENTS_PATH), search_term, limit)


async def subscribe_patients(
    callback: Listener,
    search_term: Optional[str] = None,
    limit: Optional[int] = None,
) -> Unsubscribe:
    """Push the filtered, sorted patient list on every change until unsubscribed."""
    active = True

    async def _on_change(snapshot: Any) -> None:
        if active:
            await invoke_listener(callback, select_patients(snapshot, search_term, limit))

    stop = await get_backend().listen(PATIENTS_PATH, _on_change)

    def unsubscribe() -> None:
        nonlocal active
        active = False
        stop()

    return unsubscribe
