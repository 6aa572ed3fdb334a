from typing import Any, ClassVar, Dict, FrozenSet

from basma_clinic.models.bilingual import StoredCategory
from basma_clinic.models.patient import RecordModel, StoredDate

# Fields that must stay identical between a session and its index entry
SHARED_SESSION_FIELDS = ("session_type", "session_date", "notes", "created_at", "updated_at")


class Session(RecordModel):
    """A therapy session, stored under ``patients/{patientId}/sessions/{id}``."""
    path_fields: ClassVar[FrozenSet[str]] = frozenset({"id", "patient_id"})

    id: str = ""
    patient_id: str = ""
    session_type: StoredCategory = None
    session_date: StoredDate = None
    notes: str = ""
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_storage(cls, patient_id: str, session_id: str, raw: Dict[str, Any]) -> "Session":
        data = dict(raw or {})
        data.update(id=session_id, patient_id=patient_id)
        return cls.model_validate(data)


class SessionIndexEntry(Session):
    """Denormalized copy of a session under ``sessionsIndex/{id}`` for cross-patient listing.

    ``patientName`` / ``patientNationalId`` are snapshots of the owning patient and
    are refreshed whenever those patient fields change.
    """
    path_fields: ClassVar[FrozenSet[str]] = frozenset({"id"})

    patient_name: str = ""
    patient_national_id: str = ""

    @classmethod
    def for_session(cls, session: Session, patient_name: str, patient_national_id: str) -> "SessionIndexEntry":
        return cls(
            **session.model_dump(),
            patient_name=patient_name,
            patient_national_id=patient_national_id,
        )

    @classmethod
    def from_index(cls, session_id: str, raw: Dict[str, Any]) -> "SessionIndexEntry":
        data = dict(raw or {})
        data["id"] = session_id
        return cls.model_validate(data)
