import re
from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from basma_clinic.constants import CategoryDomain, Gender, OTHER_KEY
from basma_clinic.exceptions import RecordValidationError
from basma_clinic.models import Patient, Session, StoredCategory
from basma_clinic.services.bilingual_service import BilingualNormalizer
from basma_clinic.utils.dates import calculate_age, parse_date
from basma_clinic.utils.national_id import NATIONAL_ID_LENGTH, format_national_id, validate_national_id


def field_error(message_key: str) -> PydanticCustomError:
    """Validation error carrying an i18n message key (rendered per field by the app)."""
    return PydanticCustomError("field_invalid", "{message_key}", {"message_key": message_key})


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------------------- Shared field checks --------------------

def _required_text(value: Any, message_key: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise field_error(message_key)
    return text


def _national_id(value: Any) -> str:
    raw = str(value).strip() if value is not None else ""
    digits = re.sub(r"\D", "", raw)
    if not digits:
        raise field_error("patient.idRequired")
    if len(digits) > NATIONAL_ID_LENGTH:
        raise field_error("patient.idMustBe9Digits")
    formatted = format_national_id(digits)
    if not validate_national_id(formatted):
        raise field_error("patient.invalidIdNumber")
    return formatted


def _required_date(value: Any, message_key: str) -> date:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise field_error(message_key)
    try:
        return parse_date(value)
    except (TypeError, ValueError, OverflowError):
        raise field_error("patient.invalidDate")


def _gender(value: Any) -> Gender:
    text = str(value).strip().lower() if value is not None else ""
    for gender in Gender:
        if text == gender.value.lower():
            return gender
    raise field_error("patient.genderRequired")


def _sessions_planned(value: Any) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise field_error("patient.totalSessionsMustBeAtLeast1")
    if isinstance(value, bool) or count < 1:
        raise field_error("patient.totalSessionsMustBeAtLeast1")
    return count


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _check_diagnosis_other(value: Any, info: ValidationInfo) -> Optional[str]:
    text = _optional_text(value)
    diagnosis = info.data.get("diagnosis")
    is_other = BilingualNormalizer().key_from_value(CategoryDomain.DIAGNOSIS, diagnosis) == OTHER_KEY
    if is_other and not text:
        raise field_error("patient.diagnosisOtherRequired")
    return text


def _not_editable(value: Any) -> Any:
    raise field_error("patient.fieldNotEditable")


# -------------------- Session Schemas --------------------

class SessionFields(CamelModel):
    """Session form fields. ``sessionType`` is a predefined key, a label in either language, or free text."""
    session_type: Optional[str] = None
    session_date: Union[date, str, None] = None
    notes: Optional[str] = None

    @field_validator("session_type")
    @classmethod
    def check_session_type(cls, v):
        return _required_text(v, "patient.sessionTypeRequired")

    @field_validator("session_date")
    @classmethod
    def check_session_date(cls, v):
        return _required_date(v, "patient.sessionDateRequired")


class SessionCreate(SessionFields):
    session_type: Optional[str] = Field(None, validate_default=True)
    session_date: Union[date, str, None] = Field(None, validate_default=True)
    notes: Optional[str] = ""

    def to_record(self, normalizer: BilingualNormalizer) -> Dict[str, Any]:
        return {
            "session_type": normalizer.to_canonical(CategoryDomain.SESSION_TYPE, self.session_type),
            "session_date": self.session_date,
            "notes": (self.notes or "").strip(),
        }


class SessionUpdate(SessionFields):
    """Partial session edit; only the fields sent are changed."""
    id: Optional[Any] = None
    patient_id: Optional[Any] = None
    created_at: Optional[Any] = None

    check_protected = field_validator("id", "patient_id", "created_at")(_not_editable)

    def to_changes(self, normalizer: BilingualNormalizer) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        if "session_type" in self.model_fields_set:
            changes["session_type"] = normalizer.to_canonical(CategoryDomain.SESSION_TYPE, self.session_type)
        if "session_date" in self.model_fields_set:
            changes["session_date"] = self.session_date
        if "notes" in self.model_fields_set:
            changes["notes"] = (self.notes or "").strip()
        return changes


# -------------------- Patient Schemas --------------------

class PatientFields(CamelModel):
    full_name: Optional[str] = None
    national_id: Optional[str] = None
    birth_date: Union[date, str, None] = None
    gender: Optional[str] = None
    diagnosis: Optional[str] = None
    # نص التشخيص عند اختيار "Other"
    diagnosis_other: Optional[str] = Field(None, validate_default=True)
    insurance: Optional[str] = None
    therapy_name: Optional[str] = None
    total_sessions_planned: Union[int, str, None] = None

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, v):
        return _required_text(v, "patient.fullNameRequired")

    @field_validator("national_id")
    @classmethod
    def check_national_id(cls, v):
        return _national_id(v)

    @field_validator("birth_date")
    @classmethod
    def check_birth_date(cls, v):
        return _required_date(v, "patient.birthDateRequired")

    @field_validator("gender")
    @classmethod
    def check_gender(cls, v):
        return _gender(v)

    @field_validator("diagnosis", "insurance")
    @classmethod
    def check_category(cls, v):
        return _optional_text(v)

    @field_validator("diagnosis_other")
    @classmethod
    def check_diagnosis_other(cls, v, info: ValidationInfo):
        return _check_diagnosis_other(v, info)

    @field_validator("therapy_name")
    @classmethod
    def check_therapy_name(cls, v):
        return _required_text(v, "patient.therapyNameRequired")

    @field_validator("total_sessions_planned")
    @classmethod
    def check_total_sessions(cls, v):
        return _sessions_planned(v)


class PatientCreate(PatientFields):
    """New patient form, optionally with the first session (created in the same write)."""
    full_name: Optional[str] = Field(None, validate_default=True)
    national_id: Optional[str] = Field(None, validate_default=True)
    birth_date: Union[date, str, None] = Field(None, validate_default=True)
    gender: Optional[str] = Field(None, validate_default=True)
    therapy_name: Optional[str] = Field(None, validate_default=True)
    total_sessions_planned: Union[int, str, None] = Field(None, validate_default=True)
    first_session: Optional[SessionCreate] = None

    def to_record(self, normalizer: BilingualNormalizer) -> Dict[str, Any]:
        return {
            "full_name": self.full_name,
            "national_id": self.national_id,
            "birth_date": self.birth_date,
            "gender": self.gender,
            "diagnosis": normalizer.to_canonical(CategoryDomain.DIAGNOSIS, self.diagnosis, self.diagnosis_other),
            "insurance": normalizer.to_canonical(CategoryDomain.INSURANCE, self.insurance),
            "therapy_name": self.therapy_name,
            "total_sessions_planned": self.total_sessions_planned,
        }


class PatientUpdate(PatientFields):
    """Partial patient edit. ``id``, ``sessionCount`` and ``createdAt`` are rejected."""
    id: Optional[Any] = None
    session_count: Optional[Any] = None
    created_at: Optional[Any] = None

    check_protected = field_validator("id", "session_count", "created_at")(_not_editable)

    def to_changes(self, normalizer: BilingualNormalizer) -> Dict[str, Any]:
        sent = self.model_fields_set
        if "diagnosis_other" in sent and "diagnosis" not in sent:
            # the custom text only means something next to the "Other" choice
            raise RecordValidationError({"diagnosis": "patient.diagnosisRequired"})
        changes: Dict[str, Any] = {
            name: getattr(self, name)
            for name in ("full_name", "national_id", "birth_date", "gender", "therapy_name", "total_sessions_planned")
            if name in sent
        }
        if "diagnosis" in sent:
            changes["diagnosis"] = normalizer.to_canonical(CategoryDomain.DIAGNOSIS, self.diagnosis, self.diagnosis_other)
        if "insurance" in sent:
            changes["insurance"] = normalizer.to_canonical(CategoryDomain.INSURANCE, self.insurance)
        return changes


# -------------------- Output Schemas --------------------

class AgeOut(CamelModel):
    years: int
    months: int


class PatientOut(CamelModel):
    id: str
    full_name: str = ""
    national_id: str = ""
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    gender_label: str = ""
    diagnosis: StoredCategory = None
    diagnosis_label: str = ""
    insurance: StoredCategory = None
    insurance_label: str = ""
    therapy_name: str = ""
    total_sessions_planned: Optional[int] = None
    session_count: int = 0
    age: Optional[AgeOut] = None
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def build(cls, patient: Patient, normalizer: BilingualNormalizer, translate) -> "PatientOut":
        language = getattr(translate, "language", "en")
        age = calculate_age(patient.birth_date)
        return cls(
            **patient.model_dump(),
            gender_label=translate(f"patient.{patient.gender.value.lower()}", patient.gender.value) if patient.gender else "",
            diagnosis_label=normalizer.to_display(CategoryDomain.DIAGNOSIS, patient.diagnosis, language),
            insurance_label=normalizer.to_display(CategoryDomain.INSURANCE, patient.insurance, language),
            age=AgeOut(years=age[0], months=age[1]) if age else None,
        )


class SessionOut(CamelModel):
    id: str
    patient_id: str
    session_type: StoredCategory = None
    session_type_label: str = ""
    session_date: Optional[date] = None
    notes: str = ""
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def build(cls, session: Session, normalizer: BilingualNormalizer, language: str):
        return cls(
            **session.model_dump(),
            session_type_label=normalizer.to_display(CategoryDomain.SESSION_TYPE, session.session_type, language),
        )


class SessionIndexOut(SessionOut):
    patient_name: str = ""
    patient_national_id: str = ""


class CategoryOptionOut(BaseModel):
    key: str
    label: str


class CategoryOptionsOut(BaseModel):
    domain: CategoryDomain
    language: str
    options: List[CategoryOptionOut]
