from datetime import date
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from basma_clinic.constants import Gender, SESSIONS_PATH
from basma_clinic.models.bilingual import StoredCategory
from basma_clinic.utils.dates import parse_date

# Stored as "YYYY-MM-DD"; epoch-ms values from older records are accepted on read
StoredDate = Annotated[Optional[date], BeforeValidator(parse_date)]


class RecordModel(BaseModel):
    """Base for records kept in the tree: camelCase keys in storage and in the API."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # fields that come from the tree path, not from the stored value
    path_fields: ClassVar[FrozenSet[str]] = frozenset({"id"})

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude=set(self.path_fields), exclude_none=True)

    @classmethod
    def storage_key(cls, name: str) -> str:
        return cls.model_fields[name].alias or to_camel(name)

    @classmethod
    def by_field_name(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        """Re-key a change set by python field name; camelCase keys are accepted, unknown keys dropped."""
        aliases = {cls.storage_key(name): name for name in cls.model_fields}
        out: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = key if key in cls.model_fields else aliases.get(key)
            if name is not None:
                out[name] = value
        return out


class Patient(RecordModel):
    """ملف المريض.
    - diagnosis / insurance محفوظة بالإنجليزية والعربية معاً.
    - sessionCount نسخة مشتقة من عدد الجلسات ويجب أن تطابقه دائماً.
    """
    id: str = ""
    full_name: str = ""
    national_id: str = ""
    birth_date: StoredDate = None
    gender: Optional[Gender] = None
    diagnosis: StoredCategory = None
    insurance: StoredCategory = None
    therapy_name: str = ""
    total_sessions_planned: Optional[int] = None
    session_count: int = Field(default=0, ge=0)
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_storage(cls, patient_id: str, raw: Dict[str, Any]) -> "Patient":
        data = {k: v for k, v in (raw or {}).items() if k != SESSIONS_PATH}
        data["id"] = patient_id
        return cls.model_validate(data)
