from typing import Annotated, Any, Dict, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer


class BilingualValue(BaseModel):
    """A categorical value stored in both languages: ``{en, ar}``.

    Both slots are always present once constructed; a slot may be an empty
    string, in which case display falls back to English.
    """
    model_config = ConfigDict(frozen=True)

    en: str
    ar: str

    def text(self, language: str) -> str:
        if language == "ar":
            return self.ar or self.en
        return self.en


class LegacyString(BaseModel):
    """Plain string written by older records before values were bilingual."""
    model_config = ConfigDict(frozen=True)

    text: str


CategoryValue = Union[BilingualValue, LegacyString]


def coerce_category_value(raw: Any) -> Optional[CategoryValue]:
    """Map a stored/raw shape onto the tagged union (None when unset)."""
    if raw is None or isinstance(raw, (BilingualValue, LegacyString)):
        return raw
    if isinstance(raw, str):
        return LegacyString(text=raw) if raw else None
    if isinstance(raw, dict):
        if raw.get("en") is None and raw.get("ar") is None:
            return None
        return BilingualValue(en=str(raw.get("en") or ""), ar=str(raw.get("ar") or ""))
    raise ValueError(f"Unsupported category value: {raw!r}")


def dump_category_value(value: Optional[CategoryValue]) -> Union[Dict[str, str], str, None]:
    """Inverse of ``coerce_category_value``: the shape written to the record store."""
    if value is None:
        return None
    if isinstance(value, LegacyString):
        return value.text
    return {"en": value.en, "ar": value.ar}


# Field type for Patient.diagnosis / Patient.insurance / Session.sessionType
StoredCategory = Annotated[
    Optional[CategoryValue],
    BeforeValidator(coerce_category_value),
    PlainSerializer(dump_category_value),
]
