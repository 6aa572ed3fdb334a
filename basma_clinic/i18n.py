"""
Translation provider (English / Arabic).

The active language is carried by a ``Translator`` instance and handed to the
components that need it (the category normalizer, error rendering) instead of
living in global state.
"""
import re
from typing import Any, Dict, Optional

from basma_clinic.config import get_settings
from basma_clinic.constants import (
    DIAGNOSIS_TRANSLATIONS,
    INSURANCE_TRANSLATIONS,
    SESSION_TYPE_TRANSLATIONS,
    Language,
)

settings = get_settings()

DEFAULT_LANGUAGE = Language.EN.value
SUPPORTED_LANGUAGES = tuple(lang.value for lang in Language)


def _labels(table: Dict[str, Dict[str, str]], language: str) -> Dict[str, str]:
    return {key: pair[language] for key, pair in table.items()}


TRANSLATIONS: Dict[str, Dict[str, Any]] = {
    "en": {
        "nav": {
            "clinicManagement": "Basma Clinic",
            "patients": "Patients",
            "sessions": "Sessions",
        },
        "sessionTypes": _labels(SESSION_TYPE_TRANSLATIONS, "en"),
        "diagnosisTypes": _labels(DIAGNOSIS_TRANSLATIONS, "en"),
        "insuranceTypes": _labels(INSURANCE_TRANSLATIONS, "en"),
        "common": {
            "years": "years",
            "months": "months",
            "optional": "Optional",
        },
        "patient": {
            "male": "Male",
            "female": "Female",
            "patientCreated": "Patient created successfully",
            "patientUpdated": "Patient updated successfully",
            "patientDeleted": "Patient deleted successfully",
            "failedCreate": "Failed to create patient. Please try again.",
            "failedUpdate": "Failed to update patient. Please try again.",
            "failedLoad": "Failed to load patient. Please try again.",
            "failedDelete": "Failed to delete patient. Please try again.",
            "patientNotFound": "Patient not found",
            "fullNameRequired": "Full name is required",
            "idRequired": "ID is required",
            "idMustBe9Digits": "ID must be 9 digits",
            "invalidIdNumber": "Invalid ID number",
            "birthDateRequired": "Birth date is required",
            "invalidDate": "Invalid date",
            "genderRequired": "Gender is required",
            "diagnosisRequired": "Diagnosis is required",
            "diagnosisOtherRequired": "Please specify the other diagnosis",
            "therapyNameRequired": "Therapy name is required",
            "insuranceRequired": "Insurance is required",
            "totalSessionsMustBeAtLeast1": "Total sessions planned must be at least 1",
            "sessionTypeRequired": "Session type is required",
            "sessionDateRequired": "Session date is required",
            "fieldNotEditable": "This field cannot be changed",
            "unsavedChanges": "You have unsaved changes. Are you sure you want to leave?",
        },
        "session": {
            "sessionCreated": "Session created successfully",
            "sessionUpdated": "Session updated successfully",
            "sessionDeleted": "Session deleted successfully",
            "failedCreate": "Failed to create session. Please try again.",
            "failedUpdate": "Failed to update session. Please try again.",
            "failedLoad": "Failed to load session. Please try again.",
            "sessionNotFound": "Session not found",
        },
        "sessionsList": {
            "noSessionsFound": "No sessions found matching your search.",
            "noSessionsYet": "No sessions yet.",
            "failedLoad": "Failed to load sessions. Please try again.",
        },
        "errors": {
            "storeUnavailable": "The records service is unavailable. Please try again.",
            "validationFailed": "Please correct the highlighted fields.",
            "internal": "Something went wrong. Please try again.",
        },
        "draft": {
            "restoreDraft": "Restore Draft?",
            "unsavedChanges": "You have unsaved changes. Would you like to restore them?",
            "discard": "Discard",
            "restore": "Restore",
        },
    },
    "ar": {
        "nav": {
            "clinicManagement": "عيادة بسمة",
            "patients": "المرضى",
            "sessions": "الجلسات",
        },
        "sessionTypes": _labels(SESSION_TYPE_TRANSLATIONS, "ar"),
        "diagnosisTypes": _labels(DIAGNOSIS_TRANSLATIONS, "ar"),
        "insuranceTypes": _labels(INSURANCE_TRANSLATIONS, "ar"),
        "common": {
            "years": "سنوات",
            "months": "أشهر",
            "optional": "اختياري",
        },
        "patient": {
            "male": "ذكر",
            "female": "أنثى",
            "patientCreated": "تم إنشاء المريض بنجاح",
            "patientUpdated": "تم تحديث المريض بنجاح",
            "patientDeleted": "تم حذف المريض بنجاح",
            "failedCreate": "فشل إنشاء المريض. يرجى المحاولة مرة أخرى.",
            "failedUpdate": "فشل تحديث المريض. يرجى المحاولة مرة أخرى.",
            "failedLoad": "فشل تحميل المريض. يرجى المحاولة مرة أخرى.",
            "failedDelete": "فشل حذف المريض. يرجى المحاولة مرة أخرى.",
            "patientNotFound": "المريض غير موجود",
            "fullNameRequired": "الاسم الكامل مطلوب",
            "idRequired": "رقم الهوية مطلوب",
            "idMustBe9Digits": "رقم الهوية يجب أن يكون 9 أرقام",
            "invalidIdNumber": "رقم الهوية غير صحيح",
            "birthDateRequired": "تاريخ الميلاد مطلوب",
            "invalidDate": "تاريخ غير صالح",
            "genderRequired": "الجنس مطلوب",
            "diagnosisRequired": "التشخيص مطلوب",
            "diagnosisOtherRequired": "يرجى تحديد التشخيص الآخر",
            "therapyNameRequired": "اسم المعالج مطلوب",
            "insuranceRequired": "التأمين مطلوب",
            "totalSessionsMustBeAtLeast1": "إجمالي الجلسات المخططة يجب أن يكون 1 على الأقل",
            "sessionTypeRequired": "نوع الجلسة مطلوب",
            "sessionDateRequired": "تاريخ الجلسة مطلوب",
            "fieldNotEditable": "لا يمكن تعديل هذا الحقل",
            "unsavedChanges": "لديك تغييرات غير محفوظة. هل أنت متأكد أنك تريد المغادرة؟",
        },
        "session": {
            "sessionCreated": "تم إنشاء الجلسة بنجاح",
            "sessionUpdated": "تم تحديث الجلسة بنجاح",
            "sessionDeleted": "تم حذف الجلسة بنجاح",
            "failedCreate": "فشل إنشاء الجلسة. يرجى المحاولة مرة أخرى.",
            "failedUpdate": "فشل تحديث الجلسة. يرجى المحاولة مرة أخرى.",
            "failedLoad": "فشل تحميل الجلسة. يرجى المحاولة مرة أخرى.",
            "sessionNotFound": "الجلسة غير موجودة",
        },
        "sessionsList": {
            "noSessionsFound": "لم يتم العثور على جلسات تطابق البحث.",
            "noSessionsYet": "لا توجد جلسات بعد.",
            "failedLoad": "فشل تحميل الجلسات. يرجى المحاولة مرة أخرى.",
        },
        "errors": {
            "storeUnavailable": "خدمة السجلات غير متاحة حالياً. يرجى المحاولة مرة أخرى.",
            "validationFailed": "يرجى تصحيح الحقول المحددة.",
            "internal": "حدث خطأ ما. يرجى المحاولة مرة أخرى.",
        },
        "draft": {
            "restoreDraft": "استعادة المسودة؟",
            "unsavedChanges": "لديك تغييرات غير محفوظة. هل تريد استعادتها؟",
            "discard": "تجاهل",
            "restore": "استعادة",
        },
    },
}

_PARAM = re.compile(r"\{\{(\w+)\}\}")


def _lookup(table: Dict[str, Any], key: str) -> Optional[Any]:
    node: Any = table
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def resolve_language(requested: Optional[str] = None, accept_language: Optional[str] = None) -> str:
    """Pick a supported language from an explicit value, then Accept-Language, then the default."""
    if requested:
        code = requested.strip().lower()[:2]
        if code in SUPPORTED_LANGUAGES:
            return code
    if accept_language:
        for part in accept_language.split(","):
            code = part.split(";")[0].strip().lower()[:2]
            if code in SUPPORTED_LANGUAGES:
                return code
    return settings.DEFAULT_LANGUAGE


class Translator:
    """``translate(key, fallback)`` over the string tables for one active language."""

    def __init__(self, language: str = DEFAULT_LANGUAGE, tables: Optional[Dict[str, Dict[str, Any]]] = None):
        self.tables = tables if tables is not None else TRANSLATIONS
        self.language = language if language in self.tables else DEFAULT_LANGUAGE

    @property
    def direction(self) -> str:
        return "rtl" if self.language == Language.AR.value else "ltr"

    def set_language(self, language: str) -> None:
        if language in self.tables:
            self.language = language

    def translate(self, key: str, fallback: Optional[str] = None, **params: Any) -> str:
        value = _lookup(self.tables.get(self.language, {}), key)
        if value is None:
            # fall back to English, then to the caller's fallback, then the key itself
            value = _lookup(self.tables.get(DEFAULT_LANGUAGE, {}), key)
        if not isinstance(value, str):
            value = fallback if fallback is not None else key
        if params:
            value = _PARAM.sub(lambda m: str(params.get(m.group(1), m.group(0))), value)
        return value

    __call__ = translate
