from enum import Enum
from typing import Dict, List


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class Language(str, Enum):
    """Supported UI languages."""
    EN = "en"  # English (default)
    AR = "ar"  # العربية (RTL)


class CategoryDomain(str, Enum):
    """Categorical patient/session fields stored as {en, ar} pairs."""
    DIAGNOSIS = "diagnosis"
    INSURANCE = "insurance"
    SESSION_TYPE = "session_type"


# Sentinel key: the user picked "Other" and typed their own text
OTHER_KEY = "Other"

# Record storage paths
PATIENTS_PATH = "patients"
SESSIONS_PATH = "sessions"
SESSIONS_INDEX_PATH = "sessionsIndex"


DIAGNOSIS_TYPES: List[str] = [
    "Cerebral palsy",
    "Developmental Delay Milestone",
    "ASD",
    "ADHD",
    "Syndromes",
    OTHER_KEY,
]

INSURANCE_TYPES: List[str] = [
    "Private",
    "Maccabi",
    "Clalit",
    "Meuhedet",
    "Leumit",
    "Palestinian Authority",
]

SESSION_TYPES: List[str] = [
    "CBT",
    "DBT",
    "Psychodynamic Therapy",
    "Family Therapy",
    "Group Therapy",
    "Individual Therapy",
    "Assessment",
    "Follow-up",
    "Consultation",
]

DIAGNOSIS_TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "Cerebral palsy": {"en": "Cerebral palsy", "ar": "شلل دماغي"},
    "Developmental Delay Milestone": {"en": "Developmental Delay Milestone", "ar": "تأخر النمو والتطور"},
    "ASD": {"en": "ASD", "ar": "طيف التوحد"},
    "ADHD": {"en": "ADHD", "ar": "اضطراب فرط الحركة ونقص الانتباه"},
    "Syndromes": {"en": "Syndromes", "ar": "متلازمات"},
    OTHER_KEY: {"en": "Other", "ar": "أخرى"},
}

INSURANCE_TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "Private": {"en": "Private", "ar": "خاص"},
    "Maccabi": {"en": "Maccabi", "ar": "مكابي"},
    "Clalit": {"en": "Clalit", "ar": "كلاليت"},
    "Meuhedet": {"en": "Meuhedet", "ar": "مئوحيدت"},
    "Leumit": {"en": "Leumit", "ar": "ليؤوميت"},
    "Palestinian Authority": {"en": "Palestinian Authority", "ar": "سلطة فلسطينية"},
}

SESSION_TYPE_TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "CBT": {"en": "CBT", "ar": "العلاج المعرفي السلوكي"},
    "DBT": {"en": "DBT", "ar": "العلاج السلوكي الجدلي"},
    "Psychodynamic Therapy": {"en": "Psychodynamic Therapy", "ar": "العلاج النفسي الديناميكي"},
    "Family Therapy": {"en": "Family Therapy", "ar": "العلاج الأسري"},
    "Group Therapy": {"en": "Group Therapy", "ar": "العلاج الجماعي"},
    "Individual Therapy": {"en": "Individual Therapy", "ar": "العلاج الفردي"},
    "Assessment": {"en": "Assessment", "ar": "التقييم"},
    "Follow-up": {"en": "Follow-up", "ar": "المتابعة"},
    "Consultation": {"en": "Consultation", "ar": "استشارة"},
}

# domain -> (ordered keys, fixed translations, i18n table prefix)
CATEGORY_TABLES = {
    CategoryDomain.DIAGNOSIS: (DIAGNOSIS_TYPES, DIAGNOSIS_TRANSLATIONS, "diagnosisTypes"),
    CategoryDomain.INSURANCE: (INSURANCE_TYPES, INSURANCE_TRANSLATIONS, "insuranceTypes"),
    CategoryDomain.SESSION_TYPE: (SESSION_TYPES, SESSION_TYPE_TRANSLATIONS, "sessionTypes"),
}
