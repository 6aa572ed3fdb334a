# Re-export stored record shapes
from .bilingual import BilingualValue, LegacyString, CategoryValue, StoredCategory
from .patient import Patient, RecordModel
from .session import Session, SessionIndexEntry, SHARED_SESSION_FIELDS
from .draft import Draft
