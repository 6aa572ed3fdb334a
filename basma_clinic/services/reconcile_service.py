"""
Index reconciliation sweep.

Brings ``sessionsIndex`` and every ``sessionCount`` back in line with the
per-patient session collections, which are the source of truth.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from basma_clinic.constants import PATIENTS_PATH, SESSIONS_INDEX_PATH, SESSIONS_PATH
from basma_clinic.database import get_backend
from basma_clinic.models import Patient, Session, SessionIndexEntry
from basma_clinic.services.patient_service import index_path, patient_path
from basma_clinic.utils.logger import get_logger

logger = get_logger("reconcile")


@dataclass
class ReconcileReport:
    patients_checked: int = 0
    counts_fixed: int = 0
    entries_created: int = 0
    entries_refreshed: int = 0
    orphans_removed: int = 0
    skipped: int = 0
    dry_run: bool = False
    updates: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def changed(self) -> bool:
        return bool(self.updates)

    def summary(self) -> Dict[str, Any]:
        return {
            "patientsChecked": self.patients_checked,
            "countsFixed": self.counts_fixed,
            "entriesCreated": self.entries_created,
            "entriesRefreshed": self.entries_refreshed,
            "orphansRemoved": self.orphans_removed,
            "skipped": self.skipped,
            "dryRun": self.dry_run,
        }


def _expected_entry(patient_id: str, session_id: str, raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Index entry a session of ``raw`` should have; None when the session is gone."""
    session_raw = (raw.get(SESSIONS_PATH) or {}).get(session_id)
    if not isinstance(session_raw, dict):
        return None
    patient = Patient.from_storage(patient_id, raw)
    session = Session.from_storage(patient_id, session_id, session_raw)
    return SessionIndexEntry.for_session(session, patient.full_name, patient.national_id).to_storage()


def _normalized_entry(session_id: str, raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    try:
        return SessionIndexEntry.from_index(session_id, raw).to_storage()
    except ValidationError:
        # unreadable entry: rewritten like a missing one
        return None


async def reconcile_index(dry_run: bool = False) -> ReconcileReport:
    """Recompute counts, repair index entries and drop orphans in one multi-path update.

    The plan is built from one read of the whole tree, so patients and index
    come from the same moment. Every planned write is then checked against a
    fresh read; anything a concurrent writer already fixed is left alone.
    """
    backend = get_backend()
    root = await backend.get("") or {}
    patients = root.get(PATIENTS_PATH) or {}
    index = root.get(SESSIONS_INDEX_PATH) or {}
    report = ReconcileReport(dry_run=dry_run)
    live_sessions = set()
    count_fixes: List[str] = []
    # session id -> (patient id, created?)
    entry_fixes: Dict[str, Tuple[str, bool]] = {}

    for patient_id, raw in patients.items():
        if not isinstance(raw, dict):
            continue
        report.patients_checked += 1
        sessions = raw.get(SESSIONS_PATH) or {}
        live_sessions.update(sessions)
        try:
            Patient.from_storage(patient_id, raw)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable patient {patient_id}: {e}")
            report.skipped += 1
            continue

        if raw.get("sessionCount") != len(sessions):
            count_fixes.append(patient_id)

        for session_id in sessions:
            try:
                expected = _expected_entry(patient_id, session_id, raw)
            except ValidationError as e:
                logger.warning(f"Skipping unreadable session {patient_id}/{session_id}: {e}")
                report.skipped += 1
                continue
            current = _normalized_entry(session_id, index.get(session_id))
            if current != expected:
                entry_fixes[session_id] = (patient_id, current is None)

    orphans = [session_id for session_id in index if session_id not in live_sessions]

    fresh_patients: Dict[str, Any] = {}

    async def fresh_patient(patient_id: str) -> Any:
        if patient_id not in fresh_patients:
            fresh_patients[patient_id] = await backend.get(patient_path(patient_id))
        return fresh_patients[patient_id]

    for patient_id in count_fixes:
        fresh = await fresh_patient(patient_id)
        if not isinstance(fresh, dict):
            continue
        count = len(fresh.get(SESSIONS_PATH) or {})
        if fresh.get("sessionCount") != count:
            report.updates[patient_path(patient_id, "sessionCount")] = count
            report.counts_fixed += 1

    for session_id, (patient_id, created) in entry_fixes.items():
        fresh = await fresh_patient(patient_id)
        if not isinstance(fresh, dict):
            continue
        try:
            expected = _expected_entry(patient_id, session_id, fresh)
        except ValidationError:
            continue
        if expected is None:
            continue
        if _normalized_entry(session_id, await backend.get(index_path(session_id))) == expected:
            continue
        report.updates[index_path(session_id)] = expected
        if created:
            report.entries_created += 1
        else:
            report.entries_refreshed += 1

    for session_id in orphans:
        entry = await backend.get(index_path(session_id))
        if not isinstance(entry, dict):
            continue
        owner = entry.get("patientId")
        fresh = await fresh_patient(owner) if owner else None
        if isinstance(fresh, dict) and session_id in (fresh.get(SESSIONS_PATH) or {}):
            continue
        report.updates[index_path(session_id)] = None
        report.orphans_removed += 1

    if report.updates and not dry_run:
        await backend.multi_update(report.updates)
    if report.updates:
        logger.info(f"Index reconcile{' (dry run)' if dry_run else ''}: {report.summary()}")
    return report


async def run_scheduled_reconcile() -> None:
    """Scheduler entry point; a failed sweep is logged and retried on the next run."""
    try:
        await reconcile_index()
    except Exception as e:
        logger.error(f"Scheduled index reconcile failed: {e}", exc_info=True)
