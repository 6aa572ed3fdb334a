"""
Seed script to populate the record store with demo data
Creates: patients (with a first session), extra sessions per patient
"""
import asyncio
import sys
from datetime import date, timedelta
from typing import List

# Fix encoding for Windows console
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from basma_clinic.config import get_settings
from basma_clinic.database import init_db
from basma_clinic.models import Patient
from basma_clinic.schemas import PatientCreate, SessionCreate
from basma_clinic.services import patient_service, session_service
from basma_clinic.services.bilingual_service import BilingualNormalizer

DEMO_PATIENTS = [
    {
        "fullName": "Lina Haddad",
        "nationalId": "123456782",
        "birthDate": "2017-03-14",
        "gender": "Female",
        "diagnosis": "ASD",
        "insurance": "Clalit",
        "therapyName": "Speech therapy",
        "totalSessionsPlanned": 12,
        "firstSession": {"sessionType": "Assessment", "notes": "Initial assessment"},
    },
    {
        "fullName": "Omar Khatib",
        "nationalId": "111111118",
        "birthDate": "2015-09-02",
        "gender": "Male",
        "diagnosis": "ADHD",
        "insurance": "Maccabi",
        "therapyName": "Occupational therapy",
        "totalSessionsPlanned": 8,
        "firstSession": {"sessionType": "CBT"},
    },
    {
        "fullName": "يوسف منصور",
        "nationalId": "987654324",
        "birthDate": "2019-01-20",
        "gender": "Male",
        "diagnosis": "Other",
        "diagnosisOther": "Speech delay",
        "insurance": "سلطة فلسطينية",
        "therapyName": "علاج النطق",
        "totalSessionsPlanned": 10,
        "firstSession": {"sessionType": "Individual Therapy"},
    },
    {
        "fullName": "Maya Levi",
        "nationalId": "18",
        "birthDate": "2016-11-30",
        "gender": "Female",
        "diagnosis": "Cerebral palsy",
        "insurance": "Private",
        "therapyName": "Physiotherapy",
        "totalSessionsPlanned": 20,
        "firstSession": {"sessionType": "Family Therapy"},
    },
]

FOLLOW_UP_TYPES = ["Follow-up", "Group Therapy", "Consultation"]


async def create_demo_patients(normalizer: BilingualNormalizer) -> List[Patient]:
    """Create demo patients with their first session; skip national IDs that already exist."""
    print("\n=== Creating Patients ===")
    patients = []
    for i, raw in enumerate(DEMO_PATIENTS):
        form = PatientCreate.model_validate({
            **raw,
            "firstSession": {**raw["firstSession"], "sessionDate": (date.today() - timedelta(days=30 - i)).isoformat()},
        })
        existing = await patient_service.list_patients(search_term=form.national_id, limit=0)
        if any(p.national_id == form.national_id for p in existing):
            print(f"[SKIP] Patient '{form.full_name}' already exists")
            continue
        patient = await patient_service.create_patient(
            form.to_record(normalizer),
            form.first_session.to_record(normalizer),
        )
        print(f"[OK] Created patient: {patient.full_name} ({patient.national_id})")
        patients.append(patient)
    return patients


async def create_demo_sessions(patients: List[Patient], normalizer: BilingualNormalizer, per_patient: int = 2) -> int:
    """Add follow-up sessions, one week apart."""
    print("\n=== Creating Sessions ===")
    created = 0
    for patient in patients:
        for n in range(per_patient):
            form = SessionCreate(
                session_type=FOLLOW_UP_TYPES[n % len(FOLLOW_UP_TYPES)],
                session_date=date.today() - timedelta(days=7 * (per_patient - n)),
                notes=f"Follow-up #{n + 1}",
            )
            await session_service.create_session(patient.id, form.to_record(normalizer))
            created += 1
        print(f"[OK] {per_patient} sessions for {patient.full_name}")
    return created


async def seed(per_patient: int = 2) -> List[Patient]:
    normalizer = BilingualNormalizer()
    patients = await create_demo_patients(normalizer)
    await create_demo_sessions(patients, normalizer, per_patient)
    return patients


async def main():
    """Main function"""
    print("=" * 50)
    print("Starting Demo Data Seeding")
    print("=" * 50)

    settings = get_settings()
    print(f"\nRecord backend: {settings.RECORD_BACKEND}")
    if settings.RECORD_BACKEND == "memory":
        print("[WARN] In-memory backend: seeded data lives only as long as this process")

    await init_db()
    print("[OK] Connected to record store\n")

    try:
        patients = await seed()
        print("\n" + "=" * 50)
        print(f"[SUCCESS] Seeded {len(patients)} patients")
        print("=" * 50)
    except Exception as e:
        print(f"\n[ERROR] An error occurred: {e}")
        import traceback
        traceback.print_exc()


if __name__ == "__main__":
    asyncio.run(main())
