import asyncio

import pytest
import pytest_asyncio

from basma_clinic.database import use_backend
from basma_clinic.services import patient_service, session_service
from basma_clinic.services.reconcile_service import reconcile_index, run_scheduled_reconcile

from factories import SlowBackend, make_patient, make_session


@pytest_asyncio.fixture
async def two_patients():
    lina = await patient_service.create_patient(make_patient(), make_session())
    await session_service.create_session(lina.id, make_session(notes="second"))
    omar = await patient_service.create_patient(make_patient(full_name="Omar", national_id="111111118"), make_session())
    return lina, omar


@pytest.mark.asyncio
async def test_consistent_store_needs_nothing(two_patients):
    report = await reconcile_index()
    assert report.patients_checked == 2
    assert report.changed is False
    assert report.summary()["countsFixed"] == 0


@pytest.mark.asyncio
async def test_repairs_counts_entries_and_orphans(backend, two_patients):
    lina, omar = two_patients
    lina_sessions = await session_service.list_sessions(lina.id)
    missing, stale = lina_sessions[0].id, lina_sessions[1].id
    await backend.multi_update({
        f"patients/{lina.id}/sessionCount": 9,
        f"sessionsIndex/{missing}": None,
        f"sessionsIndex/{stale}/patientName": "Old",
        f"sessionsIndex/{stale}/notes": "out of date",
        "sessionsIndex/ghost": {"patientId": "gone", "patientName": "Ghost"},
    })

    report = await reconcile_index()
    assert report.counts_fixed == 1
    assert report.entries_created == 1
    assert report.entries_refreshed == 1
    assert report.orphans_removed == 1

    assert await backend.get(f"patients/{lina.id}/sessionCount") == 2
    assert await backend.get("sessionsIndex/ghost") is None
    stored = await backend.get(f"patients/{lina.id}/sessions/{stale}")
    entry = await backend.get(f"sessionsIndex/{stale}")
    assert entry["patientName"] == "Lina Haddad"
    assert entry["notes"] == stored["notes"]
    assert (await backend.get(f"sessionsIndex/{missing}"))["patientId"] == lina.id
    assert (await reconcile_index()).changed is False


@pytest.mark.asyncio
async def test_dry_run_reports_without_writing(backend, two_patients):
    lina, _ = two_patients
    await backend.set(f"patients/{lina.id}/sessionCount", 0)
    report = await reconcile_index(dry_run=True)
    assert report.counts_fixed == 1
    assert report.summary()["dryRun"] is True
    assert await backend.get(f"patients/{lina.id}/sessionCount") == 0


@pytest.mark.asyncio
async def test_unreadable_patient_is_skipped(backend, two_patients):
    await backend.set("patients/broken", {"birthDate": "not a date", "sessions": {"s9": {"notes": "x"}}})
    report = await reconcile_index()
    assert report.skipped == 1
    assert await backend.get("sessionsIndex/s9") is None


@pytest.mark.asyncio
async def test_scheduled_run_logs_failures(backend, monkeypatch):
    async def broken(path):
        raise RuntimeError("offline")

    monkeypatch.setattr(backend, "get", broken)
    await run_scheduled_reconcile()


async def sweep_after(delay):
    await asyncio.sleep(delay)
    return await reconcile_index()


async def store_state(store, patient_id):
    sessions = await store.get(f"patients/{patient_id}/sessions") or {}
    entries = await store.find_children("sessionsIndex", "patientId", patient_id)
    count = await store.get(f"patients/{patient_id}/sessionCount")
    return len(sessions), len(entries), count


@pytest.mark.asyncio
async def test_session_created_during_sweep_keeps_its_index_entry():
    store = SlowBackend()
    use_backend(store)
    patient = await patient_service.create_patient(make_patient())

    await asyncio.gather(sweep_after(0.002), session_service.create_session(patient.id, make_session()))

    assert await store_state(store, patient.id) == (1, 1, 1)


@pytest.mark.asyncio
async def test_count_fix_uses_fresh_read():
    store = SlowBackend()
    use_backend(store)
    patient = await patient_service.create_patient(make_patient())
    await store.set(f"patients/{patient.id}/sessionCount", 5)

    report, _ = await asyncio.gather(sweep_after(0.002), session_service.create_session(patient.id, make_session()))

    assert report.counts_fixed == 1
    assert report.orphans_removed == 0
    assert await store_state(store, patient.id) == (1, 1, 1)


@pytest.mark.asyncio
async def test_session_deleted_during_sweep_is_not_reindexed():
    store = SlowBackend()
    use_backend(store)
    patient = await patient_service.create_patient(make_patient(), make_session())
    session_id = next(iter(await store.get(f"patients/{patient.id}/sessions")))
    await store.delete(f"sessionsIndex/{session_id}")

    report, _ = await asyncio.gather(sweep_after(0.002), session_service.delete_session(patient.id, session_id))

    assert report.entries_created == 0
    assert await store_state(store, patient.id) == (0, 0, 0)
