from datetime import date

import pytest

from basma_clinic.constants import SESSION_TYPE_TRANSLATIONS
from basma_clinic.exceptions import NotFound, RecordValidationError, StoreUnavailable
from basma_clinic.models import SHARED_SESSION_FIELDS, LegacyString, Session, SessionIndexEntry
from basma_clinic.services import patient_service, session_service
from basma_clinic.services.bilingual_service import BilingualNormalizer

from factories import make_patient, make_session, pair


async def count_and_index(backend, patient_id):
    count = await backend.get(f"patients/{patient_id}/sessionCount")
    sessions = await backend.get(f"patients/{patient_id}/sessions") or {}
    entries = await backend.find_children("sessionsIndex", "patientId", patient_id)
    return count, set(sessions), set(entries)


@pytest.mark.asyncio
async def test_create_session_keeps_count_and_index_in_step(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    session = await session_service.create_session(patient.id, make_session(notes="week 2"))
    count, sessions, entries = await count_and_index(backend, patient.id)
    assert count == 2
    assert sessions == entries
    assert session.id in sessions

    stored = await backend.get(f"patients/{patient.id}/sessions/{session.id}")
    entry = await backend.get(f"sessionsIndex/{session.id}")
    for key in map(Session.storage_key, SHARED_SESSION_FIELDS):
        assert stored[key] == entry[key]
    assert entry["patientName"] == "Lina Haddad"


@pytest.mark.asyncio
async def test_create_session_for_missing_patient(backend):
    with pytest.raises(NotFound) as exc:
        await session_service.create_session("nope", make_session())
    assert exc.value.message_key == "patient.patientNotFound"
    assert await backend.get("sessionsIndex") is None


@pytest.mark.asyncio
async def test_update_session_writes_both_copies(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    session = (await session_service.list_sessions(patient.id))[0]
    updated = await session_service.update_session(
        patient.id, session.id,
        {"notes": "moved", "sessionDate": "2024-06-02", "session_type": pair(SESSION_TYPE_TRANSLATIONS, "DBT")},
    )
    assert updated.session_date == date(2024, 6, 2)

    stored = await backend.get(f"patients/{patient.id}/sessions/{session.id}")
    entry = await backend.get(f"sessionsIndex/{session.id}")
    assert stored["notes"] == entry["notes"] == "moved"
    assert stored["sessionDate"] == entry["sessionDate"] == "2024-06-02"
    assert stored["sessionType"] == entry["sessionType"] == {"en": "DBT", "ar": "العلاج السلوكي الجدلي"}
    assert stored["updatedAt"] == entry["updatedAt"]
    assert entry["patientName"] == "Lina Haddad"


@pytest.mark.asyncio
async def test_update_session_leaves_patient_snapshot_alone(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    session = (await session_service.list_sessions(patient.id))[0]
    await backend.set(f"sessionsIndex/{session.id}/patientName", "Old Name")
    await session_service.update_session(patient.id, session.id, {"notes": "x"})
    assert await backend.get(f"sessionsIndex/{session.id}/patientName") == "Old Name"


@pytest.mark.asyncio
async def test_update_recreates_missing_index_entry(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    session = (await session_service.list_sessions(patient.id))[0]
    await backend.delete(f"sessionsIndex/{session.id}")

    await session_service.update_session(patient.id, session.id, {"notes": "back"})
    entry = await backend.get(f"sessionsIndex/{session.id}")
    assert entry["notes"] == "back"
    assert entry["patientId"] == patient.id
    assert entry["patientNationalId"] == "123456782"


@pytest.mark.asyncio
async def test_update_session_rejects_system_fields():
    patient = await patient_service.create_patient(make_patient(), make_session())
    session = (await session_service.list_sessions(patient.id))[0]
    with pytest.raises(RecordValidationError) as exc:
        await session_service.update_session(patient.id, session.id, {"patientId": "other"})
    assert exc.value.errors == {"patientId": "patient.fieldNotEditable"}


@pytest.mark.asyncio
async def test_update_or_get_missing_session():
    patient = await patient_service.create_patient(make_patient())
    with pytest.raises(NotFound) as exc:
        await session_service.update_session(patient.id, "nope", {"notes": "x"})
    assert exc.value.message_key == "session.sessionNotFound"
    with pytest.raises(NotFound):
        await session_service.get_session(patient.id, "nope")


@pytest.mark.asyncio
async def test_delete_session(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    second = await session_service.create_session(patient.id, make_session())
    await session_service.delete_session(patient.id, second.id)
    count, sessions, entries = await count_and_index(backend, patient.id)
    assert count == 1
    assert sessions == entries
    assert second.id not in sessions
    with pytest.raises(NotFound):
        await session_service.delete_session(patient.id, second.id)


@pytest.mark.asyncio
async def test_delete_never_drives_count_negative(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    session = (await session_service.list_sessions(patient.id))[0]
    await backend.set(f"patients/{patient.id}/sessionCount", 0)
    await session_service.delete_session(patient.id, session.id)
    assert await backend.get(f"patients/{patient.id}/sessionCount") == 0


def test_sort_sessions_newest_date_first():
    sessions = [
        Session(id="a", session_date=date(2024, 1, 1), created_at=5),
        Session(id="b", session_date=None, created_at=9),
        Session(id="c", session_date=date(2024, 3, 1), created_at=1),
        Session(id="d", session_date=date(2024, 3, 1), created_at=2),
    ]
    assert [s.id for s in session_service.sort_sessions(sessions)] == ["d", "c", "a", "b"]


@pytest.mark.asyncio
async def test_list_sessions_sorted_and_empty():
    patient = await patient_service.create_patient(make_patient(), make_session(session_date="2024-01-10"))
    await session_service.create_session(patient.id, make_session(session_date="2024-02-10"))
    dates = [s.session_date for s in await session_service.list_sessions(patient.id)]
    assert dates == [date(2024, 2, 10), date(2024, 1, 10)]
    assert await session_service.list_sessions("nobody") == []


@pytest.mark.asyncio
async def test_list_all_sessions_reads_only_the_index(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    await backend.set(f"patients/{patient.id}/sessions/unindexed", {"notes": "x", "sessionDate": "2030-01-01"})
    entries = await session_service.list_all_sessions()
    assert len(entries) == 1
    assert entries[0].patient_name == "Lina Haddad"


@pytest.mark.asyncio
async def test_subscriptions_follow_writes():
    patient = await patient_service.create_patient(make_patient())
    per_patient, everything = [], []
    stop_one = await session_service.subscribe_sessions(patient.id, lambda s: per_patient.append(len(s)))
    stop_all = await session_service.subscribe_all_sessions(lambda e: everything.append(len(e)))

    session = await session_service.create_session(patient.id, make_session())
    await session_service.delete_session(patient.id, session.id)
    assert per_patient == [0, 1, 0]
    assert everything == [0, 1, 0]

    stop_one()
    stop_all()
    await session_service.create_session(patient.id, make_session())
    assert per_patient == [0, 1, 0]
    assert everything == [0, 1, 0]


@pytest.mark.asyncio
async def test_search_sessions():
    await patient_service.create_patient(make_patient(), make_session(notes="Ate well"))
    await patient_service.create_patient(
        make_patient(full_name="Omar Khatib", national_id="111111118"),
        make_session(session_type=pair(SESSION_TYPE_TRANSLATIONS, "Family Therapy")),
    )
    entries = await session_service.list_all_sessions()
    normalizer = BilingualNormalizer()

    def names(term, language="en"):
        return sorted(e.patient_name for e in session_service.search_sessions(entries, term, language, normalizer))

    assert names("") == ["Lina Haddad", "Omar Khatib"]
    assert names("OMAR") == ["Omar Khatib"]
    assert names("1111") == ["Omar Khatib"]
    assert names("ate w") == ["Lina Haddad"]
    assert names("family") == ["Omar Khatib"]
    assert names("الأسري", "ar") == ["Omar Khatib"]
    assert names("الأسري", "en") == []


def test_search_matches_legacy_type_text():
    entry = SessionIndexEntry(id="s1", session_type=LegacyString(text="Play therapy"))
    assert session_service.search_sessions([entry], "play") == [entry]


@pytest.mark.asyncio
async def test_store_failures_propagate(backend, monkeypatch):
    async def unavailable(*args, **kwargs):
        raise StoreUnavailable("Record store unavailable (get)")

    monkeypatch.setattr(backend, "get", unavailable)
    with pytest.raises(StoreUnavailable):
        await session_service.list_all_sessions()
    with pytest.raises(StoreUnavailable):
        await session_service.create_session("p1", make_session())
