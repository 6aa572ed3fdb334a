import pytest

from basma_clinic.exceptions import NotFound, RecordValidationError
from basma_clinic.models import BilingualValue
from basma_clinic.services import patient_service, session_service

from factories import make_patient, make_session


@pytest.mark.asyncio
async def test_create_patient_without_session(backend):
    patient = await patient_service.create_patient(make_patient())
    raw = await backend.get(f"patients/{patient.id}")
    assert raw["fullName"] == "Lina Haddad"
    assert raw["birthDate"] == "2017-03-14"
    assert raw["diagnosis"] == {"en": "ASD", "ar": "طيف التوحد"}
    assert raw["sessionCount"] == 0
    assert raw["createdAt"] == raw["updatedAt"] > 0
    assert "id" not in raw
    assert "sessions" not in raw
    assert await backend.get("sessionsIndex") is None


@pytest.mark.asyncio
async def test_create_patient_with_first_session(backend):
    patient = await patient_service.create_patient(make_patient(), make_session(notes="intake"))
    raw = await backend.get(f"patients/{patient.id}")
    assert raw["sessionCount"] == 1
    (session_id, session), = raw["sessions"].items()
    assert session["notes"] == "intake"
    assert "patientId" not in session

    entry = await backend.get(f"sessionsIndex/{session_id}")
    assert entry["patientId"] == patient.id
    assert entry["patientName"] == "Lina Haddad"
    assert entry["patientNationalId"] == "123456782"
    assert entry["sessionType"] == session["sessionType"]


@pytest.mark.asyncio
async def test_system_fields_on_create_are_ignored():
    patient = await patient_service.create_patient(make_patient(session_count=7, id="mine"))
    assert patient.session_count == 0
    assert patient.id != "mine"


@pytest.mark.asyncio
async def test_get_missing_patient():
    with pytest.raises(NotFound) as exc:
        await patient_service.get_patient("nope")
    assert exc.value.status_code == 404
    assert exc.value.message_key == "patient.patientNotFound"


@pytest.mark.asyncio
async def test_update_keeps_sessions_and_camel_case_keys(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    updated = await patient_service.update_patient(patient.id, {"therapyName": "OT", "total_sessions_planned": 4})
    assert updated.therapy_name == "OT"
    raw = await backend.get(f"patients/{patient.id}")
    assert raw["therapyName"] == "OT"
    assert raw["totalSessionsPlanned"] == 4
    assert "therapy_name" not in raw
    assert len(raw["sessions"]) == 1
    assert raw["sessionCount"] == 1
    assert raw["updatedAt"] >= raw["createdAt"]


@pytest.mark.asyncio
async def test_rename_fans_out_to_index_entries(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    await session_service.create_session(patient.id, make_session(notes="second"))
    other = await patient_service.create_patient(make_patient(full_name="Omar", national_id="111111118"), make_session())

    await patient_service.update_patient(patient.id, {"full_name": "Lina H.", "national_id": "987654324"})

    entries = await session_service.list_all_sessions()
    mine = [e for e in entries if e.patient_id == patient.id]
    assert len(mine) == 2
    assert {(e.patient_name, e.patient_national_id) for e in mine} == {("Lina H.", "987654324")}
    theirs = [e for e in entries if e.patient_id == other.id]
    assert theirs[0].patient_name == "Omar"


@pytest.mark.asyncio
async def test_unchanged_name_skips_fan_out(backend, monkeypatch):
    patient = await patient_service.create_patient(make_patient(), make_session())
    calls = []
    real_find_children = backend.find_children

    async def spy(*args):
        calls.append(args)
        return await real_find_children(*args)

    monkeypatch.setattr(backend, "find_children", spy)
    await patient_service.update_patient(patient.id, {"full_name": "Lina Haddad", "notes_ignored": 1})
    assert calls == []


@pytest.mark.asyncio
async def test_protected_fields_are_rejected(backend):
    patient = await patient_service.create_patient(make_patient())
    with pytest.raises(RecordValidationError) as exc:
        await patient_service.update_patient(patient.id, {"sessionCount": 5, "createdAt": 1})
    assert exc.value.errors == {
        "sessionCount": "patient.fieldNotEditable",
        "createdAt": "patient.fieldNotEditable",
    }
    assert (await backend.get(f"patients/{patient.id}/sessionCount")) == 0


@pytest.mark.asyncio
async def test_invalid_stored_value_is_a_field_error():
    patient = await patient_service.create_patient(make_patient())
    with pytest.raises(RecordValidationError) as exc:
        await patient_service.update_patient(patient.id, {"birth_date": "not a date"})
    assert exc.value.errors == {"birthDate": "errors.validationFailed"}


@pytest.mark.asyncio
async def test_clearing_a_category_deletes_it(backend):
    patient = await patient_service.create_patient(make_patient())
    updated = await patient_service.update_patient(patient.id, {"insurance": None})
    assert updated.insurance is None
    assert await backend.get(f"patients/{patient.id}/insurance") is None
    assert await backend.get(f"patients/{patient.id}/diagnosis") == {"en": "ASD", "ar": "طيف التوحد"}


@pytest.mark.asyncio
async def test_update_missing_patient():
    with pytest.raises(NotFound):
        await patient_service.update_patient("nope", {"full_name": "X"})


@pytest.mark.asyncio
async def test_delete_removes_sessions_and_orphan_entries(backend):
    patient = await patient_service.create_patient(make_patient(), make_session())
    await session_service.create_session(patient.id, make_session())
    other = await patient_service.create_patient(make_patient(full_name="Omar"), make_session())
    # an index entry whose session is already gone from the patient
    await backend.set("sessionsIndex/stale", {"patientId": patient.id, "patientName": "Lina Haddad"})

    await patient_service.delete_patient(patient.id)

    assert await backend.get(f"patients/{patient.id}") is None
    entries = await session_service.list_all_sessions()
    assert [e.patient_id for e in entries] == [other.id]
    with pytest.raises(NotFound):
        await patient_service.delete_patient(patient.id)


@pytest.mark.asyncio
async def test_list_newest_first_with_search_before_limit(monkeypatch):
    clock = iter([1000, 2000, 3000])
    monkeypatch.setattr(patient_service, "now_ms", lambda: next(clock))
    oldest = await patient_service.create_patient(make_patient(full_name="Maya Levi", national_id="000000018"))
    await patient_service.create_patient(make_patient(full_name="Omar Khatib", national_id="111111118"))
    newest = await patient_service.create_patient(make_patient(full_name="Lina Haddad"))

    patients = await patient_service.list_patients()
    assert [p.full_name for p in patients] == ["Lina Haddad", "Omar Khatib", "Maya Levi"]
    assert [p.id for p in await patient_service.list_patients(limit=1)] == [newest.id]
    assert [p.id for p in await patient_service.list_patients("maya", limit=1)] == [oldest.id]
    assert [p.id for p in await patient_service.list_patients("0000000018")] == []
    assert [p.id for p in await patient_service.list_patients("000000018")] == [oldest.id]
    assert len(await patient_service.list_patients(limit=0)) == 3


def test_select_patients_skips_non_record_children():
    snapshot = {"p1": {"fullName": "A", "createdAt": 1}, "junk": "x"}
    assert [p.id for p in patient_service.select_patients(snapshot)] == ["p1"]
    assert patient_service.select_patients(None) == []


@pytest.mark.asyncio
async def test_subscribe_patients_pushes_filtered_lists():
    seen = []
    unsubscribe = await patient_service.subscribe_patients(
        lambda patients: seen.append([p.full_name for p in patients]), search_term="lina"
    )
    await patient_service.create_patient(make_patient())
    await patient_service.create_patient(make_patient(full_name="Omar"))
    assert seen == [[], ["Lina Haddad"], ["Lina Haddad"]]

    unsubscribe()
    await patient_service.create_patient(make_patient(full_name="Lina Two"))
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_stored_bilingual_value_round_trips():
    custom = BilingualValue(en="Rett syndrome", ar="Rett syndrome")
    patient = await patient_service.create_patient(make_patient(diagnosis=custom))
    assert (await patient_service.get_patient(patient.id)).diagnosis == custom
