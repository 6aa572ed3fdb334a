from typing import List, Optional

from fastapi import APIRouter, Query, Request

from basma_clinic.deps import CurrentNormalizer, CurrentTranslator
from basma_clinic.rate_limit import WRITE_LIMIT, limiter
from basma_clinic.schemas import SessionCreate, SessionIndexOut, SessionOut, SessionUpdate
from basma_clinic.services import session_service

router = APIRouter(tags=["sessions"])


@router.get("/sessions", response_model=List[SessionIndexOut])
async def list_all_sessions(
    search: Optional[str] = Query(None, description="Patient name, national ID, notes or session type"),
    t=CurrentTranslator,
    normalizer=CurrentNormalizer,
):
    """All sessions across patients from the sessions index, newest session date first."""
    entries = await session_service.list_all_sessions()
    if search:
        entries = session_service.search_sessions(entries, search, t.language, normalizer)
    return [SessionIndexOut.build(e, normalizer, t.language) for e in entries]


@router.get("/patients/{patient_id}/sessions", response_model=List[SessionOut])
async def list_sessions(patient_id: str, t=CurrentTranslator, normalizer=CurrentNormalizer):
    sessions = await session_service.list_sessions(patient_id)
    return [SessionOut.build(s, normalizer, t.language) for s in sessions]


@router.post("/patients/{patient_id}/sessions", response_model=SessionOut, status_code=201)
@limiter.limit(WRITE_LIMIT)
async def create_session(
    request: Request,
    patient_id: str,
    payload: SessionCreate,
    t=CurrentTranslator,
    normalizer=CurrentNormalizer,
):
    session = await session_service.create_session(patient_id, payload.to_record(normalizer))
    return SessionOut.build(session, normalizer, t.language)


@router.get("/patients/{patient_id}/sessions/{session_id}", response_model=SessionOut)
async def get_session(patient_id: str, session_id: str, t=CurrentTranslator, normalizer=CurrentNormalizer):
    session = await session_service.get_session(patient_id, session_id)
    return SessionOut.build(session, normalizer, t.language)


@router.patch("/patients/{patient_id}/sessions/{session_id}", response_model=SessionOut)
async def update_session(
    patient_id: str,
    session_id: str,
    payload: SessionUpdate,
    t=CurrentTranslator,
    normalizer=CurrentNormalizer,
):
    session = await session_service.update_session(patient_id, session_id, payload.to_changes(normalizer))
    return SessionOut.build(session, normalizer, t.language)


@router.delete("/patients/{patient_id}/sessions/{session_id}")
async def delete_session(patient_id: str, session_id: str, t=CurrentTranslator):
    await session_service.delete_session(patient_id, session_id)
    return {"status": "deleted", "id": session_id, "message": t("session.sessionDeleted")}
