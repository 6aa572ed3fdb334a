from typing import List, Optional

from fastapi import APIRouter, Query, Request

from basma_clinic.deps import CurrentNormalizer, CurrentTranslator
from basma_clinic.rate_limit import WRITE_LIMIT, limiter
from basma_clinic.schemas import PatientCreate, PatientOut, PatientUpdate
from basma_clinic.services import patient_service

router = APIRouter(prefix="/patients", tags=["patients"])


@router.get("", response_model=List[PatientOut])
async def list_patients(
    search: Optional[str] = Query(None, description="Search by full name or national ID"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    t=CurrentTranslator,
    normalizer=CurrentNormalizer,
):
    """Patients, newest first. Search is applied before the limit."""
    patients = await patient_service.list_patients(search, limit)
    return [PatientOut.build(p, normalizer, t) for p in patients]


@router.post("", response_model=PatientOut, status_code=201)
@limiter.limit(WRITE_LIMIT)
async def create_patient(request: Request, payload: PatientCreate, t=CurrentTranslator, normalizer=CurrentNormalizer):
    """Create a patient; ``firstSession`` (optional) is stored in the same write."""
    first_session = payload.first_session.to_record(normalizer) if payload.first_session else None
    patient = await patient_service.create_patient(payload.to_record(normalizer), first_session)
    return PatientOut.build(patient, normalizer, t)


@router.get("/{patient_id}", response_model=PatientOut)
async def get_patient(patient_id: str, t=CurrentTranslator, normalizer=CurrentNormalizer):
    patient = await patient_service.get_patient(patient_id)
    return PatientOut.build(patient, normalizer, t)


@router.patch("/{patient_id}", response_model=PatientOut)
async def update_patient(patient_id: str, payload: PatientUpdate, t=CurrentTranslator, normalizer=CurrentNormalizer):
    """Partial update; name / national ID changes are copied onto the sessions index."""
    patient = await patient_service.update_patient(patient_id, payload.to_changes(normalizer))
    return PatientOut.build(patient, normalizer, t)


@router.delete("/{patient_id}")
async def delete_patient(patient_id: str, t=CurrentTranslator):
    """حذف المريض مع جميع جلساته وسجلات الفهرس التابعة له."""
    await patient_service.delete_patient(patient_id)
    return {"status": "deleted", "id": patient_id, "message": t("patient.patientDeleted")}
