from fastapi import APIRouter

from basma_clinic.constants import CategoryDomain
from basma_clinic.deps import CurrentNormalizer, CurrentTranslator
from basma_clinic.schemas import CategoryOptionsOut

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("/{domain}", response_model=CategoryOptionsOut)
async def list_options(domain: CategoryDomain, t=CurrentTranslator, normalizer=CurrentNormalizer):
    """Select options (predefined keys with labels in the request language)."""
    return {"domain": domain, "language": t.language, "options": normalizer.options(domain)}
