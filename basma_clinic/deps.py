from typing import Optional

from fastapi import Depends, Header, Query

from basma_clinic.i18n import Translator, resolve_language
from basma_clinic.services.bilingual_service import BilingualNormalizer


def get_translator(
    lang: Optional[str] = Query(None, description="en | ar"),
    accept_language: Optional[str] = Header(None),
) -> Translator:
    """Request language from ?lang=, then Accept-Language, then the configured default."""
    return Translator(resolve_language(lang, accept_language))


def get_normalizer(translator: Translator = Depends(get_translator)) -> BilingualNormalizer:
    return BilingualNormalizer(translator.translate)


# Common dependencies used across routers
CurrentTranslator = Depends(get_translator)
CurrentNormalizer = Depends(get_normalizer)
