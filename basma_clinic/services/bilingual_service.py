"""
Bilingual category values (diagnosis, insurance, session type).

Values are written as ``{en, ar}`` pairs. Predefined keys map to their fixed
translation pair; free text is stored identically in both slots because its
source language is unknown. Records written before bilingual support hold a
plain string and are read as ``LegacyString``.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from basma_clinic.constants import CATEGORY_TABLES, OTHER_KEY, CategoryDomain
from basma_clinic.models.bilingual import BilingualValue, LegacyString, coerce_category_value

TranslateFn = Callable[[str, str], str]


@dataclass(frozen=True)
class Decomposed:
    """Form-side view of a stored value: the selected key plus any free text."""
    key: Optional[str]
    custom_text: str = ""


class BilingualNormalizer:
    """Converts between form input / display strings and stored bilingual values.

    ``translate`` is the active UI translation lookup; it is only used to
    recognise whatever label the current language shows for a key.
    """

    def __init__(self, translate: Optional[TranslateFn] = None):
        self._translate = translate

    @staticmethod
    def _table(domain: CategoryDomain | str):
        return CATEGORY_TABLES[CategoryDomain(domain)]

    def has_other(self, domain: CategoryDomain | str) -> bool:
        keys, _, _ = self._table(domain)
        return OTHER_KEY in keys

    def key_from_value(self, domain: CategoryDomain | str, raw_input: Optional[str]) -> Optional[str]:
        """Predefined key for a key / English label / Arabic label / current UI label, else None."""
        if not raw_input:
            return None
        keys, translations, prefix = self._table(domain)
        for key in keys:
            pair = translations.get(key, {})
            if raw_input in (key, pair.get("en", key), pair.get("ar", key)):
                return key
            if self._translate and raw_input == self._translate(f"{prefix}.{key}", key):
                return key
        return None

    def to_canonical(
        self,
        domain: CategoryDomain | str,
        input_value: Optional[str],
        custom_text: Optional[str] = None,
    ) -> Optional[BilingualValue]:
        """Stored pair for a form value.

        Blank input is unset. Free text and "Other" custom text are stored exactly
        as given; surrounding whitespace only matters for recognising a key.
        """
        if isinstance(input_value, BilingualValue):
            return input_value
        if not (input_value or "").strip():
            return None

        key = self.key_from_value(domain, input_value.strip())
        if key is None:
            return BilingualValue(en=input_value, ar=input_value)

        if key == OTHER_KEY and (custom_text or "").strip():
            return BilingualValue(en=custom_text, ar=custom_text)
        _, translations, _ = self._table(domain)
        pair = translations[key]
        return BilingualValue(en=pair["en"], ar=pair["ar"])

    def to_display(self, domain: CategoryDomain | str, value: Any, language: str) -> str:
        parsed = coerce_category_value(value)
        if parsed is None:
            return ""
        if isinstance(parsed, LegacyString):
            return parsed.text
        return parsed.text(language)

    def decompose(self, domain: CategoryDomain | str, stored: Any) -> Decomposed:
        """Recover ``(key, custom_text)`` for an edit form; left-inverse of ``to_canonical``."""
        value = coerce_category_value(stored)
        if value is None:
            return Decomposed(key=None)
        free_text_key = OTHER_KEY if self.has_other(domain) else None

        if isinstance(value, LegacyString):
            key = self.key_from_value(domain, value.text)
            if key is not None:
                return Decomposed(key=key)
            return Decomposed(key=free_text_key, custom_text=value.text)

        keys, translations, _ = self._table(domain)
        for key in keys:
            pair = translations[key]
            if value.en == pair["en"] and value.ar == pair["ar"]:
                return Decomposed(key=key)
        return Decomposed(key=free_text_key, custom_text=value.en or value.ar)

    def options(self, domain: CategoryDomain | str) -> List[Dict[str, str]]:
        """Select options for a form: ``[{key, label}]`` in the active language."""
        keys, translations, prefix = self._table(domain)
        translate = self._translate or (lambda k, fallback: fallback)
        return [
            {"key": key, "label": translate(f"{prefix}.{key}", translations[key]["en"])}
            for key in keys
        ]
