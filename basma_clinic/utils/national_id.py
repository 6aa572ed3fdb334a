import re

NATIONAL_ID_LENGTH = 9
_NON_DIGITS = re.compile(r"\D")


def clean_national_id(value: str | None) -> str:
    """Strip non-digits and cap at 9 digits (while the user is still typing, no padding)."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", value)[:NATIONAL_ID_LENGTH]


def format_national_id(value: str | None) -> str:
    """Left-pad with zeros to 9 digits; only once typing is done (blur/submit)."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", value).zfill(NATIONAL_ID_LENGTH)


def validate_national_id(value: str | None) -> bool:
    """9 digits; even positions add as-is, odd positions are doubled (digit-summed
    when > 9); valid when the total is divisible by 10."""
    if not value:
        return False
    digits = _NON_DIGITS.sub("", value)
    if len(digits) != NATIONAL_ID_LENGTH:
        return False

    total = 0
    for i, ch in enumerate(digits):
        digit = int(ch)
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit = digit // 10 + digit % 10
        total += digit
    return total % 10 == 0
