import re
from typing import Set

from ..config import settings

COUNTRY_CODE = settings.COUNTRY_CODE


def digits_only(raw: str) -> str:
    """Strip everything that is not a digit"""
    return re.sub(r'\D', '', raw or '')


def normalize_phone(raw: str) -> str:
    """
    Convert any phone number format to the canonical 94XXXXXXXXX form.

    Handles formats like:
    - 0771234567 -> 94771234567
    - 771234567 -> 94771234567
    - +94 77 123 4567 -> 94771234567
    - 771234567@phone.ictacademy.lk -> 94771234567

    Input without any digits yields an empty string, which never matches
    a stored record.
    """
    digits = digits_only(raw)
    if not digits:
        return ''

    # Replace national trunk prefix with the country code
    if digits.startswith('0'):
        digits = COUNTRY_CODE + digits[1:]

    if not digits.startswith(COUNTRY_CODE):
        digits = COUNTRY_CODE + digits

    return digits


def alternate_forms(raw: str) -> Set[str]:
    """
    All representations a stored phone number may have for this input.

    Phone storage changed over time (raw digits, 0-prefixed local format,
    and "<digits>@<domain>" login identifiers), so lookups check every form
    instead of relying on a backfill.
    """
    raw = (raw or '').strip()
    digits = digits_only(raw)
    forms = {normalize_phone(raw), digits}

    if len(digits) == 9:
        forms.add(f'0{digits}')
    if len(digits) == 10 and digits.startswith('0'):
        forms.add(digits[1:])
    if len(digits) == 11 and digits.startswith(COUNTRY_CODE):
        forms.add(f'0{digits[len(COUNTRY_CODE):]}')
    if '@' in raw:
        forms.add(raw.split('@')[0])

    forms.discard('')
    return forms


def local_format(raw: str) -> str:
    """94XXXXXXXXX -> 0XXXXXXXXX"""
    canonical = normalize_phone(raw)
    if not canonical:
        return ''
    return '0' + canonical[len(COUNTRY_CODE):]


def login_identifier(raw: str) -> str:
    """Synthetic email-like login identifier for a phone number"""
    local = local_format(raw)
    if not local:
        return ''
    return f'{local}@{settings.PHONE_LOGIN_DOMAIN}'


def mask_phone(raw: str, visible_digits: int = 4) -> str:
    """Keep only the last digits, for logs and API responses"""
    digits = digits_only(raw)
    if len(digits) <= visible_digits:
        return digits
    return '*' * (len(digits) - visible_digits) + digits[-visible_digits:]
