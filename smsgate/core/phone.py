from __future__ import annotations

import re
from typing import Iterable

TRUNK_PREFIX = "0"
INTERNATIONAL_PREFIX = "00"


def normalize_phone(phone: str | None, country_code: str = "380") -> str | None:
    """
    Bring a phone number to the single international form stored in sms_queue.

    ``+380 67 123-45-67``, ``0671234567`` and ``80671234567`` all become
    ``380671234567``.
    """
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    if digits.startswith(INTERNATIONAL_PREFIX):
        digits = digits[len(INTERNATIONAL_PREFIX):]
    if digits.startswith(country_code):
        return digits
    # 80XXXXXXXXX: country code written without its leading digit
    overlap = country_code[1:]
    if overlap.endswith(TRUNK_PREFIX) and digits.startswith(overlap):
        return country_code[:1] + digits
    if digits.startswith(TRUNK_PREFIX):
        return country_code + digits[len(TRUNK_PREFIX):]
    return digits


def is_blacklisted(phone: str | None, prefixes: Iterable[str]) -> bool:
    if not phone:
        return False
    return any(prefix and phone.startswith(prefix) for prefix in prefixes)


def mask_phone(phone: str | None) -> str | None:
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if not digits or len(digits) < 4:
        return "****"
    return f"{digits[:-2]}**"
