import re
from typing import Optional

_NON_DIGITS = re.compile(r"[^0-9]")


def format_phone_number(phone) -> Optional[str]:
    """Indian numbers to WhatsApp's ``91XXXXXXXXXX`` form; other formats pass through as digits."""
    if phone is None:
        return None
    digits = _NON_DIGITS.sub("", str(phone))
    if not digits:
        return None
    if len(digits) == 12 and digits.startswith("91"):
        return digits
    if len(digits) == 10 and digits[0] in "6789":
        return "91" + digits
    if len(digits) == 11 and digits.startswith("0"):
        return "91" + digits[1:]
    return digits


def mask_phone(phone: Optional[str]) -> str:
    if not phone:
        return "Not Available"
    return f"{phone[:4]}****{phone[-2:]}" if len(phone) > 6 else "****"
