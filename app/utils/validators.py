import re

# Simple, pragmatic patterns
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def clean_str(val, max_len: int = 255) -> str | None:
    """
    Collapse whitespace, trim, enforce max length. Returns None if empty after cleaning.
    """
    if val is None:
        return None
    s = re.sub(r"\s+", " ", str(val)).strip()
    if not s:
        return None
    return s[:max_len]


def clean_text(val, max_len: int = 5000) -> str | None:
    """Like clean_str but keeps line breaks (notes, descriptions)."""
    if val is None:
        return None
    s = str(val).strip()
    if not s:
        return None
    return s[:max_len]


def is_valid_email(val: str | None) -> bool:
    if not val:
        return True
    return bool(_EMAIL_RE.match(val))


def normalize_phone(val: str | None) -> str | None:
    """
    Normalize US phone to (###) ###-####. Accept 10 digits or 11 starting with '1'.
    Anything else is kept as typed (international numbers, extensions).
    """
    if not val:
        return None
    digits = "".join(re.findall(r"\d", val))
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return clean_str(val, 32)
    return f"({digits[0:3]}) {digits[3:6]}-{digits[6:]}"


def format_address(address1=None, address2=None, city=None, state=None, zip_code=None) -> str | None:
    """One-line postal address for document snapshots: '12 Main St, Apt 2, Austin, TX 78701'."""
    locality = " ".join(p for p in (clean_str(state), clean_str(zip_code)) if p)
    parts = [clean_str(address1), clean_str(address2), clean_str(city), locality or None]
    joined = ", ".join(p for p in parts if p)
    return joined or None
