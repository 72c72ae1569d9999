"""
Ugandan phone number validation.

Accepts ``+256XXXXXXXXX``, ``256XXXXXXXXX`` and ``0XXXXXXXXX`` (mobile prefixes
7-9), with spaces, hyphens and parentheses ignored. Everything is stored and
sent in the ``+256XXXXXXXXX`` form.
"""

from __future__ import annotations

import re

_PHONE_RE = re.compile(r"^(?:\+?256|0)?([7-9]\d{8})$")
_STRIP_RE = re.compile(r"[\s\-()]")


def normalize_phone_number(phone_number: str) -> str:
    """
    Normalise a Ugandan phone number to ``+256XXXXXXXXX``.

    Raises:
        ValueError: If the number is not a valid Ugandan mobile number.
    """
    if not phone_number or not isinstance(phone_number, str):
        msg = "Phone number must be a non-empty string"
        raise ValueError(msg)

    match = _PHONE_RE.match(_STRIP_RE.sub("", phone_number))
    if match is None:
        msg = f"Invalid Ugandan phone number: {phone_number}"
        raise ValueError(msg)
    return f"+256{match.group(1)}"


def is_valid_phone_number(phone_number: str) -> bool:
    try:
        normalize_phone_number(phone_number)
    except ValueError:
        return False
    return True
