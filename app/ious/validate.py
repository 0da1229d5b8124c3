# app/ious/validate.py
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from app.ious.errors import ValidationError
from settings import settings

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,40}$")
_STRICT_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(value: Any, *, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing required field: {field}")
    addr = str(value).strip()
    pattern = _STRICT_ADDRESS_RE if settings.STRICT_ADDRESSES else _ADDRESS_RE
    if not pattern.match(addr):
        raise ValidationError(f"Malformed address for {field}: {addr!r}")
    return addr


def parse_amount(value: Any) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Missing required field: amount")
    if isinstance(value, bool):
        raise ValidationError("amount must be a positive number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("amount must be a positive number")
    return amount


def require_signature(value: Any) -> str:
    if value is None or not str(value).strip():
        raise ValidationError("Missing required field: signature")
    return str(value).strip()


def parse_nonce(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("nonce must be a non-negative integer")
    try:
        nonce = int(str(value).strip())
    except ValueError:
        raise ValidationError("nonce must be a non-negative integer")
    if nonce < 0:
        raise ValidationError("nonce must be a non-negative integer")
    return nonce
