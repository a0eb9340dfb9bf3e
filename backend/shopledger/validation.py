from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import InvalidInput


# Upper bound for any single money field; keeps nonsense input out of documents
MAX_AMOUNT = Decimal("999999999.99")

CENT = Decimal("0.01")


def coerce_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion.

    Rejects bools, floats with a fractional part, decimals in strings and
    scientific notation.
    """
    if value is None:
        raise InvalidInput(f"{field} is required")
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidInput(f"{field} must be an integer, not a decimal")
        result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidInput(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise InvalidInput(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise InvalidInput(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidInput(f"{field} must be an integer")
    else:
        raise InvalidInput(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise InvalidInput(f"{field} must be >= {minimum}")
    return result


def coerce_money(value: Any, field: str, *, default: Decimal | None = None) -> Decimal:
    """Coerce a money value to a non-negative Decimal rounded half-up to cents."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise InvalidInput(f"{field} is required")
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidInput(f"{field} must be a number")
    if not amount.is_finite():
        raise InvalidInput(f"{field} must be a number")
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount < 0:
        raise InvalidInput(f"{field} must be >= 0")
    if amount > MAX_AMOUNT:
        raise InvalidInput(f"{field} cannot exceed {MAX_AMOUNT}")
    return amount


def coerce_measure(value: Any, field: str, *, default: float | None = None) -> float:
    """Non-negative float for weights and per-kg rates."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise InvalidInput(f"{field} is required")
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a number")
    if result != result or result in (float("inf"), float("-inf")):
        raise InvalidInput(f"{field} must be a number")
    if result < 0:
        raise InvalidInput(f"{field} must be >= 0")
    return result


def coerce_text(value: Any, field: str, *, required: bool = True, max_length: int = 255) -> str | None:
    if value is None:
        if required:
            raise InvalidInput(f"{field} is required")
        return None
    text = str(value).strip()
    if not text:
        if required:
            raise InvalidInput(f"{field} cannot be blank")
        return None
    if len(text) > max_length:
        raise InvalidInput(f"{field} exceeds max length {max_length}")
    return text


def to_number(amount: Decimal) -> float:
    """Money as stored in documents (JSON number)."""
    return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def money(value: Any) -> Decimal:
    """Read a money field back from a stored document (lenient: missing -> 0)."""
    if value is None or isinstance(value, bool):
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return Decimal("0.00")


def require_mapping(payload: Any, what: str = "payload") -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidInput(f"Invalid {what}: expected an object")
    return payload
