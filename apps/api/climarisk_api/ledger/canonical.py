"""Deterministic canonical encoding of value trees for ledger hashing.

The encoding is a compact JSON dialect:

- mapping keys are sorted (UTF-16 code unit order), whatever the insertion order
- numbers use the shortest round-trip form with ECMAScript ``Number#toString``
  layout, so ``20`` and ``20.0`` encode identically
- non-finite numbers encode as ``null``
- objects exposing ``to_canonical()`` are converted through it first

Anything else (cycles, bytes, sets, arbitrary objects) raises ``EncodingError``.
"""

import hashlib
import json
import math
from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from climarisk_api.errors import EncodingError

GENESIS_PREV_HASH = "0"


def sha256_hex(text: str) -> str:
    """SHA-256 of the UTF-8 encoding, lowercase hex."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_event_hash(prev_hash: str, event_type: str, payload: Any) -> str:
    """Hash linking an event to its predecessor."""
    body = canonicalize({"event_type": event_type, "payload": payload})
    return sha256_hex(prev_hash + "\n" + body)


def canonicalize(value: Any) -> str:
    """Encode ``value`` into its canonical string form."""
    try:
        return _encode(value, set())
    except RecursionError as exc:
        raise EncodingError("Structure nested too deeply to canonicalize") from exc


def _encode(value: Any, active: set) -> str:
    if value is None:
        return "null"
    # bool is an int subclass, check it first
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return _encode_number(value)
    if isinstance(value, str):
        return _encode_string(value)

    # Hook results may refer back to the object being converted
    marker = id(value)
    if marker in active:
        raise EncodingError("Cyclic structure cannot be canonicalized")
    active.add(marker)
    try:
        converted = _convert(value)
        if converted is not value:
            return _encode(converted, active)
    finally:
        active.discard(marker)

    if isinstance(value, Mapping):
        return _encode_container(value, active, _encode_mapping)
    if isinstance(value, (list, tuple)):
        return _encode_container(value, active, _encode_sequence)

    raise EncodingError(f"Cannot canonicalize value of type {type(value).__name__}")


def _convert(value: Any) -> Any:
    """Apply serialization hooks; returns ``value`` itself when none applies."""
    hook = getattr(value, "to_canonical", None)
    if callable(hook):
        return hook()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value


def _encode_container(value, active: set, encoder) -> str:
    marker = id(value)
    if marker in active:
        raise EncodingError("Cyclic structure cannot be canonicalized")
    active.add(marker)
    try:
        return encoder(value, active)
    finally:
        active.discard(marker)


def _encode_sequence(items, active: set) -> str:
    return "[" + ",".join(_encode(item, active) for item in items) + "]"


def _encode_mapping(mapping: Mapping, active: set) -> str:
    entries = {}
    for key, item in mapping.items():
        if not isinstance(key, str):
            if isinstance(key, bool) or not isinstance(key, (int, float, Decimal)):
                raise EncodingError(f"Unsupported mapping key type {type(key).__name__}")
            key = _encode_number(key)
        if key in entries:
            raise EncodingError(f"Duplicate mapping key {key!r}")
        entries[key] = item

    keys = sorted(entries, key=lambda k: k.encode("utf-16-be", "surrogatepass"))
    return "{" + ",".join(
        _encode_string(key) + ":" + _encode(entries[key], active) for key in keys
    ) + "}"


def _encode_string(text: str) -> str:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError("String contains an unpaired surrogate") from exc
    return json.dumps(text, ensure_ascii=False)


def _encode_number(number) -> str:
    if isinstance(number, float) and not math.isfinite(number):
        return "null"
    if isinstance(number, Decimal):
        if not number.is_finite():
            return "null"
        decimal = number
    elif isinstance(number, float):
        # repr() is the shortest string that round-trips
        decimal = Decimal(repr(number))
    else:
        decimal = Decimal(number)

    if decimal.is_zero():
        return "0"
    sign = "-" if decimal.is_signed() else ""

    _, digit_tuple, exponent = decimal.as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = k + exponent  # decimal point position relative to the first digit

    if k <= n <= 21:
        body = digits + "0" * (n - k)
    elif 0 < n <= 21:
        body = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        body = "0." + "0" * (-n) + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        body = f"{mantissa}e{'+' if e > 0 else '-'}{abs(e)}"
    return sign + body
