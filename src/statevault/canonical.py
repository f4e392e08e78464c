"""Deterministic canonical JSON encoding (RFC 8785 style).

This is the only source of hashing and encryption input: the same logical
value always yields byte-identical output, whatever the key insertion order.

Rules:
- object keys are strings, sorted by UTF-16 code units
- no insignificant whitespace
- integers verbatim, finite floats in ECMAScript shortest form
- NaN, Infinity, cycles and non-JSON types are rejected
"""
from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .errors import SerializationError


def _format_float(value: float) -> str:
    """Format a finite float the way ECMAScript Number::toString does."""
    if value != value or value in (float("inf"), float("-inf")):
        raise SerializationError(f"non-finite number {value!r} has no canonical form")
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    # repr() yields the shortest round-tripping digits; Decimal exposes them.
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = exponent + k

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        text = "0." + "0" * (-n) + digits
    else:
        e = n - 1
        mantissa = digits[0] + ("." + digits[1:] if k > 1 else "")
        text = f"{mantissa}e{'+' if e > 0 else '-'}{abs(e)}"
    return sign + text


def _encode_value(value: Any, out: list[str], active: set[int]) -> None:
    if value is None:
        out.append("null")
    elif value is True:
        out.append("true")
    elif value is False:
        out.append("false")
    elif isinstance(value, int):
        out.append(str(int(value)))
    elif isinstance(value, float):
        out.append(_format_float(value))
    elif isinstance(value, str):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, (list, tuple)):
        _enter(value, active)
        out.append("[")
        for i, item in enumerate(value):
            if i:
                out.append(",")
            _encode_value(item, out, active)
        out.append("]")
        active.discard(id(value))
    elif isinstance(value, Mapping):
        _enter(value, active)
        for key in value:
            if not isinstance(key, str):
                raise SerializationError(
                    f"object keys must be strings, got {type(key).__name__}"
                )
        out.append("{")
        for i, key in enumerate(sorted(value, key=lambda k: k.encode("utf-16-be", "surrogatepass"))):
            if i:
                out.append(",")
            out.append(json.dumps(key, ensure_ascii=False))
            out.append(":")
            _encode_value(value[key], out, active)
        out.append("}")
        active.discard(id(value))
    else:
        raise SerializationError(
            f"type {type(value).__name__} has no canonical representation"
        )


def _enter(container: Any, active: set[int]) -> None:
    marker = id(container)
    if marker in active:
        raise SerializationError("cyclic reference has no canonical representation")
    active.add(marker)


def canonicalize(value: Any) -> bytes:
    """Encode ``value`` to canonical UTF-8 JSON bytes.

    Raises:
        SerializationError: If the value (or anything nested in it) has no
            canonical representation.
    """
    out: list[str] = []
    _encode_value(value, out, set())
    try:
        return "".join(out).encode("utf-8")
    except UnicodeEncodeError as exc:
        raise SerializationError("string contains unencodable code points") from exc


def canonical_json(value: Any) -> str:
    """Canonical encoding as text."""
    return canonicalize(value).decode("utf-8")


def _reject_constant(name: str) -> Any:
    raise SerializationError(f"non-finite number {name} has no canonical form")


def parse_canonical(data: bytes) -> Any:
    """Decode JSON bytes produced by :func:`canonicalize` (or any strict JSON)."""
    try:
        return json.loads(data.decode("utf-8"), parse_constant=_reject_constant)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SerializationError(f"failed to parse JSON: {exc}") from exc


__all__ = ["canonicalize", "canonical_json", "parse_canonical"]
