"""Stable serialization of query identifiers.

Produces a canonical string for any identifier value:

*  Sequences: order matters (``[a, b]`` and ``[b, a]`` differ).
*  Plain objects, maps and sets: order does **not** matter; entries are
   sorted by their serialized form.
*  Every primitive is tagged (``str:``, ``num:``, ...) so values of
   different kinds never collide: ``1`` is ``num:1``, ``"1"`` is
   ``str:"1"``.
*  ``UNDEFINED`` values in plain objects are kept, so ``{"a": UNDEFINED}``
   and ``{}`` differ.
*  Cycles raise ``CircularReferenceError``; identifiers must be acyclic.

Dispatch is closed over ``ValueKind``: ``classify()`` picks the kind,
``_ENCODERS`` maps each kind to its encoder.  Unknown shapes fall back to
``obj:[object <TypeName>]``, which may collide for distinct values of the
same unsupported type.
"""

from __future__ import annotations

import array
import dataclasses
import functools
import inspect
import json
import math
import re
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel

from querycore.core.enums import CollectionKind, ValueKind
from querycore.core.errors import CircularReferenceError

from .atoms import UNDEFINED, Symbol

# Largest integer a double represents exactly; beyond it ints are "big".
MAX_SAFE_INTEGER = 2**53 - 1

_REGEX_FLAGS = (
    ("a", re.ASCII),
    ("i", re.IGNORECASE),
    ("m", re.MULTILINE),
    ("s", re.DOTALL),
    ("x", re.VERBOSE),
)

_BYTES_LIKE = (bytes, bytearray, memoryview, array.array)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _is_object_key(key: Any) -> bool:
    if isinstance(key, Symbol):
        return True
    return isinstance(key, str) and not isinstance(key, Enum)


def _is_record(value: Any) -> bool:
    if isinstance(value, BaseModel):
        return True
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _is_function(value: Any) -> bool:
    return (
        inspect.isroutine(value)
        or isinstance(value, (type, functools.partial))
    )


def classify(value: Any) -> ValueKind:
    """Return the ``ValueKind`` that ``stable_serialize`` uses for *value*."""
    if value is None:
        return ValueKind.NULL
    if value is UNDEFINED:
        return ValueKind.UNDEFINED
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    # Enum before int/str so IntEnum and str-mixin enums stay atoms
    if isinstance(value, (Enum, Symbol)):
        return ValueKind.SYMBOL
    if isinstance(value, int):
        return ValueKind.NUMBER if abs(value) <= MAX_SAFE_INTEGER else ValueKind.BIGINT
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return ValueKind.NUMBER if abs(value) <= MAX_SAFE_INTEGER else ValueKind.BIGINT
        return ValueKind.NUMBER
    if isinstance(value, float):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, date):
        return ValueKind.DATE
    if isinstance(value, re.Pattern):
        return ValueKind.REGEXP
    if isinstance(value, _BYTES_LIKE):
        return ValueKind.TYPED
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    if isinstance(value, (set, frozenset)):
        return ValueKind.SET
    if isinstance(value, dict) and all(_is_object_key(k) for k in value):
        return ValueKind.OBJECT
    if isinstance(value, Mapping):
        return ValueKind.MAP
    if _is_record(value):
        return ValueKind.RECORD
    if _is_function(value):
        return ValueKind.FUNCTION
    return ValueKind.OTHER


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def _visiting(value: Any, active: set[int], kind: CollectionKind) -> Iterator[None]:
    """Hold *value* in the active set for the duration of its encoding."""
    key = id(value)
    if key in active:
        raise CircularReferenceError(kind)
    active.add(key)
    try:
        yield
    finally:
        active.discard(key)


def _number_text(value: int | float | Decimal) -> str:
    """Render a number the way it appears after the ``num:`` tag."""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if value.is_nan():
            return "NaN"
        if value.is_infinite():
            return "Infinity" if value > 0 else "-Infinity"
        if value == value.to_integral_value():
            return str(int(value))
        return str(value.normalize())
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) <= MAX_SAFE_INTEGER:
        # Also folds -0.0 into "0"
        return str(int(value))
    return repr(value)


def _symbol_text(value: Enum | Symbol) -> str:
    if isinstance(value, Enum):
        name = value.name if value.name is not None else str(value.value)
        return f"{type(value).__name__}.{name}"
    return value.description or ""


def _object_pairs(items: list[tuple[Any, Any]], active: set[int]) -> str:
    """Encode key/value pairs with string keys first, then symbol keys."""
    str_items = sorted(
        ((k, v) for k, v in items if not isinstance(k, Symbol)),
        key=lambda kv: kv[0],
    )
    sym_items = sorted(
        ((k, v) for k, v in items if isinstance(k, Symbol)),
        key=lambda kv: kv[0].description or "",
    )
    pairs: list[str] = []
    for k, v in str_items:
        pairs.append(f"key:{json.dumps(k, ensure_ascii=False)}=>{stable_serialize(v, active)}")
    for k, v in sym_items:
        pairs.append(f"keysym:{k.description or ''}=>{stable_serialize(v, active)}")
    return ",".join(pairs)


# ---------------------------------------------------------------------------
# Encoders
# ---------------------------------------------------------------------------

def _encode_null(value: None, active: set[int]) -> str:
    return "null"


def _encode_undefined(value: Any, active: set[int]) -> str:
    return "undef"


def _encode_bool(value: bool, active: set[int]) -> str:
    return f"bool:{1 if value else 0}"


def _encode_number(value: int | float | Decimal, active: set[int]) -> str:
    return f"num:{_number_text(value)}"


def _encode_bigint(value: int | Decimal, active: set[int]) -> str:
    return f"bigint:{int(value)}"


def _encode_string(value: str, active: set[int]) -> str:
    return f"str:{json.dumps(value, ensure_ascii=False)}"


def _encode_symbol(value: Enum | Symbol, active: set[int]) -> str:
    return f"sym:{_symbol_text(value)}"


def _encode_function(value: Callable[..., Any], active: set[int]) -> str:
    # Distinct anonymous callables share "fn:anonymous".
    name = getattr(value, "__name__", "") or ""
    if not name or name == "<lambda>":
        name = "anonymous"
    return f"fn:{name}"


def _encode_date(value: date, active: set[int]) -> str:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime(value.year, value.month, value.day)
    if dt.tzinfo is None or dt.utcoffset() is None:
        dt = dt.replace(tzinfo=timezone.utc)
    try:
        dt = dt.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return "date:invalid"
    return (
        f"date:{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
        f".{dt.microsecond // 1000:03d}Z"
    )


def _encode_regexp(value: re.Pattern, active: set[int]) -> str:
    flags = "".join(ch for ch, flag in _REGEX_FLAGS if value.flags & flag)
    if isinstance(value.pattern, bytes):
        source = value.pattern.decode("latin-1")
        return f"regexp:b/{source}/{flags}"
    return f"regexp:/{value.pattern}/{flags}"


def _encode_typed(value: bytes | bytearray | memoryview | array.array, active: set[int]) -> str:
    if isinstance(value, array.array):
        kind = f"array<{value.typecode}>"
        items: list[Any] = value.tolist()
    elif isinstance(value, memoryview):
        kind = f"memoryview<{value.format}>"
        try:
            items = value.tolist() if value.ndim == 1 else list(value.tobytes())
        except NotImplementedError:
            # Struct formats tolist() cannot unpack
            items = list(value.tobytes())
    else:
        kind = type(value).__name__
        items = list(value)
    text = (
        _number_text(i) if isinstance(i, (int, float)) else str(i)
        for i in items
    )
    return f"typed:{kind}:{','.join(text)}"


def _encode_sequence(value: list | tuple, active: set[int]) -> str:
    with _visiting(value, active, CollectionKind.SEQUENCE):
        inner = ",".join(stable_serialize(v, active) for v in value)
    return f"[{inner}]"


def _encode_map(value: Mapping, active: set[int]) -> str:
    with _visiting(value, active, CollectionKind.MAP):
        entries = sorted(
            (stable_serialize(k, active), stable_serialize(v, active))
            for k, v in value.items()
        )
    return "map:{" + ",".join(f"{k}:{v}" for k, v in entries) + "}"


def _encode_set(value: set | frozenset, active: set[int]) -> str:
    with _visiting(value, active, CollectionKind.SET):
        items = sorted(stable_serialize(v, active) for v in value)
    return f"set:[{','.join(items)}]"


def _encode_object(value: dict, active: set[int]) -> str:
    with _visiting(value, active, CollectionKind.OBJECT):
        inner = _object_pairs(list(value.items()), active)
    return f"{{{inner}}}"


def _encode_record(value: Any, active: set[int]) -> str:
    if isinstance(value, BaseModel):
        names = list(type(value).model_fields)
        names.extend(value.model_extra or ())
    else:
        names = [f.name for f in dataclasses.fields(value)]
    with _visiting(value, active, CollectionKind.OBJECT):
        inner = _object_pairs([(n, getattr(value, n, UNDEFINED)) for n in names], active)
    return f"record:{type(value).__qualname__}{{{inner}}}"


def _encode_other(value: Any, active: set[int]) -> str:
    return f"obj:[object {type(value).__name__}]"


_ENCODERS: dict[ValueKind, Callable[[Any, set[int]], str]] = {
    ValueKind.NULL: _encode_null,
    ValueKind.UNDEFINED: _encode_undefined,
    ValueKind.BOOLEAN: _encode_bool,
    ValueKind.NUMBER: _encode_number,
    ValueKind.BIGINT: _encode_bigint,
    ValueKind.STRING: _encode_string,
    ValueKind.SYMBOL: _encode_symbol,
    ValueKind.FUNCTION: _encode_function,
    ValueKind.DATE: _encode_date,
    ValueKind.REGEXP: _encode_regexp,
    ValueKind.TYPED: _encode_typed,
    ValueKind.SEQUENCE: _encode_sequence,
    ValueKind.MAP: _encode_map,
    ValueKind.SET: _encode_set,
    ValueKind.OBJECT: _encode_object,
    ValueKind.RECORD: _encode_record,
    ValueKind.OTHER: _encode_other,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def stable_serialize(value: Any, active: set[int] | None = None) -> str:
    """Produce the canonical string for *value*.

    Parameters
    ----------
    value:
        Any identifier value (see ``ValueKind`` for what is understood).
    active:
        ``id()``s of containers currently being encoded.  Leave as ``None``
        for a top-level call; recursion threads the same set through.

    Raises
    ------
    CircularReferenceError
        If a sequence, map, set or object contains itself.
    """
    if active is None:
        active = set()
    return _ENCODERS[classify(value)](value, active)
