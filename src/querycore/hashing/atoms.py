"""Atom values that identifiers can carry but Python has no builtin for.

``UNDEFINED`` marks "key present, value absent" inside plain objects, so
``{"a": UNDEFINED}`` stays distinguishable from ``{}``.  ``Symbol`` is a
named atom whose identity is unique but whose canonical form is its
description.
"""

from __future__ import annotations


class _Undefined:
    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


class Symbol:
    """Unique atom. Two symbols with the same description are distinct
    objects but serialize identically."""

    __slots__ = ("description",)

    def __init__(self, description: str | None = None) -> None:
        self.description = description

    def __repr__(self) -> str:
        return f"Symbol({self.description!r})" if self.description is not None else "Symbol()"
