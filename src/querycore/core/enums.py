"""Enumerations used across querycore."""

from enum import Enum


class CollectionKind(str, Enum):
    """Container kinds that take part in cycle detection."""

    SEQUENCE = "sequence"
    MAP = "map"
    SET = "set"
    OBJECT = "object"


class ValueKind(str, Enum):
    """Closed set of identifier value kinds understood by the serializer.

    ``OTHER`` is the fallback variant for shapes outside the data model.
    """

    NULL = "null"
    UNDEFINED = "undef"
    BOOLEAN = "bool"
    NUMBER = "num"
    BIGINT = "bigint"
    STRING = "str"
    SYMBOL = "sym"
    FUNCTION = "fn"
    DATE = "date"
    REGEXP = "regexp"
    TYPED = "typed"
    SEQUENCE = "sequence"
    MAP = "map"
    SET = "set"
    OBJECT = "object"
    RECORD = "record"
    OTHER = "obj"


class LogFormat(str, Enum):
    JSON = "json"
    CONSOLE = "console"
