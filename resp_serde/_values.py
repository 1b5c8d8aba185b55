"""Value-side wrappers for shapes Python has no native spelling for.

    Some(v)           — an explicitly present optional (needed for Some(None))
    Variant           — one case of an enumeration, tagged by VariantKind
    ErrorReply(text)  — a RESP error frame

Everything else in the model is a plain Python value: bool, int, float,
str, bytes, None, tuple, list, dict, dataclass instances and enum members.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Some:
    """A present optional.  Bare values are also accepted as present;
    Some is only required to tell ``Some(None)`` apart from ``None``."""

    value: Any


class VariantKind(enum.Enum):
    UNIT = "unit"
    NEWTYPE = "newtype"
    TUPLE = "tuple"
    STRUCT = "struct"


@dataclass(frozen=True)
class Variant:
    """One enum case.  The payload depends on the kind:

        UNIT     → None
        NEWTYPE  → the wrapped value
        TUPLE    → a tuple of values
        STRUCT   → a dict of field name → value, in declaration order

    Use the constructors rather than building instances by hand.
    """

    name: str
    kind: VariantKind = VariantKind.UNIT
    payload: Any = None

    @classmethod
    def unit(cls, name: str) -> "Variant":
        return cls(name, VariantKind.UNIT, None)

    @classmethod
    def newtype(cls, name: str, value: Any) -> "Variant":
        return cls(name, VariantKind.NEWTYPE, value)

    @classmethod
    def tuple(cls, name: str, *values: Any) -> "Variant":
        return cls(name, VariantKind.TUPLE, tuple(values))

    @classmethod
    def struct(cls, name: str, fields: Mapping[str, Any]) -> "Variant":
        return cls(name, VariantKind.STRUCT, dict(fields))

    def __hash__(self) -> int:
        # dict payloads are unhashable; hash on the tag only.
        return hash((self.name, self.kind))


@dataclass(frozen=True)
class ErrorReply:
    """A RESP error frame.  Must not contain CR or LF."""

    message: str

