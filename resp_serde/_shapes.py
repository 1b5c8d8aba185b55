"""Shape descriptors — the closed set of logical kinds a value can have.

RESP frames only say how a value is *represented* (integer, string, array);
they never say what the caller meant by it.  A shape fills that gap: the
decoder is told which shape to produce and reads frames accordingly, and
the encoder can be given one when a bare Python value is ambiguous (an
Optional[int] field holding 5 must still be framed as ``*1 :5``).

Shapes can be written out by hand:

    StructShape("Point", [("x", I32), ("y", I32)])

or derived from ordinary type hints with shape_for():

    shape_for(Dict[str, List[int]])
    # MapShape(key=StrShape(), value=SeqShape(item=IntShape(bits=64, signed=True), cls=None))

Every shape is a frozen dataclass, so shapes are hashable, comparable and
safe to share between threads.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import threading
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from ._errors import ERR_MSG, RespError
from ._values import VariantKind


class Shape:
    """Base class for all shape descriptors."""

    __slots__ = ()

    def __str__(self) -> str:
        return type(self).__name__[:-len("Shape")].lower()


def _coerce(tp: Any) -> "Shape":
    return shape_for(tp)


# ── Scalars ──────────────────────────────────────────────────

@dataclass(frozen=True)
class AnyShape(Shape):
    """Let the value's runtime type decide (encode), or return whatever the
    frames say (decode)."""


@dataclass(frozen=True)
class BoolShape(Shape):
    pass


@dataclass(frozen=True)
class IntShape(Shape):
    bits: int = 64
    signed: bool = True

    @property
    def min(self) -> int:
        return -(1 << (self.bits - 1)) if self.signed else 0

    @property
    def max(self) -> int:
        return (1 << (self.bits - 1)) - 1 if self.signed else (1 << self.bits) - 1

    def __str__(self) -> str:
        return "{}{}".format("i" if self.signed else "u", self.bits)


@dataclass(frozen=True)
class FloatShape(Shape):
    bits: int = 64

    def __str__(self) -> str:
        return "f{}".format(self.bits)


@dataclass(frozen=True)
class CharShape(Shape):
    pass


@dataclass(frozen=True)
class StrShape(Shape):
    pass


@dataclass(frozen=True)
class BytesShape(Shape):
    pass


@dataclass(frozen=True)
class UnitShape(Shape):
    pass


# ── Wrappers ─────────────────────────────────────────────────

@dataclass(frozen=True)
class OptionShape(Shape):
    inner: Shape

    def __post_init__(self) -> None:
        object.__setattr__(self, "inner", _coerce(self.inner))

    def __str__(self) -> str:
        return "Option<{}>".format(self.inner)


@dataclass(frozen=True)
class UnitStructShape(Shape):
    name: str
    cls: Optional[type] = None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class NewtypeShape(Shape):
    """A named single-field wrapper, transparent on the wire."""

    name: str
    inner: Shape
    cls: Any = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "inner", _coerce(self.inner))

    def __str__(self) -> str:
        return self.name


# ── Compounds ────────────────────────────────────────────────

@dataclass(frozen=True)
class TupleShape(Shape):
    items: Tuple[Shape, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(_coerce(t) for t in self.items))

    def __str__(self) -> str:
        return "({})".format(", ".join(str(t) for t in self.items))


@dataclass(frozen=True)
class TupleStructShape(Shape):
    name: str
    items: Tuple[Shape, ...]
    cls: Optional[type] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(_coerce(t) for t in self.items))

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class SeqShape(Shape):
    """Homogeneous sequence.  `cls` is the container built on decode
    (list when None)."""

    item: Shape
    cls: Optional[type] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "item", _coerce(self.item))

    def __str__(self) -> str:
        return "Seq<{}>".format(self.item)


@dataclass(frozen=True)
class MapShape(Shape):
    key: Shape
    value: Shape

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", _coerce(self.key))
        object.__setattr__(self, "value", _coerce(self.value))

    def __str__(self) -> str:
        return "Map<{}, {}>".format(self.key, self.value)


def _field_tuple(fields: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]) -> Tuple[Tuple[str, Shape], ...]:
    if isinstance(fields, Mapping):
        fields = fields.items()
    return tuple((name, _coerce(tp)) for name, tp in fields)


@dataclass(frozen=True)
class StructShape(Shape):
    """A record: fixed field names in declaration order.

    Decodes to `cls(**fields)` when cls is given, a dict otherwise.
    """

    name: str
    fields: Tuple[Tuple[str, Shape], ...]
    cls: Optional[type] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", _field_tuple(self.fields))

    def field_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.fields)

    def __str__(self) -> str:
        return self.name


# ── Enumerations ─────────────────────────────────────────────

@dataclass(frozen=True)
class VariantShape(Shape):
    """One case of an EnumShape.  `payload` is None for unit variants, the
    inner shape for newtype variants, a TupleShape for tuple variants and a
    StructShape for struct variants."""

    name: str
    kind: VariantKind = VariantKind.UNIT
    payload: Optional[Shape] = None

    def __post_init__(self) -> None:
        if self.payload is not None:
            object.__setattr__(self, "payload", _coerce(self.payload))

    def __str__(self) -> str:
        return self.name


def unit_variant(name: str) -> VariantShape:
    return VariantShape(name, VariantKind.UNIT, None)


def newtype_variant(name: str, inner: Any) -> VariantShape:
    return VariantShape(name, VariantKind.NEWTYPE, _coerce(inner))


def tuple_variant(name: str, *items: Any) -> VariantShape:
    return VariantShape(name, VariantKind.TUPLE, TupleShape(items))


def struct_variant(name: str, fields: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]) -> VariantShape:
    return VariantShape(name, VariantKind.STRUCT, StructShape(name, fields))


@dataclass(frozen=True)
class EnumShape(Shape):
    """A closed set of variants.  When `cls` is an enum.Enum subclass, unit
    variants decode to its members instead of Variant objects."""

    name: str
    variants: Tuple[VariantShape, ...]
    cls: Optional[type] = None
    _by_name: Dict[str, VariantShape] = field(
        init=False, repr=False, compare=False, hash=False, default_factory=dict)

    def __post_init__(self) -> None:
        variants = tuple(self.variants)
        object.__setattr__(self, "variants", variants)
        object.__setattr__(self, "_by_name", {v.name: v for v in variants})

    def variant(self, name: str) -> Optional[VariantShape]:
        return self._by_name.get(name)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class LazyShape(Shape):
    """Placeholder for a type whose shape is still being built.

    Only produced by shape_for() for self-referencing records; the
    encoder and decoder resolve it on first use.
    """

    tp: Any

    def resolve(self) -> Shape:
        return shape_for(self.tp)

    def __str__(self) -> str:
        return getattr(self.tp, "__name__", repr(self.tp))


# ── Ready-made instances ─────────────────────────────────────

ANY = AnyShape()
BOOL = BoolShape()
I8 = IntShape(8, True)
I16 = IntShape(16, True)
I32 = IntShape(32, True)
I64 = IntShape(64, True)
U8 = IntShape(8, False)
U16 = IntShape(16, False)
U32 = IntShape(32, False)
U64 = IntShape(64, False)
F32 = FloatShape(32)
F64 = FloatShape(64)
CHAR = CharShape()
STR = StrShape()
BYTES = BytesShape()
UNIT = UnitShape()


# ── Type hints → shapes ──────────────────────────────────────
# Built shapes are immutable, so they are memoised per hint.  _RESOLVING
# tracks records (dataclasses, NamedTuples) currently being built; meeting
# one again means the type refers to itself and gets a LazyShape instead of
# recursing forever.  Misses are built under _LOCK, which is re-entrant
# because building a record resolves its field hints recursively.

_CACHE: Dict[Any, Shape] = {}
_RESOLVING: set = set()
_LOCK = threading.RLock()

_NONE_TYPE = type(None)
_UNION_TYPES: Tuple[Any, ...] = (Union,) + ((types.UnionType,) if hasattr(types, "UnionType") else ())

_SEQ_ORIGINS = {
    list: None,
    collections.abc.Sequence: None,
    collections.abc.MutableSequence: None,
    collections.abc.Collection: None,
    collections.abc.Iterable: None,
    set: set,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
    frozenset: frozenset,
}
_MAP_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def shape_for(tp: Any) -> Shape:
    """Return the shape for a Python type hint (or pass a Shape through).

    Raises RespError(ERR_MSG) for hints with no RESP mapping.
    """
    if isinstance(tp, Shape):
        return tp
    try:
        cached = _CACHE.get(tp)
    except TypeError:
        return _build(tp)
    if cached is not None:
        return cached
    with _LOCK:
        cached = _CACHE.get(tp)
        if cached is not None:
            return cached
        if tp in _RESOLVING:
            return LazyShape(tp)
        shape = _build(tp)
        _CACHE[tp] = shape
    return shape


def _build(tp: Any) -> Shape:
    if tp is None or tp is _NONE_TYPE:
        return UNIT
    if tp is Any or tp is object:
        return ANY
    if tp is bool:
        return BOOL
    if tp is int:
        return I64
    if tp is float:
        return F64
    if tp is str:
        return STR
    if tp in (bytes, bytearray, memoryview):
        return BYTES

    # typing.NewType("UserId", int) is a callable carrying __supertype__.
    supertype = getattr(tp, "__supertype__", None)
    if supertype is not None:
        return NewtypeShape(tp.__name__, shape_for(supertype), cls=tp)

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin in _UNION_TYPES:
        present = [a for a in args if a is not _NONE_TYPE]
        if len(present) == 1 and len(args) == 2:
            return OptionShape(present[0])
        raise RespError(ERR_MSG, "only Optional[...] unions are supported: {!r}".format(tp))

    if tp is tuple or tp is typing.Tuple:
        return SeqShape(ANY, cls=tuple)
    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return SeqShape(args[0], cls=tuple)
        # Tuple[()] spells its (empty) args as ((),) before 3.11.
        if not args or args == ((),):
            return TupleShape(())
        return TupleShape(args)

    if origin in _SEQ_ORIGINS:
        return SeqShape(args[0] if args else ANY, cls=_SEQ_ORIGINS[origin])
    if tp in (list, set, frozenset):
        return SeqShape(ANY, cls=_SEQ_ORIGINS[tp])

    if origin in _MAP_ORIGINS:
        key, value = args if args else (ANY, ANY)
        return MapShape(key, value)
    if tp is dict:
        return MapShape(ANY, ANY)

    if isinstance(tp, type):
        if issubclass(tp, enum.Enum):
            return EnumShape(tp.__name__, tuple(unit_variant(m.name) for m in tp), cls=tp)
        if dataclasses.is_dataclass(tp):
            return _struct_from_dataclass(tp)
        if issubclass(tp, tuple) and hasattr(tp, "_fields"):
            return _struct_from_namedtuple(tp)

    raise RespError(ERR_MSG, "no RESP shape for type hint {!r}".format(tp))


def _struct_from_dataclass(cls: type) -> StructShape:
    _RESOLVING.add(cls)
    try:
        hints = typing.get_type_hints(cls)
        fields = tuple(
            (f.name, shape_for(hints.get(f.name, Any)))
            for f in dataclasses.fields(cls)
        )
    finally:
        _RESOLVING.discard(cls)
    return StructShape(cls.__name__, fields, cls=cls)


def _struct_from_namedtuple(cls: type) -> TupleStructShape:
    _RESOLVING.add(cls)
    try:
        hints = typing.get_type_hints(cls)
        items = tuple(shape_for(hints.get(name, Any)) for name in cls._fields)
    finally:
        _RESOLVING.discard(cls)
    return TupleStructShape(cls.__name__, items, cls=cls)


def resolve(shape: Shape) -> Shape:
    """Unwrap a LazyShape; any other shape is returned as is."""
    while isinstance(shape, LazyShape):
        shape = shape.resolve()
    return shape

