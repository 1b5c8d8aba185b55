"""RESP encoder — walks a value by shape and appends frames to a sink.

Canonical encodings (fixed, not configurable):

    bool / int          → :<decimal>\\r\\n
    float               → text of repr(), via the text path
    str / char          → +<text>\\r\\n, or a bulk string if it holds CR/LF
    bytes               → $<len>\\r\\n<bytes>\\r\\n
    unit                → $-1\\r\\n
    None (optional)     → *0\\r\\n
    Some(v)             → *1\\r\\n v
    unit variant        → +<name>\\r\\n
    other variants      → *2\\r\\n +<name>\\r\\n <payload>
    sequence / tuple    → *<n>\\r\\n v0 v1 ...
    map / record        → *<n>\\r\\n *2 k0 v0  *2 k1 v1 ...

The stream is forward-only: every array count and bulk length is written
before its payload, so a value whose length isn't known up front is
rejected instead of buffered and patched later.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import struct
from typing import Any, Callable, Mapping, Union

from ._constants import (
    CRLF,
    EMPTY_ARRAY,
    INT64_MIN,
    MAX_DEPTH,
    NULL_BULK,
    UINT64_MAX,
)
from ._errors import (
    ERR_IO,
    ERR_LEN_NOT_KNOWN,
    ERR_LIMIT_DEPTH,
    ERR_MSG,
    ERR_UTF8,
    ERR_VARIANT,
    EncodeError,
    RespError,
)
from ._shapes import (
    ANY,
    STR,
    AnyShape,
    BoolShape,
    BytesShape,
    CharShape,
    EnumShape,
    FloatShape,
    IntShape,
    MapShape,
    NewtypeShape,
    OptionShape,
    SeqShape,
    Shape,
    StrShape,
    StructShape,
    TupleShape,
    TupleStructShape,
    UnitShape,
    UnitStructShape,
    resolve,
    shape_for,
)
from ._values import ErrorReply, Some, Variant, VariantKind

_BYTES_LIKE = (bytes, bytearray, memoryview)


class Encoder:
    """Appends the RESP encoding of values to `out`.

    `out` is either a bytearray (extended in place) or any binary writer
    with a ``write`` method.  Sink failures surface as EncodeError(ERR_IO).
    Content written before a failure is left in place; callers discard the
    buffer on error.
    """

    def __init__(self, out: Any) -> None:
        if isinstance(out, bytearray):
            self._write: Callable[[bytes], Any] = out.extend
        elif hasattr(out, "write"):
            self._write = out.write
        else:
            raise EncodeError(ERR_IO, "output must be a bytearray or a binary writer")

    def encode(self, value: Any, shape: Any = ANY) -> None:
        try:
            self._value(value, shape_for(shape), 0)
        except EncodeError:
            raise
        except RespError as e:
            # Shape resolution failures (unsupported hints) surface on the
            # encode side of the family.
            raise EncodeError(e.code, str(e)) from e

    # ── Sink ──────────────────────────────────────────────────

    def _emit(self, *parts: bytes) -> None:
        try:
            for part in parts:
                self._write(part)
        except (OSError, MemoryError, TypeError) as e:
            # TypeError: a text-mode writer handed bytes.
            raise EncodeError(ERR_IO, "write failed: {}".format(e)) from e

    def _open_array(self, count: int, depth: int) -> int:
        """Write an array header and return the depth for its elements."""
        if depth + 1 > MAX_DEPTH:
            raise EncodeError(ERR_LIMIT_DEPTH, "nesting exceeds MAX_DEPTH")
        self._emit(b"*%d\r\n" % count)
        return depth + 1

    # ── Primitive frames ──────────────────────────────────────

    def _integer(self, v: int) -> None:
        self._emit(b":%d\r\n" % v)

    def _bulk(self, raw: Union[bytes, bytearray, memoryview]) -> None:
        raw = bytes(raw)
        self._emit(b"$%d\r\n" % len(raw), raw, CRLF)

    def _text(self, text: str) -> None:
        try:
            raw = text.encode("utf-8")
        except UnicodeEncodeError:
            raise EncodeError(ERR_UTF8, "text is not encodable as UTF-8")
        # Simple strings cannot carry CR or LF; fall back to a bulk string
        # so the exact bytes survive.
        if b"\r" in raw or b"\n" in raw:
            self._bulk(raw)
        else:
            self._emit(b"+", raw, CRLF)

    def _float(self, v: Any, bits: int) -> None:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise EncodeError(ERR_MSG, "expected a float, got {}".format(type(v).__name__))
        v = float(v)
        if bits == 32:
            try:
                v = struct.unpack("<f", struct.pack("<f", v))[0]
            except OverflowError:
                raise EncodeError(ERR_MSG, "{!r} out of range for f32".format(v))
        # repr() gives the shortest text that parses back to the same
        # double; nan/inf/-inf never contain CR or LF.
        self._text(repr(v))

    def _error(self, reply: ErrorReply) -> None:
        if "\r" in reply.message or "\n" in reply.message:
            raise EncodeError(ERR_MSG, "error reply must not contain CR or LF")
        try:
            raw = reply.message.encode("utf-8")
        except UnicodeEncodeError:
            raise EncodeError(ERR_UTF8, "error reply is not encodable as UTF-8")
        self._emit(b"-", raw, CRLF)

    # ── Shape dispatch ────────────────────────────────────────

    def _value(self, value: Any, shape: Shape, depth: int) -> None:
        shape = resolve(shape)

        if isinstance(shape, AnyShape):
            self._any(value, depth)
            return

        # bool must be checked before int: isinstance(True, int) is True.
        if isinstance(shape, BoolShape):
            if not isinstance(value, bool):
                raise EncodeError(ERR_MSG, "expected bool, got {}".format(type(value).__name__))
            self._integer(1 if value else 0)
            return

        if isinstance(shape, IntShape):
            if not isinstance(value, int):
                raise EncodeError(ERR_MSG, "expected int, got {}".format(type(value).__name__))
            if value < shape.min or value > shape.max:
                raise EncodeError(ERR_MSG, "integer {} out of range for {}".format(value, shape))
            self._integer(int(value))
            return

        if isinstance(shape, FloatShape):
            self._float(value, shape.bits)
            return

        if isinstance(shape, CharShape):
            if not isinstance(value, str) or len(value) != 1:
                raise EncodeError(ERR_MSG, "expected a single character, got {!r}".format(value))
            self._text(value)
            return

        if isinstance(shape, StrShape):
            if not isinstance(value, str):
                raise EncodeError(ERR_MSG, "expected str, got {}".format(type(value).__name__))
            self._text(value)
            return

        if isinstance(shape, BytesShape):
            if not isinstance(value, _BYTES_LIKE):
                raise EncodeError(ERR_MSG, "expected bytes, got {}".format(type(value).__name__))
            self._bulk(value)
            return

        if isinstance(shape, (UnitShape, UnitStructShape)):
            cls = getattr(shape, "cls", None)
            if value is not None and not (cls is not None and isinstance(value, cls)):
                raise EncodeError(ERR_MSG, "expected unit, got {!r}".format(value))
            self._emit(NULL_BULK)
            return

        if isinstance(shape, OptionShape):
            self._option(value, shape.inner, depth)
            return

        if isinstance(shape, NewtypeShape):
            self._value(value, shape.inner, depth)
            return

        if isinstance(shape, (TupleShape, TupleStructShape)):
            self._tuple(value, shape.items, depth)
            return

        if isinstance(shape, SeqShape):
            self._seq(value, shape.item, depth)
            return

        if isinstance(shape, MapShape):
            self._map(value, shape.key, shape.value, depth)
            return

        if isinstance(shape, StructShape):
            self._struct(value, shape, depth)
            return

        if isinstance(shape, EnumShape):
            self._variant(_as_variant(value), shape, depth)
            return

        raise EncodeError(ERR_MSG, "cannot encode with shape {!r}".format(shape))

    def _any(self, value: Any, depth: int) -> None:
        """Encode by runtime type when no shape was given."""
        # Enum members first: IntEnum and str-mixin members are also int/str.
        if isinstance(value, enum.Enum):
            self._text(value.name)
        elif isinstance(value, bool):
            self._integer(1 if value else 0)
        elif isinstance(value, int):
            # Anything from i64::MIN up to u64::MAX has a native width.
            if value < INT64_MIN or value > UINT64_MAX:
                raise EncodeError(ERR_MSG, "integer {} outside the 64-bit range".format(value))
            self._integer(int(value))
        elif isinstance(value, float):
            self._float(value, 64)
        elif isinstance(value, str):
            self._text(value)
        elif isinstance(value, _BYTES_LIKE):
            self._bulk(value)
        elif value is None:
            self._emit(EMPTY_ARRAY)
        elif isinstance(value, Some):
            self._option(value, ANY, depth)
        elif isinstance(value, Variant):
            self._variant(value, None, depth)
        elif isinstance(value, ErrorReply):
            self._error(value)
        elif dataclasses.is_dataclass(value) and not isinstance(value, type):
            self._value(value, shape_for(type(value)), depth)
        elif isinstance(value, tuple):
            self._tuple(value, (ANY,) * len(value), depth)
        elif isinstance(value, Mapping):
            self._map(value, ANY, ANY, depth)
        elif isinstance(value, collections.abc.Iterable):
            self._seq(value, ANY, depth)
        else:
            raise EncodeError(ERR_MSG, "unsupported type: {}".format(type(value).__name__))

    # ── Compounds ─────────────────────────────────────────────

    def _option(self, value: Any, inner: Shape, depth: int) -> None:
        if value is None:
            self._emit(EMPTY_ARRAY)
            return
        if isinstance(value, Some):
            value = value.value
        d = self._open_array(1, depth)
        self._value(value, inner, d)

    def _tuple(self, value: Any, items: Any, depth: int) -> None:
        if not isinstance(value, collections.abc.Sequence) or isinstance(value, (str,) + _BYTES_LIKE):
            raise EncodeError(ERR_MSG, "expected a tuple, got {}".format(type(value).__name__))
        if len(value) != len(items):
            raise EncodeError(ERR_MSG, "tuple has {} items, shape expects {}".format(len(value), len(items)))
        d = self._open_array(len(items), depth)
        for item, item_shape in zip(value, items):
            self._value(item, item_shape, d)

    def _seq(self, value: Any, item: Shape, depth: int) -> None:
        if not isinstance(value, collections.abc.Iterable):
            raise EncodeError(ERR_MSG, "expected a sequence, got {}".format(type(value).__name__))
        n = _known_len(value)
        d = self._open_array(n, depth)
        count = 0
        for elem in value:
            self._value(elem, item, d)
            count += 1
        if count != n:
            raise EncodeError(ERR_MSG, "sequence yielded {} items but reported {}".format(count, n))

    def _map(self, value: Any, key: Shape, val: Shape, depth: int) -> None:
        if isinstance(value, Mapping):
            entries: Any = value.items()
        elif isinstance(value, collections.abc.Iterable):
            entries = value
        else:
            raise EncodeError(ERR_MSG, "expected a mapping, got {}".format(type(value).__name__))
        n = _known_len(entries)
        d = self._open_array(n, depth)
        count = 0
        for entry in entries:
            try:
                k, v = entry
            except (TypeError, ValueError):
                raise EncodeError(ERR_MSG, "map entries must be (key, value) pairs")
            self._entry(k, key, v, val, d)
            count += 1
        if count != n:
            raise EncodeError(ERR_MSG, "map yielded {} entries but reported {}".format(count, n))

    def _entry(self, k: Any, key: Shape, v: Any, val: Shape, depth: int) -> None:
        # Key and value only ever go out together as one [k, v] pair.
        d = self._open_array(2, depth)
        self._value(k, key, d)
        self._value(v, val, d)

    def _struct(self, value: Any, shape: StructShape, depth: int) -> None:
        if isinstance(value, Mapping):
            def get(name: str) -> Any:
                return value[name]
        else:
            def get(name: str) -> Any:
                return getattr(value, name)
        d = self._open_array(len(shape.fields), depth)
        for name, field_shape in shape.fields:
            try:
                field_value = get(name)
            except (KeyError, AttributeError):
                raise EncodeError(ERR_MSG, "{} is missing field {!r}".format(shape, name))
            self._entry(name, STR, field_value, field_shape, d)

    def _variant(self, value: Variant, shape: Any, depth: int) -> None:
        payload_shape: Shape = ANY
        if shape is not None:
            vshape = shape.variant(value.name)
            if vshape is None:
                raise EncodeError(ERR_VARIANT, "{} has no variant {!r}".format(shape, value.name))
            if vshape.kind is not value.kind:
                raise EncodeError(ERR_MSG, "variant {} is a {} variant, got {}".format(
                    value.name, vshape.kind.value, value.kind.value))
            if vshape.payload is not None:
                payload_shape = vshape.payload

        if value.kind is VariantKind.UNIT:
            self._text(value.name)
            return

        d = self._open_array(2, depth)
        self._text(value.name)
        if value.kind is VariantKind.STRUCT and isinstance(payload_shape, AnyShape):
            # Without a declared field list, keep the payload's own order.
            self._map(value.payload, STR, ANY, d)
        else:
            self._value(value.payload, payload_shape, d)


def _as_variant(value: Any) -> Variant:
    if isinstance(value, Variant):
        return value
    if isinstance(value, enum.Enum):
        return Variant.unit(value.name)
    if isinstance(value, str):
        return Variant.unit(value)
    raise EncodeError(ERR_MSG, "expected an enum variant, got {}".format(type(value).__name__))


def _known_len(value: Any) -> int:
    try:
        return len(value)
    except TypeError:
        raise EncodeError(ERR_LEN_NOT_KNOWN, "length of {} is not known up front".format(
            type(value).__name__)) from None
