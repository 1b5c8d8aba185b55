"""RESP decoder — reads one frame tree and rebuilds a value of a requested shape.

RESP frames only say how something was represented (integer, string,
array), not what it meant, so decoding is driven by the caller's shape:
asked for a record, the decoder expects an array of [name, value] pairs;
asked for an Optional, an array of count 0 or 1; and so on.  ANY is the
exception: it returns whatever the frames themselves describe.

The input is never mutated and never read past its end.  Every length and
count is checked against the remaining input before anything is sliced or
allocated.
"""

from __future__ import annotations

import contextlib
import enum
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ._constants import (
    CRLF,
    FRAME_TAGS,
    MAX_ARRAY_LEN,
    MAX_BULK_LEN,
    MAX_DEPTH,
    MIN_FRAME_LEN,
    TAG_ARRAY,
    TAG_BULK,
    TAG_ERROR,
    TAG_INTEGER,
    TAG_SIMPLE,
)
from ._errors import (
    ERR_ARITY,
    ERR_EOF,
    ERR_FIELD,
    ERR_FRAME,
    ERR_INTEGER,
    ERR_LIMIT_DEPTH,
    ERR_LIMIT_SIZE,
    ERR_MSG,
    ERR_OPTION,
    ERR_OVERFLOW,
    ERR_SHAPE,
    ERR_TAG,
    ERR_TRUNCATED,
    ERR_UTF8,
    ERR_VARIANT,
    DecodeError,
    ReplyError,
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

_INT_RE = re.compile(rb"-?[0-9]+")
# Longest integer line worth parsing: a sign plus the 20 digits of u64 max.
_MAX_INT_LINE = 21

_TAG_NAMES = {
    TAG_SIMPLE: "simple string",
    TAG_ERROR: "error",
    TAG_INTEGER: "integer",
    TAG_BULK: "bulk string",
    TAG_ARRAY: "array",
}


class Decoder:
    """Cursor over an input buffer.

    Each call to decode() consumes exactly one frame tree and leaves the
    cursor on the first byte after it, so several values can be read back
    to back from one buffer.
    """

    __slots__ = ("_buf", "_pos", "_end")

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._buf = data
        self._pos = offset
        self._end = len(data)

    @property
    def offset(self) -> int:
        return self._pos

    def decode(self, shape: Any = ANY) -> Any:
        try:
            return self._value(shape_for(shape), 0)
        except DecodeError:
            raise
        except RespError as e:
            # Shape resolution failures (unsupported hints) surface on the
            # decode side of the family.
            raise DecodeError(e.code, str(e), self._pos) from e

    def _fail(self, code: str, msg: str, offset: Optional[int] = None) -> DecodeError:
        return DecodeError(code, msg, self._pos if offset is None else offset)

    @contextlib.contextmanager
    def _elements_at(self, start: int) -> Iterator[None]:
        """Report input that ends inside an array as a truncated array."""
        try:
            yield
        except DecodeError as e:
            if e.code != ERR_EOF:
                raise
            raise self._fail(ERR_TRUNCATED, "array ends before all of its elements", start) from e

    # ── Frame level ───────────────────────────────────────────

    def _line(self) -> bytes:
        """Read up to the next CRLF and step over it."""
        idx = self._buf.find(CRLF, self._pos)
        if idx < 0:
            raise self._fail(ERR_EOF, "unterminated line")
        line = self._buf[self._pos:idx]
        if b"\r" in line or b"\n" in line:
            raise self._fail(ERR_FRAME, "stray CR or LF inside a line")
        self._pos = idx + 2
        return line

    def _length(self, line: bytes, start: int, limit: int) -> Optional[int]:
        """Parse a bulk length or array count; -1 means null."""
        if not _INT_RE.fullmatch(line):
            raise self._fail(ERR_FRAME, "bad length {!r}".format(line), start)
        if len(line) > _MAX_INT_LINE:
            raise self._fail(ERR_LIMIT_SIZE, "length {!r} exceeds limit".format(line[:_MAX_INT_LINE]), start)
        n = int(line)
        if n == -1:
            return None
        if n < 0:
            raise self._fail(ERR_FRAME, "negative length {}".format(n), start)
        if n > limit:
            raise self._fail(ERR_LIMIT_SIZE, "length {} exceeds limit".format(n), start)
        return n

    def _frame(self) -> Tuple[int, Any]:
        """Read one frame header (and the payload, for non-arrays).

        Returns (tag, payload):
            simple string / error → the raw line bytes
            integer               → int
            bulk string           → bytes, or None for $-1
            array                 → element count, or None for *-1
        Array elements are left unread.
        """
        start = self._pos
        if start >= self._end:
            raise self._fail(ERR_EOF, "unexpected end of input")
        tag = self._buf[start]
        if tag not in FRAME_TAGS:
            raise self._fail(ERR_TAG, "unknown frame tag 0x{:02x}".format(tag))
        self._pos += 1
        line = self._line()

        if tag == TAG_SIMPLE or tag == TAG_ERROR:
            return tag, line

        if tag == TAG_INTEGER:
            if not _INT_RE.fullmatch(line):
                raise self._fail(ERR_INTEGER, "malformed integer {!r}".format(line), start)
            if len(line) > _MAX_INT_LINE:
                raise self._fail(ERR_OVERFLOW, "integer {!r}... too long".format(line[:_MAX_INT_LINE]), start)
            return tag, int(line)

        if tag == TAG_BULK:
            n = self._length(line, start, MAX_BULK_LEN)
            if n is None:
                return tag, None
            if self._pos + n + 2 > self._end:
                raise self._fail(ERR_TRUNCATED, "bulk string of {} bytes exceeds input".format(n), start)
            payload = self._buf[self._pos:self._pos + n]
            if self._buf[self._pos + n:self._pos + n + 2] != CRLF:
                raise self._fail(ERR_FRAME, "bulk string not terminated by CRLF", self._pos + n)
            self._pos += n + 2
            return tag, payload

        count = self._length(line, start, MAX_ARRAY_LEN)
        if count is not None and count * MIN_FRAME_LEN > self._end - self._pos:
            raise self._fail(ERR_TRUNCATED, "array of {} elements exceeds input".format(count), start)
        return tag, count

    def _array(self, shape: Shape, depth: int) -> Tuple[Optional[int], int]:
        """Read an array header; returns (count, depth for the elements)."""
        start = self._pos
        tag, count = self._frame()
        if tag == TAG_ERROR:
            raise ReplyError(count.decode("utf-8", "replace"), start)
        if tag != TAG_ARRAY:
            raise self._mismatch(tag, shape, start)
        if depth + 1 > MAX_DEPTH:
            raise self._fail(ERR_LIMIT_DEPTH, "nesting exceeds MAX_DEPTH", start)
        return count, depth + 1

    def _pair(self, shape: Shape, depth: int) -> int:
        start = self._pos
        count, d = self._array(shape, depth)
        if count != 2:
            raise self._fail(ERR_ARITY, "expected a [key, value] pair, got {} elements".format(count), start)
        return d

    def _mismatch(self, tag: int, shape: Shape, start: int) -> DecodeError:
        return self._fail(ERR_SHAPE, "{} cannot be read as {}".format(_TAG_NAMES[tag], shape), start)

    def _text_bytes(self, tag: int, payload: Any, shape: Shape, start: int) -> bytes:
        if tag == TAG_SIMPLE or (tag == TAG_BULK and payload is not None):
            return payload
        raise self._mismatch(tag, shape, start)

    def _utf8(self, raw: bytes, start: int) -> str:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            raise self._fail(ERR_UTF8, "invalid UTF-8 in text", start)

    # ── Shape dispatch ────────────────────────────────────────

    def _value(self, shape: Shape, depth: int) -> Any:
        shape = resolve(shape)

        # Newtypes are transparent on the wire: no frame of their own.
        if isinstance(shape, NewtypeShape):
            inner = self._value(shape.inner, depth)
            return shape.cls(inner) if shape.cls is not None else inner

        if isinstance(shape, AnyShape):
            return self._any(depth)

        # Anything that owns arrays reads its own header.
        if isinstance(shape, OptionShape):
            return self._option(shape, depth)
        if isinstance(shape, (TupleShape, TupleStructShape)):
            return self._tuple(shape, depth)
        if isinstance(shape, SeqShape):
            return self._seq(shape, depth)
        if isinstance(shape, MapShape):
            return self._map(shape, depth)
        if isinstance(shape, StructShape):
            return self._struct(shape, depth)
        if isinstance(shape, EnumShape):
            return self._enum(shape, depth)

        start = self._pos
        tag, payload = self._frame()
        if tag == TAG_ERROR:
            raise ReplyError(payload.decode("utf-8", "replace"), start)

        if isinstance(shape, BoolShape):
            if tag != TAG_INTEGER:
                raise self._mismatch(tag, shape, start)
            return payload != 0

        if isinstance(shape, IntShape):
            if tag != TAG_INTEGER:
                raise self._mismatch(tag, shape, start)
            if payload < shape.min or payload > shape.max:
                raise self._fail(ERR_OVERFLOW, "{} out of range for {}".format(payload, shape), start)
            return payload

        if isinstance(shape, FloatShape):
            if tag == TAG_INTEGER:
                return float(payload)
            raw = self._text_bytes(tag, payload, shape, start)
            try:
                return float(self._utf8(raw, start))
            except ValueError:
                raise self._fail(ERR_SHAPE, "{!r} is not a float".format(raw), start)

        if isinstance(shape, (StrShape, CharShape)):
            text = self._utf8(self._text_bytes(tag, payload, shape, start), start)
            if isinstance(shape, CharShape) and len(text) != 1:
                raise self._fail(ERR_SHAPE, "expected a single character, got {!r}".format(text), start)
            return text

        if isinstance(shape, BytesShape):
            return self._text_bytes(tag, payload, shape, start)

        if isinstance(shape, (UnitShape, UnitStructShape)):
            if tag != TAG_BULK or payload is not None:
                raise self._mismatch(tag, shape, start)
            cls = getattr(shape, "cls", None)
            return cls() if cls is not None else None

        raise self._fail(ERR_MSG, "cannot decode into shape {!r}".format(shape), start)

    def _any(self, depth: int) -> Any:
        start = self._pos
        tag, payload = self._frame()
        if tag == TAG_SIMPLE:
            return self._utf8(payload, start)
        if tag == TAG_ERROR:
            return ErrorReply(self._utf8(payload, start))
        if tag == TAG_INTEGER or tag == TAG_BULK:
            return payload
        if payload is None:
            return None
        if depth + 1 > MAX_DEPTH:
            raise self._fail(ERR_LIMIT_DEPTH, "nesting exceeds MAX_DEPTH", start)
        with self._elements_at(start):
            return [self._any(depth + 1) for _ in range(payload)]

    # ── Compounds ─────────────────────────────────────────────

    def _option(self, shape: OptionShape, depth: int) -> Any:
        start = self._pos
        count, d = self._array(shape, depth)
        if not count:
            return None
        if count != 1:
            raise self._fail(ERR_OPTION, "optional array has {} elements".format(count), start)
        with self._elements_at(start):
            value = self._value(shape.inner, d)
        # Keep Some(None) distinguishable from None for nested optionals.
        return Some(None) if value is None else value

    def _elements(self, shape: Shape, item: Shape, depth: int) -> List[Any]:
        start = self._pos
        count, d = self._array(shape, depth)
        if count is None:
            raise self._fail(ERR_SHAPE, "null array cannot be read as {}".format(shape), start)
        with self._elements_at(start):
            return [self._value(item, d) for _ in range(count)]

    def _tuple(self, shape: Union[TupleShape, TupleStructShape], depth: int) -> Any:
        start = self._pos
        count, d = self._array(shape, depth)
        if count != len(shape.items):
            raise self._fail(ERR_ARITY, "{} expects {} elements, got {}".format(
                shape, len(shape.items), count), start)
        with self._elements_at(start):
            items = tuple(self._value(item, d) for item in shape.items)
        cls = getattr(shape, "cls", None)
        if cls is not None:
            return _construct(cls, items, {}, start)
        return items

    def _seq(self, shape: SeqShape, depth: int) -> Any:
        items = self._elements(shape, shape.item, depth)
        return shape.cls(items) if shape.cls is not None else items

    def _map(self, shape: MapShape, depth: int) -> Dict[Any, Any]:
        start = self._pos
        count, d = self._array(shape, depth)
        if count is None:
            raise self._fail(ERR_SHAPE, "null array cannot be read as {}".format(shape), start)
        out: Dict[Any, Any] = {}
        with self._elements_at(start):
            for _ in range(count):
                entry = self._pos
                pd = self._pair(shape, d)
                with self._elements_at(entry):
                    key = self._value(shape.key, pd)
                    value = self._value(shape.value, pd)
                try:
                    out[key] = value
                except TypeError:
                    raise self._fail(ERR_SHAPE, "map key {!r} is not hashable".format(key), entry)
        return out

    def _fields(self, shape: StructShape, depth: int) -> Dict[str, Any]:
        start = self._pos
        count, d = self._array(shape, depth)
        if count != len(shape.fields):
            raise self._fail(ERR_ARITY, "{} has {} fields, got {}".format(
                shape, len(shape.fields), count), start)
        declared = dict(shape.fields)
        seen: Dict[str, Any] = {}
        with self._elements_at(start):
            for _ in range(count):
                entry = self._pos
                pd = self._pair(shape, d)
                with self._elements_at(entry):
                    name = self._value(STR, pd)
                    field_shape = declared.get(name)
                    if field_shape is None:
                        raise self._fail(ERR_FIELD, "{} has no field {!r}".format(shape, name), entry)
                    if name in seen:
                        raise self._fail(ERR_FIELD, "duplicate field {!r}".format(name), entry)
                    seen[name] = self._value(field_shape, pd)
        # Same count, no unknowns, no duplicates: every field is present.
        return {name: seen[name] for name, _ in shape.fields}

    def _struct(self, shape: StructShape, depth: int) -> Any:
        start = self._pos
        fields = self._fields(shape, depth)
        if shape.cls is not None:
            return _construct(shape.cls, (), fields, start)
        return fields

    def _enum(self, shape: EnumShape, depth: int) -> Any:
        start = self._pos
        tag, payload = self._frame()
        if tag == TAG_ERROR:
            raise ReplyError(payload.decode("utf-8", "replace"), start)

        if tag != TAG_ARRAY:
            name = self._utf8(self._text_bytes(tag, payload, shape, start), start)
            vshape = self._lookup(shape, name, start)
            if vshape.kind is not VariantKind.UNIT:
                raise self._fail(ERR_SHAPE, "variant {} carries data, got a bare name".format(name), start)
            if isinstance(shape.cls, type) and issubclass(shape.cls, enum.Enum):
                return shape.cls[name]
            return Variant.unit(name)

        if depth + 1 > MAX_DEPTH:
            raise self._fail(ERR_LIMIT_DEPTH, "nesting exceeds MAX_DEPTH", start)
        if payload != 2:
            raise self._fail(ERR_ARITY, "expected [variant, payload], got {} elements".format(payload), start)
        with self._elements_at(start):
            name_at = self._pos
            name = self._value(STR, depth + 1)
            vshape = self._lookup(shape, name, name_at)
            if vshape.kind is VariantKind.UNIT:
                raise self._fail(ERR_SHAPE, "unit variant {} cannot carry a payload".format(name), name_at)
            payload_shape = vshape.payload if vshape.payload is not None else ANY
            value = self._value(payload_shape, depth + 1)
        return Variant(name, vshape.kind, value)

    def _lookup(self, shape: EnumShape, name: str, start: int) -> Any:
        vshape = shape.variant(name)
        if vshape is None:
            raise self._fail(ERR_VARIANT, "{} has no variant {!r}".format(shape, name), start)
        return vshape


def _construct(cls: Any, args: Tuple[Any, ...], kwargs: Dict[str, Any], start: int) -> Any:
    try:
        return cls(*args, **kwargs)
    except (TypeError, ValueError) as e:
        raise DecodeError(ERR_MSG, "cannot build {}: {}".format(
            getattr(cls, "__name__", cls), e), start) from e
