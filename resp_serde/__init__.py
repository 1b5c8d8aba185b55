"""resp_serde — structured values to and from RESP frames.

Encode any value of the data model (scalars, optionals, unit, sequences,
maps, records and enum variants) into the Redis serialization protocol,
and decode it back given the shape you expect.

Quick start:
    >>> from typing import Optional
    >>> from resp_serde import encode, decode
    >>> encode({"int": 1, "seq": ["a", "b"]})
    '*2\\r\\n*2\\r\\n+int\\r\\n:1\\r\\n*2\\r\\n+seq\\r\\n*2\\r\\n+a\\r\\n+b\\r\\n'
    >>> decode(b"*1\\r\\n:5\\r\\n", Optional[int])
    5

Records come from dataclasses, and shapes can come straight from type hints:
    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class Test:
    ...     int: int
    ...     seq: list
    >>> decode(encode(Test(1, ["a", "b"])), Test)
    Test(int=1, seq=['a', 'b'])

Text that contains CR or LF is sent as a bulk string; everything else
as a simple string.  Decoders accept either form for text.
"""

from __future__ import annotations

import logging
from typing import Any, Tuple, Union

from ._constants import MAX_ARRAY_LEN, MAX_BULK_LEN, MAX_DEPTH
from ._decoder import Decoder
from ._encoder import Encoder
from ._errors import (
    ERR_ARITY,
    ERR_EOF,
    ERR_FIELD,
    ERR_FRAME,
    ERR_INTEGER,
    ERR_IO,
    ERR_LEN_NOT_KNOWN,
    ERR_LIMIT_DEPTH,
    ERR_LIMIT_SIZE,
    ERR_MSG,
    ERR_OPTION,
    ERR_OVERFLOW,
    ERR_REPLY,
    ERR_SHAPE,
    ERR_TAG,
    ERR_TRAILING,
    ERR_TRUNCATED,
    ERR_UTF8,
    ERR_VARIANT,
    DecodeError,
    EncodeError,
    ReplyError,
    RespError,
)
from ._shapes import (
    ANY,
    BOOL,
    BYTES,
    CHAR,
    F32,
    F64,
    I8,
    I16,
    I32,
    I64,
    STR,
    U8,
    U16,
    U32,
    U64,
    UNIT,
    AnyShape,
    BoolShape,
    BytesShape,
    CharShape,
    EnumShape,
    FloatShape,
    IntShape,
    LazyShape,
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
    VariantShape,
    newtype_variant,
    shape_for,
    struct_variant,
    tuple_variant,
    unit_variant,
)
from ._values import ErrorReply, Some, Variant, VariantKind

__version__ = "0.1.0"

__all__ = [
    # Public API functions
    "encode",
    "encode_bytes",
    "encode_into",
    "decode",
    "decode_prefix",
    "shape_for",
    "Encoder",
    "Decoder",
    # Values
    "Some",
    "Variant",
    "VariantKind",
    "ErrorReply",
    # Shapes
    "Shape", "AnyShape", "BoolShape", "IntShape", "FloatShape", "CharShape",
    "StrShape", "BytesShape", "UnitShape", "OptionShape", "UnitStructShape",
    "NewtypeShape", "TupleShape", "TupleStructShape", "SeqShape", "MapShape",
    "StructShape", "VariantShape", "EnumShape", "LazyShape",
    "unit_variant", "newtype_variant", "tuple_variant", "struct_variant",
    "ANY", "BOOL", "I8", "I16", "I32", "I64", "U8", "U16", "U32", "U64",
    "F32", "F64", "CHAR", "STR", "BYTES", "UNIT",
    # Limits
    "MAX_DEPTH", "MAX_BULK_LEN", "MAX_ARRAY_LEN",
    # Exceptions
    "RespError",
    "EncodeError",
    "DecodeError",
    "ReplyError",
    # Error codes
    "ERR_LEN_NOT_KNOWN", "ERR_IO", "ERR_UTF8", "ERR_MSG",
    "ERR_EOF", "ERR_TAG", "ERR_TRUNCATED", "ERR_FRAME", "ERR_INTEGER",
    "ERR_OVERFLOW", "ERR_ARITY", "ERR_OPTION", "ERR_FIELD", "ERR_SHAPE",
    "ERR_REPLY", "ERR_TRAILING", "ERR_VARIANT", "ERR_LIMIT_DEPTH",
    "ERR_LIMIT_SIZE",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# ── Encoding ──────────────────────────────────────────────────

def encode_into(out: Any, value: Any, shape: Any = ANY) -> None:
    """Append the encoding of `value` to `out` (a bytearray or binary writer).

    On failure the buffer may hold a partial encoding; discard it.
    """
    try:
        Encoder(out).encode(value, shape)
    except RespError as e:
        logger.debug("encode failed [%s]: %s", e.code, e)
        raise


def encode_bytes(value: Any, shape: Any = ANY) -> bytes:
    """Encode `value` to raw RESP bytes.

    Unlike encode(), the result may carry arbitrary binary bulk payloads.
    """
    buf = bytearray()
    encode_into(buf, value, shape)
    return bytes(buf)


def encode(value: Any, shape: Any = ANY) -> str:
    """Encode `value` to RESP and return it as text.

    `shape` is a Shape or a type hint; without one the runtime type of
    each value picks its encoding.  Raises EncodeError(ERR_UTF8) if the
    encoding is not valid UTF-8, which only happens when raw bytes are
    involved; use encode_bytes() for binary payloads.
    """
    raw = encode_bytes(value, shape)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("encoded output is not valid UTF-8 (%d bytes)", len(raw))
        raise EncodeError(ERR_UTF8, "encoded output is not valid UTF-8") from None


# ── Decoding ──────────────────────────────────────────────────

def _as_bytes(data: Union[bytes, bytearray, memoryview, str]) -> bytes:
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    raise DecodeError(ERR_MSG, "cannot decode from {}".format(type(data).__name__))


def decode_prefix(data: Union[bytes, bytearray, memoryview, str],
                  shape: Any = ANY, offset: int = 0) -> Tuple[Any, int]:
    """Decode one frame tree starting at `offset`.

    Returns (value, end) where `end` is the offset just past the frame
    tree.  Bytes after it are left alone.
    """
    buf = _as_bytes(data)
    decoder = Decoder(buf, offset)
    try:
        value = decoder.decode(shape)
    except DecodeError as e:
        logger.debug("decode failed [%s] at offset %s: %s", e.code, e.offset, e)
        raise
    return value, decoder.offset


def decode(data: Union[bytes, bytearray, memoryview, str], shape: Any = ANY) -> Any:
    """Decode exactly one frame tree of the given shape.

    `shape` is a Shape or a type hint (int, Optional[str], a dataclass,
    Dict[str, List[int]], ...).  Without one, frames decode to their
    natural Python form.  Trailing bytes raise DecodeError(ERR_TRAILING).
    """
    buf = _as_bytes(data)
    value, end = decode_prefix(buf, shape)
    total = len(buf)
    if end != total:
        logger.debug("decode left %d trailing bytes", total - end)
        raise DecodeError(ERR_TRAILING, "{} trailing bytes after the root frame".format(total - end), end)
    return value
