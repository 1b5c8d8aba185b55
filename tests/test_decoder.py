"""Unit tests for the decoder.

Organized by feature area: shaped decoding of every model shape, the
dynamic (ANY) view of frames, entry points, and one test per failure code.
"""

from __future__ import annotations

import enum
import os
import sys
import unittest
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, NamedTuple, NewType, Optional, Set, Tuple, Union

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from resp_serde import (
    ANY,
    BOOL,
    BYTES,
    CHAR,
    F32,
    F64,
    I8,
    I64,
    STR,
    U8,
    U64,
    UNIT,
    DecodeError,
    Decoder,
    EnumShape,
    ErrorReply,
    OptionShape,
    ReplyError,
    Some,
    StructShape,
    UnitStructShape,
    Variant,
    VariantKind,
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
    ERR_REPLY,
    ERR_SHAPE,
    ERR_TAG,
    ERR_TRAILING,
    ERR_TRUNCATED,
    ERR_UTF8,
    ERR_VARIANT,
    MAX_DEPTH,
    decode,
    decode_prefix,
    newtype_variant,
    struct_variant,
    tuple_variant,
    unit_variant,
)


@dataclass
class Sample:
    int: int
    seq: List[str]


@dataclass
class Node:
    value: int
    next: Optional["Node"]


class Pair(NamedTuple):
    left: int
    right: str


class Chain(NamedTuple):
    head: int
    rest: Optional["Chain"]


class Color(enum.Enum):
    RED = 1
    GREEN = 2


UserId = NewType("UserId", int)

E = EnumShape("E", (
    unit_variant("Unit"),
    newtype_variant("Newtype", U64),
    tuple_variant("Tuple", U64, U64),
    struct_variant("Struct", [("a", U64)]),
))

RECORD_WIRE = b"*2\r\n*2\r\n+int\r\n:1\r\n*2\r\n+seq\r\n*2\r\n+a\r\n+b\r\n"


def _code(fn, *args) -> str:
    try:
        fn(*args)
    except DecodeError as e:
        return e.code
    raise AssertionError("expected DecodeError")


# ── Model shapes ──────────────────────────────────────────────

class TestShapedDecode(unittest.TestCase):

    def test_optional(self):
        self.assertIsNone(decode(b"*0\r\n", Optional[int]))
        self.assertEqual(decode(b"*1\r\n:5\r\n", Optional[int]), 5)

    def test_null_array_is_absent_optional(self):
        self.assertIsNone(decode(b"*-1\r\n", Optional[int]))

    def test_nested_optional(self):
        shape = OptionShape(OptionShape(I64))
        self.assertIsNone(decode(b"*0\r\n", shape))
        self.assertEqual(decode(b"*1\r\n*0\r\n", shape), Some(None))
        self.assertEqual(decode(b"*1\r\n*1\r\n:3\r\n", shape), 3)

    def test_unit(self):
        self.assertIsNone(decode(b"$-1\r\n", UNIT))

    def test_unit_struct(self):
        class Marker:
            pass
        self.assertIsInstance(decode(b"$-1\r\n", UnitStructShape("Marker", Marker)), Marker)
        self.assertIsNone(decode(b"$-1\r\n", UnitStructShape("Marker")))

    def test_record(self):
        self.assertEqual(decode(RECORD_WIRE, Sample), Sample(1, ["a", "b"]))

    def test_record_fields_any_order(self):
        wire = b"*2\r\n*2\r\n+seq\r\n*0\r\n*2\r\n+int\r\n:4\r\n"
        self.assertEqual(decode(wire, Sample), Sample(4, []))

    def test_record_without_class_is_dict(self):
        shape = StructShape("Sample", [("int", I64), ("seq", List[str])])
        self.assertEqual(decode(RECORD_WIRE, shape), {"int": 1, "seq": ["a", "b"]})

    def test_recursive_record(self):
        wire = (b"*2\r\n*2\r\n+value\r\n:1\r\n*2\r\n+next\r\n"
                b"*1\r\n*2\r\n*2\r\n+value\r\n:2\r\n*2\r\n+next\r\n*0\r\n")
        self.assertEqual(decode(wire, Node), Node(1, Node(2, None)))

    def test_unit_variant(self):
        self.assertEqual(decode(b"+Unit\r\n", E), Variant.unit("Unit"))

    def test_unit_variant_from_bulk(self):
        self.assertEqual(decode(b"$4\r\nUnit\r\n", E), Variant.unit("Unit"))

    def test_newtype_variant(self):
        self.assertEqual(decode(b"*2\r\n+Newtype\r\n:1\r\n", E), Variant.newtype("Newtype", 1))

    def test_tuple_variant(self):
        got = decode(b"*2\r\n+Tuple\r\n*2\r\n:1\r\n:2\r\n", E)
        self.assertEqual(got, Variant.tuple("Tuple", 1, 2))
        self.assertIs(got.kind, VariantKind.TUPLE)

    def test_struct_variant(self):
        got = decode(b"*2\r\n+Struct\r\n*1\r\n*2\r\n+a\r\n:1\r\n", E)
        self.assertEqual(got, Variant.struct("Struct", {"a": 1}))

    def test_enum_class_members(self):
        self.assertIs(decode(b"+GREEN\r\n", Color), Color.GREEN)

    def test_newtype(self):
        self.assertEqual(decode(b":9\r\n", UserId), 9)

    def test_tuple(self):
        self.assertEqual(decode(b"*2\r\n:1\r\n+a\r\n", Tuple[int, str]), (1, "a"))

    def test_tuple_struct(self):
        self.assertEqual(decode(b"*2\r\n:1\r\n+a\r\n", Pair), Pair(1, "a"))

    def test_recursive_tuple_struct(self):
        wire = b"*2\r\n:1\r\n*1\r\n*2\r\n:2\r\n*0\r\n"
        self.assertEqual(decode(wire, Chain), Chain(1, Chain(2, None)))

    def test_variadic_tuple(self):
        self.assertEqual(decode(b"*3\r\n:1\r\n:2\r\n:3\r\n", Tuple[int, ...]), (1, 2, 3))

    def test_sequences(self):
        self.assertEqual(decode(b"*2\r\n:1\r\n:2\r\n", List[int]), [1, 2])
        self.assertEqual(decode(b"*2\r\n+a\r\n+a\r\n", Set[str]), {"a"})
        self.assertEqual(decode(b"*1\r\n:7\r\n", FrozenSet[int]), frozenset({7}))

    def test_map(self):
        wire = b"*2\r\n*2\r\n+b\r\n:1\r\n*2\r\n+a\r\n:2\r\n"
        got = decode(wire, Dict[str, int])
        self.assertEqual(got, {"b": 1, "a": 2})
        self.assertEqual(list(got), ["b", "a"])

    def test_map_with_tuple_keys(self):
        wire = b"*1\r\n*2\r\n*2\r\n:1\r\n:2\r\n+x\r\n"
        self.assertEqual(decode(wire, Dict[Tuple[int, int], str]), {(1, 2): "x"})


# ── Scalars ───────────────────────────────────────────────────

class TestScalars(unittest.TestCase):

    def test_bool(self):
        self.assertIs(decode(b":1\r\n", BOOL), True)
        self.assertIs(decode(b":0\r\n", bool), False)
        self.assertIs(decode(b":7\r\n", bool), True)

    def test_integers(self):
        self.assertEqual(decode(b":-128\r\n", I8), -128)
        self.assertEqual(decode(b":18446744073709551615\r\n", U64), 2**64 - 1)
        self.assertEqual(decode(b":-9223372036854775808\r\n", I64), -(2**63))

    def test_floats(self):
        self.assertEqual(decode(b"+1.5\r\n", F64), 1.5)
        self.assertEqual(decode(b"$3\r\n2.5\r\n", float), 2.5)
        self.assertEqual(decode(b":3\r\n", F32), 3.0)
        self.assertEqual(decode(b"+inf\r\n", F64), float("inf"))

    def test_text(self):
        self.assertEqual(decode(b"+hello\r\n", STR), "hello")
        self.assertEqual(decode(b"$4\r\na\r\nb\r\n", str), "a\r\nb")
        self.assertEqual(decode("+héllo\r\n", str), "héllo")

    def test_char(self):
        self.assertEqual(decode(b"+x\r\n", CHAR), "x")
        self.assertEqual(decode("+é\r\n", CHAR), "é")

    def test_bytes(self):
        self.assertEqual(decode(b"$2\r\n\xff\x00\r\n", BYTES), b"\xff\x00")
        self.assertEqual(decode(b"+abc\r\n", bytes), b"abc")
        self.assertEqual(decode(b"$0\r\n\r\n", BYTES), b"")


# ── Dynamic view ──────────────────────────────────────────────

class TestDynamicDecode(unittest.TestCase):

    def test_frames_to_python(self):
        self.assertEqual(decode(b"+OK\r\n"), "OK")
        self.assertEqual(decode(b":-3\r\n"), -3)
        self.assertEqual(decode(b"$3\r\nfoo\r\n"), b"foo")
        self.assertIsNone(decode(b"$-1\r\n"))
        self.assertIsNone(decode(b"*-1\r\n"))
        self.assertEqual(decode(b"*2\r\n:1\r\n*0\r\n", ANY), [1, []])

    def test_error_frame_is_value(self):
        self.assertEqual(decode(b"-ERR x\r\n"), ErrorReply("ERR x"))
        self.assertEqual(decode(b"*1\r\n-WRONGTYPE\r\n"), [ErrorReply("WRONGTYPE")])


# ── Entry points ──────────────────────────────────────────────

class TestEntryPoints(unittest.TestCase):

    def test_decode_prefix_returns_end(self):
        buf = b":1\r\n+two\r\n"
        value, end = decode_prefix(buf, int)
        self.assertEqual((value, end), (1, 4))
        value, end = decode_prefix(buf, str, end)
        self.assertEqual((value, end), ("two", len(buf)))

    def test_decoder_reads_back_to_back(self):
        d = Decoder(b"*0\r\n*1\r\n:2\r\n")
        self.assertIsNone(d.decode(Optional[int]))
        self.assertEqual(d.decode(Optional[int]), 2)
        self.assertEqual(d.offset, 12)

    def test_accepts_buffer_types(self):
        for data in (b":1\r\n", bytearray(b":1\r\n"), memoryview(b":1\r\n"), ":1\r\n"):
            with self.subTest(data=type(data).__name__):
                self.assertEqual(decode(data, int), 1)

    def test_rejects_other_inputs(self):
        self.assertEqual(_code(decode, 12), ERR_MSG)

    def test_trailing_bytes(self):
        with self.assertRaises(DecodeError) as ctx:
            decode(b":1\r\n:2\r\n", int)
        self.assertEqual(ctx.exception.code, ERR_TRAILING)
        self.assertEqual(ctx.exception.offset, 4)


# ── Failures ──────────────────────────────────────────────────

class TestDecodeErrors(unittest.TestCase):

    def test_eof(self):
        self.assertEqual(_code(decode, b""), ERR_EOF)
        self.assertEqual(_code(decode, b"+OK"), ERR_EOF)
        self.assertEqual(_code(decode, b":12"), ERR_EOF)

    def test_unknown_tag(self):
        self.assertEqual(_code(decode, b"!x\r\n"), ERR_TAG)
        self.assertEqual(_code(decode, b"*1\r\n%x\r\n"), ERR_TAG)

    def test_array_count_exceeds_input(self):
        self.assertEqual(_code(decode, b"*3\r\n:1\r\n", List[int]), ERR_TRUNCATED)

    def test_array_missing_elements(self):
        for wire, shape in (
            (b"*2\r\n$3\r\nabc\r\n", ANY),
            (b"*2\r\n*1\r\n:1\r\n", ANY),
            (b"*2\r\n:1\r\n:2", List[int]),
            (b"*2\r\n:100\r\n", Pair),
            (b"*2\r\n*2\r\n+a\r\n:1\r\n", Dict[str, int]),
            (b"*2\r\n*2\r\n+int\r\n:1\r\n", Sample),
            (b"*2\r\n+Newtype\r\n", E),
        ):
            with self.subTest(wire=wire):
                with self.assertRaises(DecodeError) as ctx:
                    decode(wire, shape)
                self.assertEqual(ctx.exception.code, ERR_TRUNCATED)
                self.assertEqual(ctx.exception.offset, 0)

    def test_array_missing_elements_reports_innermost_array(self):
        with self.assertRaises(DecodeError) as ctx:
            decode(b"*1\r\n*1\r\n:12")
        self.assertEqual(ctx.exception.code, ERR_TRUNCATED)
        self.assertEqual(ctx.exception.offset, 4)

    def test_unsupported_hint_is_decode_error(self):
        with self.assertRaises(DecodeError) as ctx:
            decode(b":1\r\n", Union[int, str])
        self.assertEqual(ctx.exception.code, ERR_MSG)

    def test_bulk_length_exceeds_input(self):
        self.assertEqual(_code(decode, b"$10\r\nabc\r\n", BYTES), ERR_TRUNCATED)

    def test_bad_frames(self):
        for wire in (
            b"$3\r\nfooXY",      # bulk not terminated by CRLF
            b"$-2\r\n",          # negative length
            b"$x\r\n",           # non-numeric length
            b"*\r\n",            # empty count
            b"+a\nb\r\n",        # bare LF inside a line
        ):
            with self.subTest(wire=wire):
                self.assertEqual(_code(decode, wire), ERR_FRAME)

    def test_malformed_integer(self):
        for wire in (b":\r\n", b":12a\r\n", b":+1\r\n", b": 1\r\n", b":1.5\r\n"):
            with self.subTest(wire=wire):
                self.assertEqual(_code(decode, wire, int), ERR_INTEGER)

    def test_overflow(self):
        self.assertEqual(_code(decode, b":128\r\n", I8), ERR_OVERFLOW)
        self.assertEqual(_code(decode, b":-1\r\n", U8), ERR_OVERFLOW)
        self.assertEqual(_code(decode, b":9223372036854775808\r\n", I64), ERR_OVERFLOW)
        self.assertEqual(_code(decode, b":" + b"9" * 40 + b"\r\n"), ERR_OVERFLOW)

    def test_invalid_utf8(self):
        self.assertEqual(_code(decode, b"+\xff\r\n", str), ERR_UTF8)
        self.assertEqual(_code(decode, b"$1\r\n\xff\r\n", str), ERR_UTF8)
        self.assertEqual(_code(decode, b"+\xc3\r\n"), ERR_UTF8)

    def test_unknown_variant(self):
        self.assertEqual(_code(decode, b"+Nope\r\n", E), ERR_VARIANT)
        self.assertEqual(_code(decode, b"*2\r\n+Nope\r\n:1\r\n", E), ERR_VARIANT)
        self.assertEqual(_code(decode, b"+BLUE\r\n", Color), ERR_VARIANT)

    def test_variant_form_mismatch(self):
        # A data-carrying variant sent as a bare name, and the reverse.
        self.assertEqual(_code(decode, b"+Newtype\r\n", E), ERR_SHAPE)
        self.assertEqual(_code(decode, b"*2\r\n+Unit\r\n:1\r\n", E), ERR_SHAPE)

    def test_arity(self):
        self.assertEqual(_code(decode, b"*1\r\n:1\r\n", Tuple[int, int]), ERR_ARITY)
        self.assertEqual(_code(decode, b"*3\r\n+Tuple\r\n:1\r\n:2\r\n", E), ERR_ARITY)
        self.assertEqual(_code(decode, b"*1\r\n*3\r\n+a\r\n:1\r\n:2\r\n", Dict[str, int]), ERR_ARITY)
        self.assertEqual(_code(decode, b"*1\r\n*2\r\n+int\r\n:1\r\n", Sample), ERR_ARITY)

    def test_option_count(self):
        self.assertEqual(_code(decode, b"*2\r\n:1\r\n:2\r\n", Optional[int]), ERR_OPTION)

    def test_unknown_field(self):
        wire = b"*2\r\n*2\r\n+int\r\n:1\r\n*2\r\n+nope\r\n*0\r\n"
        self.assertEqual(_code(decode, wire, Sample), ERR_FIELD)

    def test_duplicate_field(self):
        wire = b"*2\r\n*2\r\n+int\r\n:1\r\n*2\r\n+int\r\n:2\r\n"
        self.assertEqual(_code(decode, wire, Sample), ERR_FIELD)

    def test_wrong_frame_kind(self):
        for wire, shape in (
            (b"+1\r\n", int),
            (b":1\r\n", str),
            (b"*0\r\n", STR),
            (b":1\r\n", List[int]),
            (b"+x\r\n", Optional[int]),
            (b":1\r\n", UNIT),
            (b"$0\r\n\r\n", UNIT),
            (b"+ab\r\n", CHAR),
            (b"+abc\r\n", F64),
            (b"*-1\r\n", List[int]),
            (b"$-1\r\n", STR),
        ):
            with self.subTest(wire=wire, shape=str(shape)):
                self.assertEqual(_code(decode, wire, shape), ERR_SHAPE)

    def test_error_reply_in_typed_position(self):
        with self.assertRaises(ReplyError) as ctx:
            decode(b"-WRONGTYPE bad\r\n", int)
        self.assertEqual(ctx.exception.code, ERR_REPLY)
        self.assertEqual(ctx.exception.reply, "WRONGTYPE bad")
        self.assertEqual(_code(decode, b"-ERR\r\n", List[int]), ERR_REPLY)
        self.assertEqual(_code(decode, b"-ERR\r\n", E), ERR_REPLY)

    def test_depth_limit(self):
        wire = b"*1\r\n" * (MAX_DEPTH + 1) + b"*0\r\n"
        self.assertEqual(_code(decode, wire), ERR_LIMIT_DEPTH)

    def test_depth_limit_typed(self):
        shape: object = List[int]
        for _ in range(MAX_DEPTH):
            shape = List[shape]  # type: ignore[valid-type]
        wire = b"*1\r\n" * MAX_DEPTH + b"*0\r\n"
        self.assertEqual(_code(decode, wire, shape), ERR_LIMIT_DEPTH)

    def test_size_limits(self):
        self.assertEqual(_code(decode, b"$999999999999\r\n"), ERR_LIMIT_SIZE)
        self.assertEqual(_code(decode, b"*99999999999\r\n"), ERR_LIMIT_SIZE)
        self.assertEqual(_code(decode, b"$" + b"1" * 30 + b"\r\n"), ERR_LIMIT_SIZE)

    def test_error_offset(self):
        with self.assertRaises(DecodeError) as ctx:
            decode(b"*2\r\n:1\r\n+x\r\n", List[int])
        self.assertEqual(ctx.exception.offset, 8)

    def test_input_not_mutated(self):
        buf = bytearray(b"*1\r\n:1\r\n")
        decode(buf, List[int])
        self.assertEqual(buf, bytearray(b"*1\r\n:1\r\n"))


if __name__ == "__main__":
    unittest.main()
