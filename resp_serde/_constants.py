"""RESP wire constants — frame tags, terminators, fixed frames, and limits.

Only the RESP2 subset is used: simple string, error, integer, bulk string
and array.  Every frame starts with a single tag byte and every header line
ends in CRLF.
"""

from __future__ import annotations

# ── Frame tags (single byte each) ────────────────────────────
TAG_SIMPLE: int = ord("+")
TAG_ERROR: int = ord("-")
TAG_INTEGER: int = ord(":")
TAG_BULK: int = ord("$")
TAG_ARRAY: int = ord("*")

FRAME_TAGS = frozenset((TAG_SIMPLE, TAG_ERROR, TAG_INTEGER, TAG_BULK, TAG_ARRAY))

CRLF = b"\r\n"

# ── Fixed frames ─────────────────────────────────────────────
# Unit has no payload of its own, so it borrows the RESP "nil" bulk string.
# The null array never comes out of the encoder; decoders treat it as an
# absent optional so replies from real servers still read cleanly.
NULL_BULK = b"$-1\r\n"
NULL_ARRAY = b"*-1\r\n"
EMPTY_ARRAY = b"*0\r\n"

# The shortest possible frame is three bytes ("+\r\n", ":0\r\n" is four).
# An array header that promises more elements than could possibly fit in
# the remaining input is rejected before any element is read.
MIN_FRAME_LEN: int = 3

# ── Integer ranges ───────────────────────────────────────────
# Python ints are unbounded, so widths are enforced explicitly.
INT64_MIN: int = -(2**63)
INT64_MAX: int = 2**63 - 1
UINT64_MAX: int = 2**64 - 1

# ── Safety limits ────────────────────────────────────────────
# MAX_DEPTH bounds recursion in both directions.  Each nesting level costs
# a couple of interpreter frames, so this stays well clear of the default
# recursion limit.
MAX_DEPTH: int = 128
MAX_BULK_LEN: int = 512 * 1024 * 1024   # matches Redis proto-max-bulk-len
MAX_ARRAY_LEN: int = 2**32 - 1
