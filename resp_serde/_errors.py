"""Error codes and the exception family shared by encoder and decoder.

Every failure crossing the public API is a RespError carrying one of the
ERR_* codes below.  EncodeError and DecodeError split the family by
direction so callers can catch one side without the other.
"""

from __future__ import annotations

from typing import Optional

# ── Encoder-side codes ───────────────────────────────────────
ERR_LEN_NOT_KNOWN: str = "ERR_LEN_NOT_KNOWN"  # sequence/map without len()
ERR_IO: str = "ERR_IO"                        # output sink write failed
ERR_UTF8: str = "ERR_UTF8"                    # text is not valid UTF-8
ERR_MSG: str = "ERR_MSG"                      # value-model level rejection

# ── Decoder-side codes ───────────────────────────────────────
ERR_EOF: str = "ERR_EOF"                      # root frame cut short
ERR_TAG: str = "ERR_TAG"                      # tag byte not one of +-:$*
ERR_TRUNCATED: str = "ERR_TRUNCATED"          # declared length > remaining, or input ends inside an array
ERR_FRAME: str = "ERR_FRAME"                  # bad header or terminator
ERR_INTEGER: str = "ERR_INTEGER"              # malformed integer digits
ERR_OVERFLOW: str = "ERR_OVERFLOW"            # integer outside target width
ERR_ARITY: str = "ERR_ARITY"                  # array count != fixed arity
ERR_OPTION: str = "ERR_OPTION"                # optional count not 0 or 1
ERR_FIELD: str = "ERR_FIELD"                  # unknown or duplicate field
ERR_SHAPE: str = "ERR_SHAPE"                  # wrong frame kind for shape
ERR_REPLY: str = "ERR_REPLY"                  # error frame in typed position
ERR_TRAILING: str = "ERR_TRAILING"            # bytes after the root frame

# ── Shared ───────────────────────────────────────────────────
ERR_VARIANT: str = "ERR_VARIANT"              # variant name not in the enum
ERR_LIMIT_DEPTH: str = "ERR_LIMIT_DEPTH"      # nesting exceeds MAX_DEPTH
ERR_LIMIT_SIZE: str = "ERR_LIMIT_SIZE"        # bulk/array length over limit


class RespError(Exception):
    """Base exception for every encode or decode failure.

    The `.code` attribute is one of the ERR_* strings above; tests and
    callers compare against it rather than against the message text.
    """

    def __init__(self, code: str, msg: str = "") -> None:
        super().__init__(msg or code)
        self.code = code


class EncodeError(RespError):
    """Raised while turning a value into frames."""


class DecodeError(RespError):
    """Raised while reading frames back into a value.

    `.offset` is the cursor position at which the problem was detected,
    or None when the failure is not tied to a position.
    """

    def __init__(self, code: str, msg: str = "", offset: Optional[int] = None) -> None:
        super().__init__(code, msg)
        self.offset = offset


class ReplyError(DecodeError):
    """An error frame (``-...``) was found where a typed value was requested."""

    def __init__(self, reply: str, offset: Optional[int] = None) -> None:
        super().__init__(ERR_REPLY, "error reply: {}".format(reply), offset)
        self.reply = reply
