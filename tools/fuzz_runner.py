#!/usr/bin/env python3
# tools/fuzz_runner.py
#
# Seeded decoder-robustness fuzzing.
#
# Generates two fuzz categories:
#   A) random VALID value trees -> encode_bytes -> decode -> encode_bytes
#      (the re-encoding must be byte-identical)
#   B) mutated encodings (bit flips, truncation, splices, junk) -> decode
#      (must either succeed or raise DecodeError, nothing else)
#
# Any failure prints a minimal repro payload and exits non-zero.

import os, sys, json, base64, random
from typing import Any, Dict, Optional

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT)

from resp_serde import DecodeError, ErrorReply, decode, encode_bytes

SEED = int(os.environ.get("RESP_SEED", "4242"))
ROUNDS = int(os.environ.get("RESP_FUZZ_ROUNDS", "5000"))


class FuzzFailure(Exception):
    def __init__(self, label: str, ctx: Dict[str, Any]) -> None:
        super().__init__(label)
        self.label = label
        self.ctx = ctx


def b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

# --- generators ---

def rand_text(rng: random.Random, nmax: int) -> str:
    n = rng.randint(0, nmax)
    # Mostly printable ASCII, with the odd CR/LF and non-ASCII code point so
    # the bulk-string fallback gets exercised.
    alphabet = [chr(c) for c in range(0x20, 0x7F)] + ["\r", "\n", "é", "→", "😀"]
    return "".join(rng.choice(alphabet) for _ in range(n))

def rand_scalar(rng: random.Random) -> Any:
    r = rng.random()
    if r < 0.25:
        return rand_text(rng, 12)
    if r < 0.45:
        return rng.randint(-(2**63), 2**64 - 1)
    if r < 0.55:
        return rng.choice([0, 1, -1, 2**63 - 1, -(2**63), 2**64 - 1])
    if r < 0.65:
        return rng.random() < 0.5
    if r < 0.75:
        return rng.uniform(-1e6, 1e6)
    if r < 0.85:
        return bytes(rng.getrandbits(8) for _ in range(rng.randint(0, 16)))
    if r < 0.9:
        return ErrorReply(rand_text(rng, 10).replace("\r", "").replace("\n", ""))
    return None

def rand_tree(rng: random.Random, depth: int = 0) -> Any:
    if depth > 5 or rng.random() < 0.4:
        return rand_scalar(rng)
    if rng.random() < 0.5:
        d = {}
        for _ in range(rng.randint(0, 4)):
            d[rand_text(rng, 6)] = rand_tree(rng, depth + 1)
        return d
    return [rand_tree(rng, depth + 1) for _ in range(rng.randint(0, 4))]

def mutate(rng: random.Random, raw: bytes) -> bytes:
    if not raw:
        return bytes([rng.choice(b"+-:$*?")])
    buf = bytearray(raw)
    op = rng.randint(0, 4)
    i = rng.randrange(len(buf))
    if op == 0:
        buf[i] ^= 1 << rng.randint(0, 7)
    elif op == 1:
        del buf[i:]
    elif op == 2:
        buf[i:i] = bytes(rng.choice(b"+-:$*\r\n0123456789") for _ in range(rng.randint(1, 4)))
    elif op == 3:
        del buf[i:i + rng.randint(1, 4)]
    else:
        # Blow up a length or count so it overruns the input.
        buf[i:i] = b"99999"
    return bytes(buf)

# --- checks ---

def check_roundtrip(rng: random.Random, i: int) -> bytes:
    tree = rand_tree(rng)
    raw = encode_bytes(tree)
    try:
        again = encode_bytes(decode(raw))
    except DecodeError as e:
        raise FuzzFailure("A decode", {"round": i, "err": e.code, "input_b64": b64(raw)})
    if again != raw:
        raise FuzzFailure("A re-encode", {"round": i, "input_b64": b64(raw), "got_b64": b64(again)})
    return raw

def check_mutant(rng: random.Random, i: int, raw: bytes) -> Optional[str]:
    bad = mutate(rng, raw)
    try:
        decode(bad)
    except DecodeError as e:
        return e.code
    except Exception as e:  # anything but DecodeError is a finding
        raise FuzzFailure("B mutant", {"round": i, "exc": repr(e), "input_b64": b64(bad)})
    return None

def run(seed: int = SEED, rounds: int = ROUNDS) -> Dict[str, int]:
    """Run the fuzzer; returns a histogram of error codes seen in category B."""
    rng = random.Random(seed)
    seen: Dict[str, int] = {}
    for i in range(rounds):
        raw = check_roundtrip(rng, i)
        code = check_mutant(rng, i, raw)
        if code is not None:
            seen[code] = seen.get(code, 0) + 1
    return seen

def main() -> int:
    try:
        seen = run(SEED, ROUNDS)
    except FuzzFailure as f:
        print("FAILURE:", f.label)
        print("CTX:", json.dumps(f.ctx, ensure_ascii=False)[:4000])
        return 1
    print(f"OK: fuzz rounds={ROUNDS} seed={SEED} (no failures)")
    for code in sorted(seen):
        print(f"  {code}: {seen[code]}")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
