"""Small, pure helpers to encode/decode KDU Modbus register payloads.

Design goals:
- Pure functions (no IO, no engine dependency)
- Explicit byte/word order

Conventions in this project:
- Modbus registers are 16-bit unsigned integers (0..65535).
- A register block is handled as the big-endian byte string the KDU puts on the
  wire: register i occupies bytes [2*i, 2*i+1], high byte first.
- UINT32 values occupy 2 consecutive registers, **high word first**.

  Implementation detail:
    bytes = pack('>2H', hi, lo)
    value = unpack('>I', bytes)
"""

from __future__ import annotations

import struct
from typing import Iterable, List, Sequence

import numpy as np

from kducer.core.errors import DecodingError


def regs_to_bytes(regs: Iterable[int]) -> bytes:
    """Pack 16-bit register values into a big-endian byte block."""
    rr = [int(r) & 0xFFFF for r in regs]
    return struct.pack(f">{len(rr)}H", *rr)


def bytes_to_regs(block: bytes) -> List[int]:
    """Unpack a big-endian byte block into 16-bit register values."""
    if len(block) % 2:
        raise DecodingError(f"register block needs an even byte count, got {len(block)}")
    return [int(x) for x in np.frombuffer(bytes(block), dtype=">u2")]


def check_block(block: bytes, size: int, what: str) -> bytes:
    if block is None:
        raise DecodingError(f"{what}: missing block")
    if len(block) != size:
        raise DecodingError(f"{what}: expected {size} bytes, got {len(block)}")
    return bytes(block)


def get_u16(block: bytes, offset: int) -> int:
    return (block[offset] << 8) | block[offset + 1]


def set_u16(buf: bytearray, offset: int, val: int) -> None:
    v = int(val)
    if not (0 <= v <= 0xFFFF):
        raise DecodingError(f"value {v} does not fit in 16 bits (offset {offset})")
    buf[offset : offset + 2] = struct.pack(">H", v)


def get_u32(block: bytes, offset: int) -> int:
    """Decode a UINT32 from 2 registers (high word first)."""
    return struct.unpack(">I", bytes(block[offset : offset + 4]))[0]


def set_u32(buf: bytearray, offset: int, val: int) -> None:
    v = int(val)
    if not (0 <= v <= 0xFFFFFFFF):
        raise DecodingError(f"value {v} does not fit in 32 bits (offset {offset})")
    buf[offset : offset + 4] = struct.pack(">I", v)


def get_ascii(block: bytes, offset: int, length: int) -> str:
    """Decode an ASCII field, stripped of NUL padding; non-ASCII bytes read as '?'."""
    raw = bytes(block[offset : offset + length])
    return "".join(chr(b) if b < 0x80 else "?" for b in raw.split(b"\x00", 1)[0])


def set_ascii(buf: bytearray, offset: int, length: int, text: str) -> None:
    """Encode an ASCII field, NUL padded to `length`."""
    raw = (text or "").encode("ascii")
    if len(raw) > length:
        raise DecodingError(f"text longer than {length} chars: {text!r}")
    buf[offset : offset + length] = raw.ljust(length, b"\x00")


def words_be(block: bytes, offset: int, count: int) -> np.ndarray:
    """Return `count` big-endian words starting at byte `offset` as uint16 array."""
    return np.frombuffer(bytes(block), dtype=">u2", count=count, offset=offset).astype(np.uint16)


def pack_words_be(values: Sequence[int]) -> bytes:
    return np.asarray(values, dtype=np.uint16).astype(">u2").tobytes()
