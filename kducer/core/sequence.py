from __future__ import annotations

"""Sequence of tightening programs (sequence A..X on the KDU).

Holding-register layout, one byte per item:
    0..15               barcode (ASCII, ',' is not allowed and becomes '.')
    16 .. 16+N-1        program numbers
    16+N .. 16+2N-1     link modes (0..2)
    16+2N .. 16+3N-1    link times (3..100, x0.1 s)

N = 32 (112 bytes, KDU firmware v38 and later) or 16 (64 bytes, legacy layout).
"""

from typing import List, Optional, Sequence

from kducer.config.addresses import (
    PROGRAM_MAX,
    PROGRAM_MAX_LEGACY,
    SEQUENCE_BYTES,
    SEQUENCE_BYTES_LEGACY,
)
from kducer.core.errors import DecodingError
from kducer.core.modbus_codec import bytes_to_regs, get_ascii, regs_to_bytes

_BARCODE_LEN = 16
LINK_MODE_MAX = 2
LINK_TIME_MIN = 3
LINK_TIME_MAX = 100
LINK_TIME_DEFAULT = 3


def _items_for(legacy: bool) -> int:
    return 16 if legacy else 32


class SequenceOfPrograms:
    def __init__(
        self,
        programs: Sequence[int],
        link_modes: Optional[Sequence[int]] = None,
        link_times: Optional[Sequence[int]] = None,
        barcode: str = "",
        legacy: bool = False,
    ):
        n_max = _items_for(legacy)
        pr_max = PROGRAM_MAX_LEGACY if legacy else PROGRAM_MAX

        prs = [int(p) for p in (programs or [])]
        if not prs:
            raise ValueError("list of programs is empty")
        if prs[0] == 0:
            raise ValueError("first program number must be nonzero")
        if len(prs) > n_max:
            raise ValueError(f"too many sequence items: {len(prs)} > {n_max}")
        for p in prs:
            if not (0 <= p <= pr_max):
                raise ValueError(f"invalid program number {p}, max is {pr_max}")

        modes = [int(m) for m in link_modes] if link_modes else [0] * len(prs)
        if len(modes) != len(prs):
            raise ValueError("number of programs not equal to number of link modes")
        for m in modes:
            if not (0 <= m <= LINK_MODE_MAX):
                raise ValueError(f"invalid link mode {m}, max is {LINK_MODE_MAX}")

        times = [LINK_TIME_DEFAULT] * len(prs)
        for i, t in enumerate(link_times or []):
            if i >= len(prs):
                raise ValueError(f"too many link times: {len(link_times)} > {len(prs)}")
            times[i] = min(LINK_TIME_MAX, max(LINK_TIME_MIN, int(t)))

        bc = (barcode or "")
        if len(bc) > _BARCODE_LEN:
            raise ValueError(f"max sequence barcode length is {_BARCODE_LEN}")
        if not bc.isascii():
            raise ValueError(f"sequence barcode must be ASCII: {bc!r}")

        self.programs: List[int] = prs
        self.link_modes: List[int] = modes
        self.link_times: List[int] = times
        self.barcode: str = bc.replace(",", ".")
        self.legacy = bool(legacy)

    @classmethod
    def from_bytes(cls, block: bytes) -> "SequenceOfPrograms":
        """Decode a 112-byte (or legacy 64-byte) block.

        Items end at the first zero program number; raw link times are kept as read.
        """
        if block is None or len(block) not in (SEQUENCE_BYTES, SEQUENCE_BYTES_LEGACY):
            got = None if block is None else len(block)
            raise DecodingError(
                f"sequence block must be {SEQUENCE_BYTES} or {SEQUENCE_BYTES_LEGACY} bytes, got {got}"
            )
        b = bytes(block)
        legacy = len(b) == SEQUENCE_BYTES_LEGACY
        n = _items_for(legacy)
        prs = list(b[16 : 16 + n])
        count = prs.index(0) if 0 in prs else n
        if count == 0:
            raise DecodingError("sequence block has no programs")

        seq = cls.__new__(cls)
        seq.programs = prs[:count]
        seq.link_modes = list(b[16 + n : 16 + n + count])
        seq.link_times = list(b[16 + 2 * n : 16 + 2 * n + count])
        seq.barcode = get_ascii(b, 0, _BARCODE_LEN).replace(",", ".")
        seq.legacy = legacy
        return seq

    @classmethod
    def from_regs(cls, regs: List[int]) -> "SequenceOfPrograms":
        return cls.from_bytes(regs_to_bytes(regs))

    @property
    def size(self) -> int:
        return SEQUENCE_BYTES_LEGACY if self.legacy else SEQUENCE_BYTES

    def to_bytes(self) -> bytes:
        n = _items_for(self.legacy)
        if len(self.programs) > n:
            raise DecodingError(f"sequence has {len(self.programs)} programs, layout holds {n}")
        out = bytearray(self.size)
        bc = self.barcode.replace(",", ".").encode("ascii")
        out[0 : len(bc)] = bc
        count = len(self.programs)
        out[16 : 16 + count] = bytes(self.programs)
        out[16 + n : 16 + n + count] = bytes(self.link_modes[:count])
        out[16 + 2 * n : 16 + 3 * n] = bytes([LINK_TIME_DEFAULT] * n)
        out[16 + 2 * n : 16 + 2 * n + count] = bytes(self.link_times[:count])
        return bytes(out)

    def to_regs(self) -> List[int]:
        return bytes_to_regs(self.to_bytes())

    def __len__(self) -> int:
        return len(self.programs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SequenceOfPrograms):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __repr__(self) -> str:
        return (
            f"SequenceOfPrograms(programs={self.programs}, link_modes={self.link_modes}, "
            f"link_times={self.link_times}, barcode={self.barcode!r}, legacy={self.legacy})"
        )


def decode_sequence(block: bytes) -> SequenceOfPrograms:
    return SequenceOfPrograms.from_bytes(block)


def encode_sequence(sequence: SequenceOfPrograms) -> bytes:
    return sequence.to_bytes()
