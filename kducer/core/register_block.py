from __future__ import annotations

"""Register-backed value objects (programs, sequences, settings).

A RegisterBlock owns a fixed-size big-endian byte buffer mirroring a holding-register
range of the KDU. Fields are declared as class attributes that know their byte offset,
so reading or assigning an attribute reads or patches the buffer in place:

    class TighteningProgram(RegisterBlock):
        SIZE = 230
        torque_target = U16(2)

    p.torque_target = 120      # patches bytes 2..3

The block never cross-validates fields; the KDU decides which values are legal.
"""

from typing import ClassVar, Dict, List, Optional

from kducer.core.errors import DecodingError
from kducer.core.modbus_codec import (
    bytes_to_regs,
    check_block,
    get_ascii,
    get_u16,
    get_u32,
    regs_to_bytes,
    set_ascii,
    set_u16,
    set_u32,
)


class _Field:
    name = "?"

    def __set_name__(self, owner, name: str) -> None:
        self.name = name

    def __get__(self, obj, owner=None):
        if obj is None:
            return self
        return self.read(obj._buf)

    def __set__(self, obj, value) -> None:
        self.write(obj._buf, value)

    def read(self, buf: bytearray):
        raise NotImplementedError

    def write(self, buf: bytearray, value) -> None:
        raise NotImplementedError


class U16(_Field):
    def __init__(self, offset: int):
        self.offset = offset

    def read(self, buf: bytearray) -> int:
        return get_u16(buf, self.offset)

    def write(self, buf: bytearray, value) -> None:
        set_u16(buf, self.offset, int(value))


class U32(_Field):
    def __init__(self, offset: int):
        self.offset = offset

    def read(self, buf: bytearray) -> int:
        return get_u32(buf, self.offset)

    def write(self, buf: bytearray, value) -> None:
        set_u32(buf, self.offset, int(value))


class BoolWord(_Field):
    """A whole word used as a flag (0 / 1)."""

    def __init__(self, offset: int):
        self.offset = offset

    def read(self, buf: bytearray) -> bool:
        return get_u16(buf, self.offset) != 0

    def write(self, buf: bytearray, value) -> None:
        set_u16(buf, self.offset, 1 if value else 0)


class Bit(_Field):
    """One bit of a word; bit 0 is the least significant bit of the word."""

    def __init__(self, word_offset: int, bit: int):
        self.offset = word_offset
        self.mask = 1 << bit

    def read(self, buf: bytearray) -> bool:
        return bool(get_u16(buf, self.offset) & self.mask)

    def write(self, buf: bytearray, value) -> None:
        w = get_u16(buf, self.offset)
        w = (w | self.mask) if value else (w & ~self.mask & 0xFFFF)
        set_u16(buf, self.offset, w)


class Ascii(_Field):
    def __init__(self, offset: int, length: int):
        self.offset = offset
        self.length = length

    def read(self, buf: bytearray) -> str:
        return get_ascii(buf, self.offset, self.length)

    def write(self, buf: bytearray, value) -> None:
        set_ascii(buf, self.offset, self.length, str(value))


class RegisterBlock:
    SIZE: ClassVar[int] = 0
    DEFAULT: ClassVar[Optional[bytes]] = None

    def __init__(self, data: Optional[bytes] = None):
        if data is None:
            data = self.DEFAULT if self.DEFAULT is not None else bytes(self.SIZE)
        self._buf = bytearray(check_block(data, self.SIZE, type(self).__name__))

    @classmethod
    def fields(cls) -> List[str]:
        out: List[str] = []
        for klass in reversed(cls.__mro__):
            for k, v in vars(klass).items():
                if isinstance(v, _Field) and not k.startswith("_") and k not in out:
                    out.append(k)
        return out

    @classmethod
    def from_regs(cls, regs: List[int]):
        return cls(regs_to_bytes(regs))

    def to_regs(self) -> List[int]:
        return bytes_to_regs(bytes(self._buf))

    def to_bytes(self) -> bytes:
        return bytes(self._buf)

    def as_dict(self) -> Dict[str, object]:
        return {k: getattr(self, k) for k in self.fields()}

    def update(self, **values) -> None:
        known = set(self.fields())
        for k, v in values.items():
            if k not in known and not isinstance(getattr(type(self), k, None), property):
                raise DecodingError(f"{type(self).__name__} has no field {k!r}")
            setattr(self, k, v)

    def copy(self):
        return type(self)(self.to_bytes())

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._buf == other._buf

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_bytes().hex()})"
