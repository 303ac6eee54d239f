from __future__ import annotations

"""Tightening result decoded from input registers 295..361 (134 bytes).

Byte layout (big-endian words unless noted):
    0..15   barcode (ASCII, NUL padded)
    16      OK flag (1 = OK)
    18      program number
    20      screwdriver model id
    22      screwdriver serial number (UINT32, high word first)
    30      target torque (cNm)
    32      target speed (rpm)
    34      screw time (ms)
    36      screws OK count
    38      target screw count
    40      sequence number (0 = none, 1 = A ...)
    42      program index in sequence
    44      programs in sequence
    46      torque (cNm)
    48      peak torque (cNm)
    50      running torque mode
    52      running (prevailing) torque (cNm)
    54      total torque (cNm)
    56      angle (deg)
    58      angle start at mode
    60      angle start at torque target
    62      angle start at angle value
    64      downshift mode
    66      downshift speed
    68      downshift threshold (cNm)
    70      result code
    72..101 program description (ASCII)
    102     timestamp: YY MM DD hh mm ss (6 words)
    114     torque/angle mode (0 = torque target)
    116     target angle
"""

import struct
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from kducer.config.addresses import GRAPH_SAMPLES, RESULT_BYTES
from kducer.core.graph import TorqueAngleTimeGraph, graph_csv_columns
from kducer.core.modbus_codec import check_block, get_ascii, get_u16, get_u32
from kducer.core.screwdriver import model_by_id

_OFF_TIMESTAMP = 102

RESULT_NOTES: List[str] = [
    "", "", "", "", "", "", "", "", "", "", "", "", "",
    "Screw OK", "Angle OK", "Reverse Torque OK", "Run Time OK",
    "Under Min Time", "Over Max Time", "", "", "Error PV Torque", "Reverse Torque Error",
    "Auto Reverse Incomplete", "Angle Not Reached", "Release Lever Error",
    "Err Overcurrent Protection", "Err Overcurrent Protection", "Err Overcurrent Protection",
    "Err Temperature Protection", "Under Min Torque", "Over Max Torque", "",
    "Under Min Angle", "Over Max Angle", "Pre-Reverse Incomplete", "",
    "Error KDS connection", "Running Torque Incomplete", "Running Torque Under Min",
    "Running Torque Over Max",
]

# cNm -> unit
TORQUE_UNIT_FACTORS = {
    "mNm": 10.0, "Nmm": 10.0, "N-mm": 10.0,
    "Nm": 0.01, "N-m": 0.01,
    "lbf-in": 0.0885074545, "lbs-in": 0.0885074545,
    "lbf-ft": 0.0073756212, "lbs-ft": 0.0073756212,
    "kgf-cm": 0.1019716213, "kg-cm": 0.1019716213,
    "ozf-in": 1.4161192894, "oz-in": 1.4161192894,
}


def convert_torque(value_cnm: float, units: str = "cNm") -> float:
    return float(value_cnm) * TORQUE_UNIT_FACTORS.get(units, 1.0)


def format_torque(value_cnm: float, units: str = "cNm") -> str:
    """Convert and format: >100 -> max 1 decimal, >10 -> max 2, else max 3."""
    v = convert_torque(value_cnm, units)
    if v > 100:
        digits = 1
    elif v > 10:
        digits = 2
    else:
        digits = 3
    s = f"{v:.{digits}f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


CSV_COLUMNS: List[str] = [
    "Barcode", "Result", "Program nr", "Program descr", "Model", "S/N", "Target",
    "Target units", "Duration", "Final Speed", "OK screw count", "Screw qty in program",
    "Sequence", "Seq. program index", "Seq. program qty", "Torque result", "Peak torque",
    "Running Torque Mode", "Running Torque", "Total torque", "Angle result",
    "Angle start at mode", "Angle start at torque target", "Angle start at angle value",
    "Downshift mode", "Downshift speed", "Downshift threshold", "Torque units",
    "Angle units", "Speed units", "Time units", "Date-Time", "Notes",
    "Torque chart units", "Torque chart x-interval ms",
    "First torque chart point", *([""] * (GRAPH_SAMPLES - 2)), "Last torque chart point",
    "Angle chart x-interval ms",
    "First angle chart point", *([""] * (GRAPH_SAMPLES - 2)), "Last angle chart point",
]


def csv_header() -> str:
    return ",".join(CSV_COLUMNS)


def local_timestamp_bytes(now: Optional[datetime] = None) -> bytes:
    t = now or datetime.now()
    return struct.pack(">6H", t.year % 100, t.month, t.day, t.hour, t.minute, t.second)


@dataclass(frozen=True)
class TighteningResult:
    raw: bytes
    graph: Optional[TorqueAngleTimeGraph] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", check_block(self.raw, RESULT_BYTES, "tightening result"))

    @classmethod
    def from_block(
        cls,
        block: bytes,
        graph: Optional[TorqueAngleTimeGraph] = None,
        replace_timestamp: bool = False,
        now: Optional[datetime] = None,
    ) -> "TighteningResult":
        """Decode a 134-byte result block.

        With `replace_timestamp` the KDU timestamp is overwritten with the local time
        (`now`, default current time); useful when the KDU clock is not kept in sync.
        """
        b = bytearray(check_block(block, RESULT_BYTES, "tightening result"))
        if replace_timestamp:
            b[_OFF_TIMESTAMP : _OFF_TIMESTAMP + 12] = local_timestamp_bytes(now)
        return cls(bytes(b), graph)

    def _w(self, off: int) -> int:
        return get_u16(self.raw, off)

    # ---- identity ----
    @property
    def barcode(self) -> str:
        return get_ascii(self.raw, 0, 16)

    @property
    def program_description(self) -> str:
        return get_ascii(self.raw, 72, 30)

    @property
    def program_number(self) -> int:
        return self._w(18)

    @property
    def screwdriver_model_id(self) -> int:
        return self._w(20)

    @property
    def screwdriver_model(self) -> str:
        return model_by_id(self.screwdriver_model_id).name

    @property
    def screwdriver_serial(self) -> int:
        return get_u32(self.raw, 22)

    # ---- outcome ----
    @property
    def is_ok(self) -> bool:
        return self._w(16) == 1

    @property
    def result_code(self) -> int:
        return self._w(70)

    @property
    def result_text(self) -> str:
        code = self.result_code
        return RESULT_NOTES[code] if code < len(RESULT_NOTES) else ""

    @property
    def torque(self) -> int:
        """Final torque in cNm (the clamping torque in running torque modes)."""
        return self._w(46)

    @property
    def peak_torque(self) -> int:
        return self._w(48)

    @property
    def running_torque_mode(self) -> int:
        return self._w(50)

    @property
    def running_torque(self) -> int:
        """Running (prevailing) torque in cNm, 0 unless running torque mode is active."""
        return self._w(52)

    prevailing_torque = running_torque

    @property
    def total_torque(self) -> int:
        return self._w(54)

    @property
    def angle(self) -> int:
        return self._w(56)

    @property
    def angle_start_at_mode(self) -> int:
        return self._w(58)

    @property
    def angle_start_at_torque_target(self) -> int:
        return self._w(60)

    @property
    def angle_start_at_angle_value(self) -> int:
        return self._w(62)

    @property
    def downshift_mode(self) -> int:
        return self._w(64)

    @property
    def downshift_speed(self) -> int:
        return self._w(66)

    @property
    def downshift_threshold(self) -> int:
        return self._w(68)

    # ---- program targets ----
    @property
    def target_torque(self) -> int:
        return self._w(30)

    @property
    def target_speed(self) -> int:
        return self._w(32)

    @property
    def target_angle(self) -> int:
        return self._w(116)

    @property
    def torque_angle_mode(self) -> int:
        return self._w(114)

    @property
    def screw_time_ms(self) -> int:
        return self._w(34)

    @property
    def screws_ok_count(self) -> int:
        """OK screws up to and including this one; NOK screws are not counted."""
        return self._w(36)

    @property
    def target_screws(self) -> int:
        return self._w(38)

    # ---- sequence ----
    @property
    def sequence_number(self) -> int:
        return self._w(40)

    @property
    def sequence(self) -> str:
        n = self.sequence_number
        return "-" if n == 0 else chr(64 + n)

    @property
    def program_index_in_sequence(self) -> int:
        return self._w(42)

    @property
    def programs_in_sequence(self) -> int:
        return self._w(44)

    # ---- time ----
    def _timestamp_words(self) -> List[int]:
        return [self._w(_OFF_TIMESTAMP + 2 * i) for i in range(6)]

    @property
    def timestamp_str(self) -> str:
        yy, mo, dd, hh, mi, ss = self._timestamp_words()
        return f"{2000 + yy:04d}-{mo:02d}-{dd:02d} {hh:02d}:{mi:02d}:{ss:02d}"

    @property
    def timestamp(self) -> Optional[datetime]:
        """None if the KDU reported an impossible date."""
        yy, mo, dd, hh, mi, ss = self._timestamp_words()
        try:
            return datetime(2000 + yy, mo, dd, hh, mi, ss)
        except ValueError:
            return None

    # ---- export ----
    def to_csv(self, torque_units: str = "cNm") -> str:
        """One CSV row matching csv_header(), in the KDU USB export column order."""
        u = torque_units
        seq = self.sequence_number
        if self.torque_angle_mode == 0:
            target, target_units = format_torque(self.target_torque, u), u
        else:
            target, target_units = str(self.target_angle), "deg"

        cols = [
            self.barcode.replace(",", "."),
            "OK" if self.is_ok else "NOK",
            str(self.program_number),
            self.program_description.replace(",", "."),
            self.screwdriver_model,
            str(self.screwdriver_serial),
            target,
            target_units,
            f"{self.screw_time_ms / 1000.0:g}",
            str(self.target_speed),
            str(self.screws_ok_count),
            str(self.target_screws),
            "" if seq == 0 else self.sequence,
            "" if seq == 0 else str(self.program_index_in_sequence),
            "" if seq == 0 else str(self.programs_in_sequence),
            format_torque(self.torque, u),
            format_torque(self.peak_torque, u),
            str(self.running_torque_mode),
            format_torque(self.running_torque, u),
            format_torque(self.total_torque, u),
            str(self.angle),
            str(self.angle_start_at_mode),
            str(self.angle_start_at_torque_target),
            str(self.angle_start_at_angle_value),
            str(self.downshift_mode),
            str(self.downshift_speed),
            format_torque(self.downshift_threshold, u),
            u,
            "deg",
            "rpm",
            "sec",
            self.timestamp_str,
            self.result_text,
            # graph torque is reported in mNm by the small screwdrivers
            "mNm" if self.screwdriver_model_id < 5 else "cNm",
        ]
        cols.extend(graph_csv_columns(self.graph))
        return ",".join(cols)

    def summary(self) -> dict:
        return {
            "program": self.program_number,
            "ok": self.is_ok,
            "torque": self.torque,
            "angle": self.angle,
            "result": self.result_text,
            "ts": self.timestamp_str,
        }


def decode_result(
    block: bytes,
    graph: Optional[TorqueAngleTimeGraph] = None,
    replace_timestamp: bool = False,
) -> TighteningResult:
    return TighteningResult.from_block(block, graph=graph, replace_timestamp=replace_timestamp)
