from __future__ import annotations

"""Tightening program: holding-register block of 230 bytes (115 words).

The block carries no program number; the number only selects where it is written
(see `kducer.config.addresses.program_reg`). Units: torque cNm, angle deg, speed rpm,
time ms.

Option word at byte 44 (bit 0 = LSB):
    0  downshift at torque        7  serial print          11 reverse allowed
    1  ramp                       8  press OK              12 counterclockwise
    2  run time                   9  press ESC             13 DOCK05 screwdriver 2
    3  min time                   10 lever error           14 downshift at angle (with bit 0)
    4  max time
"""

from typing import Dict, Tuple

from kducer.config.addresses import PROGRAM_BYTES
from kducer.core.register_block import Ascii, Bit, RegisterBlock, U16
from kducer.core.screwdriver import ScrewdriverModel

_OFF_OPTIONS = 44

# factory default program of a KDS-MT1.5
_MT15_DEFAULT = bytes.fromhex(
    "000000320000009600000000000000000000753000000000000000000000012c"
    "0000025800000000000000000800000000030000000000000000000000c80002"
    "00000001000000010000012c0000009600020000000100000001000000030002"
    "0000000100000001000000030000000000000000000000000000000000000000"
    "0000000000000001000000000000000000000000000000000000000000000000"
    "000000000000000003e800000000000000000000000000000000000000007530"
    "0000000000000000000000000000000000000000000000000000000000000000"
    "000000000000"
)
assert len(_MT15_DEFAULT) == PROGRAM_BYTES

# model prefix -> (torque target, max torque, speed)
_MODEL_DEFAULTS: Dict[str, Tuple[int, int, int]] = {
    "KDS-MT1.5": (50, 150, 300),
    "KDS-PL3": (50, 150, 300),
    "KDS-PL6": (50, 600, 300),
    "KDS-PL10": (100, 1000, 300),
    "KDS-PL15": (100, 1500, 300),
    "KDS-PL20": (200, 2000, 200),
    "KDS-PL30": (300, 3000, 100),
    "KDS-PL35": (300, 3500, 100),
    "KDS-PL45": (500, 4500, 90),
    "KDS-PL50": (500, 5000, 90),
    "KDS-PL70": (700, 7000, 50),
}


def _model_defaults(name: str) -> Tuple[int, int, int]:
    key = (name or "").strip().upper()
    if key in _MODEL_DEFAULTS:
        return _MODEL_DEFAULTS[key]
    # e.g. "KDS-PL20S" -> PL20, "KDS-PL30ANG" -> PL30
    for prefix in sorted(_MODEL_DEFAULTS, key=len, reverse=True):
        if key.startswith(prefix):
            return _MODEL_DEFAULTS[prefix]
    return _MODEL_DEFAULTS["KDS-MT1.5"]


class TighteningProgram(RegisterBlock):
    SIZE = PROGRAM_BYTES
    DEFAULT = _MT15_DEFAULT

    torque_target = U16(2)
    torque_max = U16(6)
    torque_min = U16(10)
    angle_target = U16(14)
    angle_max = U16(18)
    angle_min = U16(22)
    angle_start_at = U16(26)
    final_speed = U16(30)
    downshift_initial_speed = U16(34)
    downshift_threshold = U16(38)
    torque_angle_mode = U16(40)
    angle_start_at_mode = U16(42)
    ramp = U16(48)
    run_time = U16(52)
    min_time = U16(56)
    max_time = U16(60)
    max_power_phase_mode = U16(62)
    max_power_phase_time = U16(66)
    max_power_phase_angle = U16(70)
    reverse_speed = U16(74)
    max_reverse_torque = U16(78)
    pre_tightening_reverse_mode = U16(80)
    pre_tightening_reverse_time = U16(84)
    pre_tightening_reverse_angle = U16(88)
    pre_tightening_reverse_delay = U16(92)
    after_tightening_reverse_mode = U16(94)
    after_tightening_reverse_time = U16(98)
    after_tightening_reverse_angle = U16(102)
    after_tightening_reverse_delay = U16(106)
    barcode = Ascii(112, 16)
    socket = U16(130)
    number_of_screws = U16(134)
    description = Ascii(136, 30)
    torque_compensation_value = U16(168)
    running_torque_mode = U16(170)
    running_torque_window_start = U16(172)
    running_torque_window_end = U16(174)
    running_torque_min = U16(176)
    running_torque_max = U16(178)
    ktls_sensor1_tolerance = U16(180)
    ktls_sensor2_tolerance = U16(182)
    ktls_sensor3_tolerance = U16(184)
    substitute_torque_units = U16(186)
    total_angle_min = U16(188)
    total_angle_max = U16(190)

    downshift_at_torque = Bit(_OFF_OPTIONS, 0)
    ramp_on = Bit(_OFF_OPTIONS, 1)
    run_time_on = Bit(_OFF_OPTIONS, 2)
    min_time_on = Bit(_OFF_OPTIONS, 3)
    max_time_on = Bit(_OFF_OPTIONS, 4)
    serial_print = Bit(_OFF_OPTIONS, 7)
    press_ok = Bit(_OFF_OPTIONS, 8)
    press_esc = Bit(_OFF_OPTIONS, 9)
    lever_error = Bit(_OFF_OPTIONS, 10)
    reverse_allowed = Bit(_OFF_OPTIONS, 11)
    counterclockwise = Bit(_OFF_OPTIONS, 12)
    use_dock05_screwdriver2 = Bit(_OFF_OPTIONS, 13)
    _downshift_at_angle_bit = Bit(_OFF_OPTIONS, 14)

    @property
    def downshift_at_angle(self) -> bool:
        return self._downshift_at_angle_bit and self.downshift_at_torque

    @downshift_at_angle.setter
    def downshift_at_angle(self, value: bool) -> None:
        self._downshift_at_angle_bit = bool(value)
        self.downshift_at_torque = bool(value)

    @classmethod
    def default(cls, model: "str | ScrewdriverModel" = "KDS-MT1.5") -> "TighteningProgram":
        """Factory default program for a screwdriver model."""
        name = model.name if isinstance(model, ScrewdriverModel) else model
        target, max_torque, speed = _model_defaults(name)
        p = cls()
        p.torque_target = target
        p.torque_max = max_torque
        p.max_reverse_torque = max_torque
        p.final_speed = speed
        p.reverse_speed = speed
        return p


def decode_program(block: bytes) -> TighteningProgram:
    return TighteningProgram(block)


def encode_program(program: TighteningProgram) -> bytes:
    return program.to_bytes()
