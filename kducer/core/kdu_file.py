from __future__ import annotations

"""Reader for the .kdu backup files a KDU-1A (firmware v36+) saves to a USB drive.

File layout (little-endian, unlike the Modbus blocks):
    0           format version byte (>= 0x09; < 0x0b is the v37 layout)
    30..176     general settings, byte/word fields at fixed offsets
    224..       sequences, one chunk each: 16-byte barcode, [16 padding on v38+],
                program numbers, link modes, link times (N bytes each)
    224 + S*C.. programs, 224 bytes each

    layout    size    sequences (S x C bytes, N items)    programs
    v37       15072   8 x 64, 16 items                    64
    v38+      48096   24 x 128, 32 items                  200

The result maps onto the Modbus blocks, ready for Kducer.send_settings /
send_program / send_sequence.
"""

import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Union

from kducer.config.addresses import PROGRAM_BYTES, PROGRAM_MAX, PROGRAM_MAX_LEGACY
from kducer.core.controller_settings import ControllerSettings
from kducer.core.errors import DecodingError
from kducer.core.modbus_codec import get_ascii
from kducer.core.program import TighteningProgram
from kducer.core.sequence import (
    LINK_MODE_MAX,
    LINK_TIME_DEFAULT,
    LINK_TIME_MAX,
    LINK_TIME_MIN,
    SequenceOfPrograms,
)

KDU_FILE_SIZES = (15072, 48096)
MIN_FILE_VERSION = 0x09
V38_FILE_VERSION = 0x0B
LONG_PASSWORD_FILE_VERSION = 0x0D  # v41

_SEQ_BASE = 224
_PROGRAM_CHUNK = 224


@dataclass
class KduDataFile:
    version: int
    settings: ControllerSettings
    programs: Dict[int, TighteningProgram] = field(default_factory=dict)
    sequences: Dict[int, SequenceOfPrograms] = field(default_factory=dict)
    # v41+ files hold a 32-bit passcode; the settings block only has a 16-bit word
    password: int = 0

    @property
    def legacy(self) -> bool:
        return self.version < V38_FILE_VERSION


def _u16(data: bytes, offset: int) -> int:
    return struct.unpack_from("<H", data, offset)[0]


def _u32(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def _parse_settings(data: bytes) -> tuple:
    s = ControllerSettings()
    s.language = _u16(data, 30)
    password = _u16(data, 33) if data[0] < LONG_PASSWORD_FILE_VERSION else _u32(data, 33)
    s.password = password if password <= 0xFFFF else 0
    s.password_on = data[37] == 1
    s.cmd_ok_esc_reset_source = data[38]
    s.remote_program_source = data[39]
    s.remote_sequence_source = data[40]
    s.reset_mode = data[42]
    s.barcode_mode = data[43]
    s.swbx_cbs880_mode = data[44]
    s.lock_if_cn5_not_connected = data[110] == 1
    s.fast_dock05 = data[111] == 1
    s.buzzer = data[112] == 1
    s.results_format = data[113]
    s.station_name = get_ascii(data, 114, 25)
    s.calibration_reminder_mode = data[139]
    s.calibration_reminder_interval = _u32(data, 140)
    s.lock_if_usb_not_connected = data[145] == 1
    s.invert_cn3_in_stop = data[146] == 1
    s.invert_cn3_in_piece = data[147] == 1
    s.skip_screw_button = data[148] == 1
    s.show_reverse_torque_and_angle = data[149] == 1
    s.cn3_bitx_pr_seq_input_selection_mode = data[150]
    s.ktls_arm1_model = data[151] & 0x0F
    s.ktls_arm2_model = data[151] >> 4
    return s, password


def _parse_sequence(
    data: bytes, start: int, items: int, skip: int, pr_max: int, legacy: bool
) -> SequenceOfPrograms:
    barcode = get_ascii(data, start, 16)
    base = start + 16 + skip
    programs: List[int] = []
    modes: List[int] = []
    times: List[int] = []
    for i in range(items):
        pr = data[base + i]
        if pr == 0 or pr > pr_max:
            break
        mode = data[base + items + i]
        t = data[base + 2 * items + i]
        programs.append(pr)
        modes.append(mode if mode <= LINK_MODE_MAX else 0)
        times.append(t if LINK_TIME_MIN <= t <= LINK_TIME_MAX else LINK_TIME_DEFAULT)
    if not programs:
        # unused slot: the KDU shows it as a one-item sequence running program 1
        programs, modes, times = [1], [0], [LINK_TIME_DEFAULT]
    return SequenceOfPrograms(programs, modes, times, barcode=barcode, legacy=legacy)


def _parse_program(data: bytes, o: int) -> TighteningProgram:
    p = TighteningProgram(bytes(PROGRAM_BYTES))
    p.torque_target = _u16(data, o + 0)
    p.torque_max = _u16(data, o + 4)
    p.torque_min = _u16(data, o + 8)
    p.angle_target = _u16(data, o + 12)
    p.angle_max = _u16(data, o + 16)
    p.angle_min = _u16(data, o + 20)
    p.angle_start_at = _u16(data, o + 24)
    p.final_speed = _u16(data, o + 28)
    p.downshift_initial_speed = _u16(data, o + 32)
    p.downshift_threshold = _u16(data, o + 36)
    p.torque_angle_mode = data[o + 40]
    p.downshift_at_torque = data[o + 41] >= 1
    if data[o + 41] == 2:
        p.downshift_at_angle = True
    p.angle_start_at_mode = data[o + 42]
    p.ramp_on = data[o + 43] == 1
    p.run_time_on = data[o + 44] == 1
    p.min_time_on = data[o + 45] == 1
    p.max_time_on = data[o + 46] == 1
    p.ramp = _u16(data, o + 47)
    p.run_time = _u16(data, o + 51)
    p.min_time = _u16(data, o + 55)
    p.total_angle_min = _u16(data, o + 57)
    p.max_time = _u16(data, o + 59)
    p.total_angle_max = _u16(data, o + 61)
    p.max_power_phase_mode = data[o + 63]
    p.max_power_phase_time = _u16(data, o + 64)
    p.max_power_phase_angle = _u16(data, o + 68)
    p.reverse_speed = _u16(data, o + 72)
    p.max_reverse_torque = _u16(data, o + 76)
    p.pre_tightening_reverse_mode = data[o + 80]
    p.pre_tightening_reverse_time = _u16(data, o + 81)
    p.pre_tightening_reverse_angle = _u16(data, o + 85)
    p.pre_tightening_reverse_delay = _u16(data, o + 89)
    p.after_tightening_reverse_mode = data[o + 94]
    p.after_tightening_reverse_time = _u16(data, o + 95)
    p.after_tightening_reverse_angle = _u16(data, o + 99)
    p.ktls_sensor1_tolerance = data[o + 103]
    p.ktls_sensor2_tolerance = data[o + 104]
    p.ktls_sensor3_tolerance = data[o + 105]
    p.after_tightening_reverse_delay = _u16(data, o + 106)
    p.serial_print = data[o + 111] == 1
    p.substitute_torque_units = data[o + 112] >> 4
    p.use_dock05_screwdriver2 = data[o + 113] == 1
    p.barcode = get_ascii(data, o + 117, 16)
    p.socket = data[o + 133]
    p.press_ok = data[o + 137] == 1
    p.press_esc = data[o + 138] == 1
    p.lever_error = data[o + 139] == 1
    p.reverse_allowed = data[o + 140] == 1
    p.counterclockwise = data[o + 141] == 1
    p.number_of_screws = _u16(data, o + 142)
    p.description = get_ascii(data, o + 146, 30)
    p.torque_compensation_value = _u16(data, o + 176)
    p.running_torque_mode = data[o + 180]
    p.running_torque_window_start = _u16(data, o + 181)
    p.running_torque_window_end = _u16(data, o + 183)
    p.running_torque_min = _u16(data, o + 185)
    p.running_torque_max = _u16(data, o + 189)
    return p


def parse_kdu_data(data: bytes) -> KduDataFile:
    """Decode the content of a .kdu file."""
    data = bytes(data)
    if len(data) not in KDU_FILE_SIZES or data[0] < MIN_FILE_VERSION:
        raise DecodingError("not a .kdu data file from KDU-1A v36 or newer")
    legacy = data[0] < V38_FILE_VERSION
    if legacy and len(data) != KDU_FILE_SIZES[0]:
        raise DecodingError(f"v37 .kdu file must be {KDU_FILE_SIZES[0]} bytes, got {len(data)}")
    if not legacy and len(data) != KDU_FILE_SIZES[1]:
        raise DecodingError(f".kdu file must be {KDU_FILE_SIZES[1]} bytes, got {len(data)}")

    settings, password = _parse_settings(data)

    if legacy:
        n_seqs, chunk, items, skip, n_progs = 8, 64, 16, 0, PROGRAM_MAX_LEGACY
    else:
        n_seqs, chunk, items, skip, n_progs = 24, 128, 32, 16, PROGRAM_MAX

    sequences = {}
    for i in range(n_seqs):
        start = _SEQ_BASE + i * chunk
        sequences[i + 1] = _parse_sequence(data, start, items, skip, n_progs, legacy)

    first_prog = _SEQ_BASE + chunk * n_seqs
    programs: Dict[int, TighteningProgram] = {}
    for i in range(n_progs):
        o = first_prog + _PROGRAM_CHUNK * i
        # an erased slot reads 0xFFFF
        programs[i + 1] = TighteningProgram() if _u16(data, o) == 0xFFFF else _parse_program(data, o)

    return KduDataFile(
        version=data[0], settings=settings, programs=programs, sequences=sequences, password=password
    )


def read_kdu_data_file(path: Union[str, Path]) -> KduDataFile:
    """Read a .kdu file. Raises DecodingError for a file that is not one, OSError on IO failure."""
    p = Path(path)
    size = p.stat().st_size
    if size not in KDU_FILE_SIZES:
        raise DecodingError(f"{p} does not appear to be a .kdu file from KDU-1A v36 or newer ({size} bytes)")
    return parse_kdu_data(p.read_bytes())
