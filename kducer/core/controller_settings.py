from __future__ import annotations

"""KDU general settings block (92 bytes = 46 holding registers).

Older firmware exposes a shorter block (78/86/88 bytes); it is accepted on decode
and zero-extended, the missing tail fields then read as 0.
"""

from kducer.config.addresses import SETTINGS_BYTES
from kducer.core.errors import DecodingError
from kducer.core.register_block import Ascii, Bit, BoolWord, RegisterBlock, U16, U32

_OFF_MISC = 84
LEGACY_SETTINGS_SIZES = (78, 86, 88)

_FACTORY_DEFAULT = bytes.fromhex(
    "0000000000000000000200000000000000000000000100010000000000000000"
    "0001000100000000000000000000000000000000544f52515545205354415449"
    "4f4e00000000000000000000000000020007a1200000000000000000"
)
assert len(_FACTORY_DEFAULT) == SETTINGS_BYTES


class ControllerSettings(RegisterBlock):
    SIZE = SETTINGS_BYTES
    DEFAULT = _FACTORY_DEFAULT

    language = U16(0)
    password = U16(4)
    password_on = BoolWord(6)
    cmd_ok_esc_reset_source = U16(8)
    remote_program_source = U16(10)
    remote_sequence_source = U16(12)
    reset_mode = U16(14)
    barcode_mode = U16(16)
    swbx_cbs880_mode = U16(18)
    current_sequence = U16(20)
    current_program = U16(22)
    torque_units = U16(24)
    sequence_mode = BoolWord(26)
    fast_dock05 = BoolWord(30)
    buzzer = BoolWord(32)
    results_format = U16(34)
    station_name = Ascii(52, 25)
    calibration_reminder_mode = U16(78)
    calibration_reminder_interval = U32(80)
    cn3_bitx_pr_seq_input_selection_mode = U16(86)
    ktls_arm1_model = U16(88)
    ktls_arm2_model = U16(90)

    lock_if_cn5_not_connected = Bit(_OFF_MISC, 0)
    lock_if_usb_not_connected = Bit(_OFF_MISC, 1)
    invert_cn3_in_stop = Bit(_OFF_MISC, 2)
    invert_cn3_in_piece = Bit(_OFF_MISC, 3)
    skip_screw_button = Bit(_OFF_MISC, 4)
    show_reverse_torque_and_angle = Bit(_OFF_MISC, 5)

    @classmethod
    def from_legacy(cls, block: bytes) -> "ControllerSettings":
        if block is None or len(block) not in LEGACY_SETTINGS_SIZES + (SETTINGS_BYTES,):
            got = None if block is None else len(block)
            raise DecodingError(f"settings block must be one of 78/86/88/92 bytes, got {got}")
        return cls(bytes(block).ljust(SETTINGS_BYTES, b"\x00"))


def decode_settings(block: bytes) -> ControllerSettings:
    return ControllerSettings(block)


def encode_settings(settings: ControllerSettings) -> bytes:
    return settings.to_bytes()
