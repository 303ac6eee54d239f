"""Tests for the KDU general settings block."""

import pytest

from kducer.core.controller_settings import ControllerSettings, decode_settings, encode_settings
from kducer.core.errors import DecodingError


class TestControllerSettings:
    """Factory defaults, field layout and legacy sizes."""

    def test_factory_defaults(self):
        s = ControllerSettings()
        assert s.cmd_ok_esc_reset_source == 2
        assert s.current_sequence == 1
        assert s.current_program == 1
        assert s.buzzer is True
        assert s.results_format == 1
        assert s.station_name == "TORQUE STATION"
        assert s.calibration_reminder_mode == 2
        assert s.calibration_reminder_interval == 500000
        assert s.password_on is False

    def test_fields_round_trip(self):
        s = ControllerSettings()
        s.station_name = "LINE 3"
        s.torque_units = 4
        s.calibration_reminder_interval = 70000
        s.skip_screw_button = True
        s.ktls_arm2_model = 2
        back = decode_settings(encode_settings(s))
        assert back == s
        assert back.station_name == "LINE 3"
        assert back.calibration_reminder_interval == 70000
        assert back.skip_screw_button is True
        assert back.lock_if_usb_not_connected is False
        raw = back.to_bytes()
        assert raw[84:86] == b"\x00\x10"
        assert raw[88:92] == b"\x00\x00\x00\x02"

    @pytest.mark.parametrize("size", [78, 86, 88])
    def test_legacy_block_is_zero_extended(self, size):
        raw = ControllerSettings().to_bytes()[:size]
        s = ControllerSettings.from_legacy(raw)
        assert s.station_name == "TORQUE STATION"
        assert s.ktls_arm2_model == 0
        assert len(s.to_bytes()) == 92

    def test_legacy_bad_size(self):
        with pytest.raises(DecodingError):
            ControllerSettings.from_legacy(bytes(80))

    def test_station_name_too_long(self):
        with pytest.raises(DecodingError):
            ControllerSettings().station_name = "x" * 26
