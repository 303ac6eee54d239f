"""Tests for the .kdu USB backup file reader."""

import struct

import pytest

from kducer import ControllerSettings, DecodingError, TighteningProgram, parse_kdu_data, read_kdu_data_file

V38_SIZE = 48096
V37_SIZE = 15072
V38_FIRST_PROGRAM = 224 + 24 * 128
V37_FIRST_PROGRAM = 224 + 8 * 64


def _blank(version, size):
    data = bytearray(size)
    data[0] = version
    return data


def _text(data, offset, text):
    raw = text.encode("ascii")
    data[offset : offset + len(raw)] = raw


@pytest.fixture
def v38():
    d = _blank(0x0C, V38_SIZE)
    # settings
    struct.pack_into("<H", d, 30, 2)
    struct.pack_into("<H", d, 33, 1234)
    d[37] = 1
    d[39] = 1
    d[43] = 2
    d[112] = 1
    _text(d, 114, "LINE 3")
    d[139] = 1
    struct.pack_into("<I", d, 140, 500000)
    d[146] = 1
    d[151] = 0x21
    # sequence 1: barcode, 16 bytes padding, then programs / modes / times
    _text(d, 224, "SEQ,A")
    base = 224 + 16 + 16
    d[base : base + 4] = bytes([5, 6, 7, 0])
    d[base + 32 : base + 35] = bytes([0, 1, 9])
    d[base + 64 : base + 67] = bytes([10, 2, 101])
    # sequence 2 starts with a program number out of range
    d[224 + 128 + 32] = 201
    # program 1
    o = V38_FIRST_PROGRAM
    struct.pack_into("<H", d, o + 0, 120)
    struct.pack_into("<H", d, o + 4, 300)
    struct.pack_into("<H", d, o + 28, 650)
    d[o + 40] = 1
    d[o + 41] = 2
    struct.pack_into("<H", d, o + 47, 400)
    d[o + 112] = 0x30
    _text(d, o + 117, "BC-17")
    d[o + 141] = 1
    struct.pack_into("<H", d, o + 142, 4)
    _text(d, o + 146, "COVER M2.5")
    struct.pack_into("<H", d, o + 189, 55)
    # program 2 erased
    struct.pack_into("<H", d, o + 224, 0xFFFF)
    return d


class TestKduFileV38:
    def test_counts(self, v38):
        f = parse_kdu_data(v38)
        assert f.version == 0x0C
        assert f.legacy is False
        assert sorted(f.programs) == list(range(1, 201))
        assert sorted(f.sequences) == list(range(1, 25))

    def test_settings(self, v38):
        s = parse_kdu_data(v38).settings
        assert isinstance(s, ControllerSettings)
        assert s.language == 2
        assert s.password == 1234
        assert s.password_on is True
        assert s.remote_program_source == 1
        assert s.barcode_mode == 2
        assert s.buzzer is True
        assert s.station_name == "LINE 3"
        assert s.calibration_reminder_mode == 1
        assert s.calibration_reminder_interval == 500000
        assert s.invert_cn3_in_stop is True
        assert s.invert_cn3_in_piece is False
        assert s.ktls_arm1_model == 1
        assert s.ktls_arm2_model == 2

    def test_sequence_items_and_clamping(self, v38):
        seq = parse_kdu_data(v38).sequences[1]
        assert seq.barcode == "SEQ.A"
        assert seq.programs == [5, 6, 7]
        assert seq.link_modes == [0, 1, 0]
        assert seq.link_times == [10, 3, 3]
        assert seq.legacy is False

    def test_unused_sequence_slot(self, v38):
        seq = parse_kdu_data(v38).sequences[2]
        assert seq.programs == [1]

    def test_program_fields(self, v38):
        p = parse_kdu_data(v38).programs[1]
        assert p.torque_target == 120
        assert p.torque_max == 300
        assert p.final_speed == 650
        assert p.torque_angle_mode == 1
        assert p.downshift_at_torque is True
        assert p.downshift_at_angle is True
        assert p.ramp == 400
        assert p.substitute_torque_units == 3
        assert p.barcode == "BC-17"
        assert p.counterclockwise is True
        assert p.number_of_screws == 4
        assert p.description == "COVER M2.5"
        assert p.running_torque_max == 55
        assert len(p.to_bytes()) == 230

    def test_erased_program_is_factory_default(self, v38):
        assert parse_kdu_data(v38).programs[2] == TighteningProgram()

    def test_long_password(self, v38):
        v38[0] = 0x0D
        struct.pack_into("<I", v38, 33, 70000)
        f = parse_kdu_data(v38)
        assert f.password == 70000
        assert f.settings.password == 0
        struct.pack_into("<I", v38, 33, 4321)
        assert parse_kdu_data(v38).settings.password == 4321

    def test_non_ascii_text_is_replaced(self, v38):
        v38[114:119] = b"CAF\xc9\x00"
        assert parse_kdu_data(v38).settings.station_name == "CAF?"


class TestKduFileV37:
    def test_legacy_layout(self):
        d = _blank(0x0A, V37_SIZE)
        base = 224 + 16
        d[base : base + 3] = bytes([3, 64, 65])
        d[base + 16 : base + 18] = bytes([2, 1])
        o = V37_FIRST_PROGRAM + 63 * 224
        struct.pack_into("<H", d, o, 77)
        f = parse_kdu_data(d)
        assert f.legacy is True
        assert sorted(f.programs) == list(range(1, 65))
        assert sorted(f.sequences) == list(range(1, 9))
        seq = f.sequences[1]
        assert seq.legacy is True
        assert seq.programs == [3, 64]
        assert seq.link_modes == [2, 1]
        assert len(seq.to_bytes()) == 64
        assert f.programs[64].torque_target == 77


class TestInvalidFiles:
    @pytest.mark.parametrize("size", [0, 15071, 48097])
    def test_wrong_size(self, size):
        data = bytearray(size)
        if size:
            data[0] = 0x0C
        with pytest.raises(DecodingError):
            parse_kdu_data(data)

    def test_too_old(self):
        with pytest.raises(DecodingError):
            parse_kdu_data(_blank(0x08, V38_SIZE))

    @pytest.mark.parametrize("version,size", [(0x0A, V38_SIZE), (0x0C, V37_SIZE)])
    def test_version_and_size_disagree(self, version, size):
        with pytest.raises(DecodingError):
            parse_kdu_data(_blank(version, size))


class TestReadFile:
    def test_read_from_disk(self, tmp_path, v38):
        path = tmp_path / "backup.kdu"
        path.write_bytes(bytes(v38))
        f = read_kdu_data_file(path)
        assert f.programs[1].torque_target == 120
        assert f.sequences[1].programs == [5, 6, 7]

    def test_not_a_kdu_file(self, tmp_path):
        path = tmp_path / "notes.kdu"
        path.write_bytes(b"hello")
        with pytest.raises(DecodingError):
            read_kdu_data_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_kdu_data_file(tmp_path / "missing.kdu")
