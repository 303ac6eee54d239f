"""Tests for sequence-of-programs encoding."""

import pytest

from kducer.core.errors import DecodingError
from kducer.core.sequence import SequenceOfPrograms, decode_sequence, encode_sequence


class TestSequenceEncoding:
    """Byte layout of the 112-byte and legacy 64-byte blocks."""

    def test_layout(self):
        seq = SequenceOfPrograms([1, 2, 3], [0, 1, 2], [3, 50, 200], barcode="A,B")
        raw = encode_sequence(seq)
        assert len(raw) == 112
        assert raw[:3] == b"A.B"
        assert raw[3:16] == bytes(13)
        assert list(raw[16:19]) == [1, 2, 3]
        assert raw[19:48] == bytes(29)
        assert list(raw[48:51]) == [0, 1, 2]
        # link time 200 is clamped to 100; unused slots hold the default 3
        assert list(raw[80:83]) == [3, 50, 100]
        assert set(raw[83:112]) == {3}

    def test_defaults(self):
        seq = SequenceOfPrograms([7])
        assert seq.link_modes == [0]
        assert seq.link_times == [3]
        assert seq.barcode == ""
        assert len(seq) == 1

    def test_link_time_below_minimum_clamped(self):
        assert SequenceOfPrograms([1, 2], link_times=[0, 1]).link_times == [3, 3]

    def test_round_trip(self):
        seq = SequenceOfPrograms([10, 20, 200], [2, 0, 1], [30, 40, 50], barcode="PCB-1")
        back = decode_sequence(seq.to_bytes())
        assert back == seq
        assert back.programs == [10, 20, 200]
        assert back.link_modes == [2, 0, 1]
        assert back.link_times == [30, 40, 50]
        assert back.barcode == "PCB-1"

    def test_from_regs(self):
        seq = SequenceOfPrograms([4, 5])
        assert SequenceOfPrograms.from_regs(seq.to_regs()) == seq

    def test_legacy_layout(self):
        seq = SequenceOfPrograms([1, 64], legacy=True)
        raw = seq.to_bytes()
        assert len(raw) == 64
        assert list(raw[16:18]) == [1, 64]
        assert list(raw[32:34]) == [0, 0]
        assert set(raw[48:64]) == {3}
        back = SequenceOfPrograms.from_bytes(raw)
        assert back.legacy is True
        assert back.programs == [1, 64]

    def test_decode_stops_at_first_zero_program(self):
        raw = bytearray(SequenceOfPrograms([1, 2, 3]).to_bytes())
        raw[17] = 0
        assert SequenceOfPrograms.from_bytes(bytes(raw)).programs == [1]


class TestSequenceValidation:
    """Constructor and decoder reject what the KDU cannot store."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"programs": []},
            {"programs": [0, 1]},
            {"programs": list(range(1, 34))},
            {"programs": [201]},
            {"programs": [65], "legacy": True},
            {"programs": list(range(1, 18)), "legacy": True},
            {"programs": [1, 2], "link_modes": [0]},
            {"programs": [1], "link_modes": [3]},
            {"programs": [1], "link_times": [3, 3]},
            {"programs": [1], "barcode": "x" * 17},
            {"programs": [1], "barcode": "café"},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            SequenceOfPrograms(**kwargs)

    def test_full_sequence_accepted(self):
        assert len(SequenceOfPrograms(list(range(1, 33)))) == 32

    @pytest.mark.parametrize("size", [0, 63, 100, 113])
    def test_wrong_block_size(self, size):
        with pytest.raises(DecodingError):
            SequenceOfPrograms.from_bytes(bytes(size))

    def test_empty_block(self):
        with pytest.raises(DecodingError):
            SequenceOfPrograms.from_bytes(bytes(112))
