"""Tests for tightening result decoding and CSV export."""

from datetime import datetime

import pytest

from kducer.core.errors import DecodingError
from kducer.core.graph import TorqueAngleTimeGraph
from kducer.core.result import (
    CSV_COLUMNS,
    TighteningResult,
    csv_header,
    decode_result,
    format_torque,
)


class TestResultDecoding:
    """Field decoding of result blocks captured from a real KDU."""

    def test_nok_result_fields(self, nok_result):
        """A NOK tightening stopped over the max angle."""
        r = TighteningResult(nok_result)
        assert r.barcode == "ABC-abc-1234"
        assert r.is_ok is False
        assert r.program_number == 50
        assert r.screwdriver_model == "KDS-MT1.5"
        assert r.screwdriver_serial == 2007773
        assert r.target_torque == 110
        assert r.target_speed == 300
        assert r.screw_time_ms == 587
        assert r.screws_ok_count == 0
        assert r.target_screws == 5
        assert r.torque == 63
        assert r.peak_torque == 63
        assert r.angle == 20
        assert r.result_code == 34
        assert r.result_text == "Over Max Angle"
        assert r.program_description == "example desc for test"
        assert r.timestamp_str == "2024-03-15 14:15:33"
        assert r.timestamp == datetime(2024, 3, 15, 14, 15, 33)

    def test_ok_result_with_running_torque(self, ok_result):
        """Running torque is reported separately from the clamping torque."""
        r = TighteningResult(ok_result)
        assert r.is_ok is True
        assert r.program_number == 51
        assert r.torque == 50
        assert r.running_torque == 3
        assert r.prevailing_torque == 3
        assert r.angle == 999
        assert r.screw_time_ms == 568
        assert r.screws_ok_count == 1
        assert r.target_screws == 1
        assert r.result_code == 13
        assert r.result_text == "Screw OK"
        assert r.program_description == ""
        assert r.timestamp_str == "2024-03-15 15:15:38"

    def test_result_inside_sequence(self, sequence_result):
        """Sequence number maps to a letter, with index and length of the sequence."""
        r = TighteningResult(sequence_result)
        assert r.barcode == ""
        assert r.program_number == 55
        assert r.torque == 49
        assert r.angle == 1942
        assert r.screw_time_ms == 1022
        assert r.sequence_number == 3
        assert r.sequence == "C"
        assert r.program_index_in_sequence == 2
        assert r.programs_in_sequence == 2
        assert r.timestamp_str == "2024-03-15 15:16:12"

    def test_no_sequence_is_dash(self, ok_result):
        assert TighteningResult(ok_result).sequence == "-"

    @pytest.mark.parametrize("size", [0, 133, 135])
    def test_wrong_length_rejected(self, size):
        with pytest.raises(DecodingError):
            TighteningResult(bytes(size))

    def test_replace_timestamp_with_local_time(self, nok_result):
        r = TighteningResult.from_block(
            nok_result, replace_timestamp=True, now=datetime(2025, 1, 2, 3, 4, 5)
        )
        assert r.timestamp_str == "2025-01-02 03:04:05"
        # every other field is untouched
        assert r.raw[:102] == nok_result[:102]
        assert r.raw[114:] == nok_result[114:]

    def test_decode_result_keeps_kdu_timestamp_by_default(self, nok_result):
        assert decode_result(nok_result).timestamp_str == "2024-03-15 14:15:33"

    def test_impossible_date_gives_none(self, ok_result):
        b = bytearray(ok_result)
        b[104:106] = (13).to_bytes(2, "big")  # month 13
        assert TighteningResult(bytes(b)).timestamp is None

    def test_equality_ignores_graph(self, ok_result):
        g = TorqueAngleTimeGraph.from_series([1, 2], [1, 2], 1)
        assert TighteningResult(ok_result, g) == TighteningResult(ok_result)


class TestResultCsv:
    """CSV export in the KDU USB column order."""

    def test_header_width(self):
        assert len(CSV_COLUMNS) == 176
        assert csv_header().split(",")[0] == "Barcode"

    def test_row_without_graph(self, nok_result):
        cols = TighteningResult(nok_result).to_csv().split(",")
        assert len(cols) == len(CSV_COLUMNS)
        assert cols[:34] == [
            "ABC-abc-1234", "NOK", "50", "example desc for test", "KDS-MT1.5", "2007773",
            "110", "cNm", "0.587", "300", "0", "5", "", "", "",
            "63", "63", "0", "0", "63", "20", "0", "50", "1019", "0", "600", "0",
            "cNm", "deg", "rpm", "sec", "2024-03-15 14:15:33", "Over Max Angle", "mNm",
        ]
        assert set(cols[34:]) == {""}

    def test_row_with_graph(self, sequence_result):
        g = TorqueAngleTimeGraph.from_series([10, 20, 30], [0, 5, 9], 2)
        cols = TighteningResult(sequence_result, g).to_csv().split(",")
        assert len(cols) == len(CSV_COLUMNS)
        assert cols[12:15] == ["C", "2", "2"]
        assert cols[34:38] == ["2", "10", "20", "30"]
        assert cols[38] == ""
        assert cols[105:109] == ["2", "0", "5", "9"]

    def test_torque_unit_conversion(self, nok_result):
        cols = TighteningResult(nok_result).to_csv(torque_units="Nm").split(",")
        assert cols[6:8] == ["1.1", "Nm"]
        assert cols[15] == "0.63"
        assert cols[27] == "Nm"

    @pytest.mark.parametrize(
        "value,units,expected",
        [
            (110, "cNm", "110"),
            (1234, "cNm", "1234"),
            (63, "Nm", "0.63"),
            (2500, "Nm", "25"),
            (100, "lbf-in", "8.851"),
            (150, "mNm", "1500"),
        ],
    )
    def test_format_torque(self, value, units, expected):
        assert format_torque(value, units) == expected
