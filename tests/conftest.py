import pytest

import kducer.utils.logger as logger
from fake_kdu import FakeKdu, decimal_bytes

# Result blocks captured from a KDU-1A (KDS-MT1.5 screwdriver)
RESULT_NOK_OVER_MAX_ANGLE = decimal_bytes(
    "65 66 67 45 97 98 99 45 49 50 51 52 0 0 0 0 0 0 0 50 0 4 0 30 162 221 1 115 3 232 0 110 "
    "1 44 2 75 0 0 0 5 0 0 0 0 0 0 0 63 0 63 0 0 0 0 0 63 0 20 0 0 0 50 3 251 0 0 2 88 0 0 0 34 "
    "101 120 97 109 112 108 101 32 100 101 115 99 32 102 111 114 32 116 101 115 116 0 0 0 0 0 0 "
    "0 0 0 0 24 0 3 0 15 0 14 0 15 0 33 0 0 0 0 0 0 0 3 0 0 0 0 0 0 0 0 0 0 48 52"
)
RESULT_OK_RUNNING_TORQUE = decimal_bytes(
    "65 66 67 45 97 98 99 45 49 50 51 52 0 0 0 0 0 1 0 51 0 4 0 30 162 221 1 115 3 232 0 50 "
    "1 44 2 56 0 1 0 1 0 0 0 0 0 0 0 50 0 50 0 8 0 3 0 50 3 231 0 0 0 0 0 0 0 0 2 88 0 0 0 13 "
    "0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 24 0 3 0 15 0 15 0 15 0 38 "
    "0 0 0 0 0 0 0 5 0 0 0 0 0 0 0 0 0 0 48 52"
)
RESULT_OK_IN_SEQUENCE = decimal_bytes(
    "0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 1 0 55 0 4 0 30 162 221 1 115 3 232 0 50 1 44 3 254 "
    "0 1 0 1 0 3 0 2 0 2 0 49 0 49 0 0 0 0 0 49 7 150 0 0 0 0 0 0 0 0 2 88 0 0 0 13 "
    "0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 0 24 0 3 0 15 "
    "0 15 0 16 0 12 0 0 0 0 0 0 0 9 0 0 0 0 0 0 0 0 0 0 48 52"
)


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    """Send the file logger to a per-test directory."""
    monkeypatch.setenv(logger.LOG_DIR_ENV, str(tmp_path / "logs"))
    monkeypatch.setattr(logger, "_inited", False)
    monkeypatch.setattr(logger, "_log_path", None)
    return tmp_path / "logs"


@pytest.fixture
def kdu():
    return FakeKdu()


@pytest.fixture
def nok_result():
    return RESULT_NOK_OVER_MAX_ANGLE


@pytest.fixture
def ok_result():
    return RESULT_OK_RUNNING_TORQUE


@pytest.fixture
def sequence_result():
    return RESULT_OK_IN_SEQUENCE
