# ./kducer/config/addresses.py
from __future__ import annotations

"""KDU-1A Modbus TCP register map and engine defaults.

Input registers (IR, read only, word addressing)
- 152..222  torque graph   (71 words = 142 bytes: interval + 70 samples)
- 223..293  angle graph    (71 words = 142 bytes: interval + 70 samples)
- 294       new result flag (reading it clears it)
- 295..361  tightening result (67 words = 134 bytes)

Holding registers (HR)
- 7372      current program number
- 7373      current sequence number
- 7400..    general settings block (46 words = 92 bytes)
- 7450..    date/time, 6 words: YY MM DD hh mm ss
- 7460      high resolution graph mode (newer firmware only)
- 10000..   program data, 115 words per program (program 1 first)
- 40000..   sequence data, 56 words per sequence (sequence A first)

Coils
- 32        run screwdriver
- 34        stop motor (1 = tool disabled)

All multi-byte values are big-endian; 32-bit values are high word first.
"""

# =========================
# Basic config
# =========================
DEFAULT_KDU_PORT = 502
DEFAULT_UNIT_ID = 1

POLL_INTERVAL_S = 0.1
RX_TX_TIMEOUT_S = 0.3

# settle time after a program/sequence change and after a coil write
PR_SEQ_CHANGE_WAIT_S = 0.3
SHORT_WAIT_S = 0.05

# results queue backlog warning (x10 after each warning)
RESULTS_BACKLOG_WARN = 10


# =========================
# Input registers
# =========================
IR_TORQUE_GRAPH: int = 152
IR_ANGLE_GRAPH: int = 223
GRAPH_WORDS: int = 71
GRAPH_BYTES: int = GRAPH_WORDS * 2
GRAPH_SAMPLES: int = GRAPH_WORDS - 1

IR_NEW_RESULT_FLAG: int = 294
IR_RESULT: int = 295
RESULT_WORDS: int = 67
RESULT_BYTES: int = RESULT_WORDS * 2

# default poll: flag + result in one read
POLL_BASE: int = IR_NEW_RESULT_FLAG
POLL_WORDS: int = 1 + RESULT_WORDS

assert IR_ANGLE_GRAPH == IR_TORQUE_GRAPH + GRAPH_WORDS
assert IR_NEW_RESULT_FLAG == IR_ANGLE_GRAPH + GRAPH_WORDS
assert IR_RESULT == IR_NEW_RESULT_FLAG + 1


# =========================
# Holding registers
# =========================
HR_PROGRAM_NUMBER: int = 7372
HR_SEQUENCE_NUMBER: int = 7373

HR_GENERAL_SETTINGS: int = 7400
SETTINGS_BYTES: int = 92
SETTINGS_WORDS: int = SETTINGS_BYTES // 2

HR_DATE_TIME: int = 7450
DATE_TIME_WORDS: int = 6

HR_HIGH_RES_GRAPH: int = 7460

HR_PROGRAM_DATA_BASE: int = 10000
PROGRAM_BYTES: int = 230
PROGRAM_WORDS: int = PROGRAM_BYTES // 2

HR_SEQUENCE_DATA_BASE: int = 40000
SEQUENCE_BYTES: int = 112
SEQUENCE_BYTES_LEGACY: int = 64
SEQUENCE_WORDS: int = SEQUENCE_BYTES // 2

PROGRAM_MIN: int = 1
PROGRAM_MAX: int = 200
PROGRAM_MAX_LEGACY: int = 64
SEQUENCE_MIN: int = 1
SEQUENCE_MAX: int = 24


# =========================
# Coils
# =========================
COIL_RUN_SCREWDRIVER: int = 32
COIL_STOP_MOTOR: int = 34


# =========================
# Helpers
# =========================
def program_reg(number: int) -> int:
    if not (PROGRAM_MIN <= number <= PROGRAM_MAX):
        raise ValueError(f"program number out of range: {number}")
    return HR_PROGRAM_DATA_BASE + PROGRAM_WORDS * (number - 1)


def sequence_reg(number: int) -> int:
    if not (SEQUENCE_MIN <= number <= SEQUENCE_MAX):
        raise ValueError(f"sequence number out of range: {number}")
    return HR_SEQUENCE_DATA_BASE + SEQUENCE_WORDS * (number - 1)
