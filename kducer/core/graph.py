from __future__ import annotations

"""Torque/angle vs. time graph of one tightening.

Wire format (each series, 142 bytes = 71 big-endian words):
- word 0      sampling interval in ms
- words 1..70 samples (torque in the torque block, angle in the angle block)

The KDU always sends 70 samples. A shorter tightening leaves the tail zeroed; the tail
is detected on the angle series only, walking back from the last sample and stopping at
the first non-zero angle. Sample 0 is never dropped, so an all-zero buffer keeps one
sample. Zeros before that point are genuine readings and stay.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from kducer.config.addresses import GRAPH_BYTES, GRAPH_SAMPLES
from kducer.core.errors import DecodingError, GraphWidthError
from kducer.core.modbus_codec import check_block, get_u16, pack_words_be, words_be


def trimmed_length(angle: Sequence[int]) -> int:
    n = len(angle)
    while n > 1 and int(angle[n - 1]) == 0:
        n -= 1
    return n


def _csv(series: Sequence[int]) -> str:
    return ",".join(str(int(v)) for v in series)


def _fixed_columns(series: Sequence[int], columns: int = GRAPH_SAMPLES) -> List[str]:
    n = len(series)
    if n > columns:
        raise GraphWidthError(f"cannot fit {n} samples in {columns} columns")
    return [str(int(v)) for v in series] + [""] * (columns - n)


@dataclass(frozen=True)
class TorqueAngleTimeGraph:
    torque: Tuple[int, ...]
    angle: Tuple[int, ...]
    interval_ms: int
    angle_interval_ms: int = 0

    def __post_init__(self) -> None:
        if len(self.torque) != len(self.angle):
            raise DecodingError(
                f"torque/angle series length mismatch: {len(self.torque)} != {len(self.angle)}"
            )

    @classmethod
    def from_blocks(cls, torque_block: bytes, angle_block: bytes) -> "TorqueAngleTimeGraph":
        """Decode the two 142-byte input register blocks (IR 152..222 and IR 223..293)."""
        tb = check_block(torque_block, GRAPH_BYTES, "torque graph")
        ab = check_block(angle_block, GRAPH_BYTES, "angle graph")

        torque = words_be(tb, 2, GRAPH_SAMPLES)
        angle = words_be(ab, 2, GRAPH_SAMPLES)
        n = trimmed_length(angle)
        return cls(
            torque=tuple(int(v) for v in torque[:n]),
            angle=tuple(int(v) for v in angle[:n]),
            interval_ms=get_u16(tb, 0),
            angle_interval_ms=get_u16(ab, 0),
        )

    @classmethod
    def from_series(
        cls, torque: Sequence[int], angle: Sequence[int], interval_ms: int
    ) -> "TorqueAngleTimeGraph":
        """Build from already-trimmed series (any length, e.g. high resolution data)."""
        return cls(
            torque=tuple(int(v) for v in torque),
            angle=tuple(int(v) for v in angle),
            interval_ms=int(interval_ms),
            angle_interval_ms=int(interval_ms),
        )

    def to_blocks(self) -> Tuple[bytes, bytes]:
        """Encode back to the two 142-byte blocks, zero padded to 70 samples."""
        n = len(self.torque)
        if n > GRAPH_SAMPLES:
            raise GraphWidthError(f"cannot fit {n} samples in {GRAPH_SAMPLES} words")
        for v in (self.interval_ms, self.angle_interval_ms, *self.torque, *self.angle):
            if not (0 <= int(v) <= 0xFFFF):
                raise DecodingError(f"graph value {v} does not fit in 16 bits")
        pad = [0] * (GRAPH_SAMPLES - n)
        tb = pack_words_be([self.interval_ms, *self.torque, *pad])
        ab = pack_words_be([self.angle_interval_ms, *self.angle, *pad])
        return tb, ab

    def __len__(self) -> int:
        return len(self.torque)

    def torque_csv(self) -> str:
        return _csv(self.torque)

    def angle_csv(self) -> str:
        return _csv(self.angle)

    def torque_csv70(self) -> str:
        """Exactly 70 columns; trailing columns are empty for shorter series."""
        return ",".join(_fixed_columns(self.torque))

    def angle_csv70(self) -> str:
        return ",".join(_fixed_columns(self.angle))

    def time_axis_ms(self) -> np.ndarray:
        return np.arange(len(self.torque), dtype=np.int64) * int(self.interval_ms)

    def as_array(self) -> np.ndarray:
        """(n, 3) array: time ms, torque, angle."""
        return np.column_stack(
            [
                self.time_axis_ms(),
                np.asarray(self.torque, dtype=np.int64),
                np.asarray(self.angle, dtype=np.int64),
            ]
        )


def decode_graph(torque_block: bytes, angle_block: bytes) -> TorqueAngleTimeGraph:
    return TorqueAngleTimeGraph.from_blocks(torque_block, angle_block)


def encode_graph(graph: TorqueAngleTimeGraph) -> Tuple[bytes, bytes]:
    return graph.to_blocks()


def graph_csv_columns(graph: "TorqueAngleTimeGraph | None") -> List[str]:
    """Torque interval, 70 torque points, angle interval, 70 angle points (empty if no graph)."""
    if graph is None:
        return [""] * (2 * GRAPH_SAMPLES + 2)
    return (
        [str(graph.interval_ms)]
        + _fixed_columns(graph.torque)
        + [str(graph.angle_interval_ms)]
        + _fixed_columns(graph.angle)
    )
