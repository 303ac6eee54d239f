from __future__ import annotations

"""KDS screwdriver base models, indexed by the model id the KDU reports."""

from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class ScrewdriverModel:
    model_id: int
    name: str
    max_torque: int     # cNm
    max_rpm: int
    min_rpm: int


SCREWDRIVER_MODELS: List[ScrewdriverModel] = [
    ScrewdriverModel(0, "None Connected", 7000, 1800, 10),
    ScrewdriverModel(1, "KDS-PL6", 600, 850, 50),
    ScrewdriverModel(2, "KDS-PL10", 1000, 600, 50),
    ScrewdriverModel(3, "KDS-PL15", 1500, 320, 50),
    ScrewdriverModel(4, "KDS-MT1.5", 150, 850, 50),
    ScrewdriverModel(5, "KDS-PL20", 2000, 210, 20),
    ScrewdriverModel(6, "KDS-PL30", 3000, 140, 20),
    ScrewdriverModel(7, "KDS-PL35", 3500, 140, 20),
    ScrewdriverModel(8, "KDS-PL45", 4500, 90, 20),
    ScrewdriverModel(9, "KDS-PL50", 5000, 90, 20),
    ScrewdriverModel(10, "KDS-PL70", 7000, 50, 10),
    ScrewdriverModel(11, "KDS-PL3", 300, 1800, 50),
    ScrewdriverModel(12, "KDS-PL20S", 2000, 240, 20),
]

_BY_NAME: Dict[str, ScrewdriverModel] = {m.name.upper(): m for m in SCREWDRIVER_MODELS}


def model_by_id(model_id: int) -> ScrewdriverModel:
    """Unknown ids map to "None Connected"."""
    i = int(model_id)
    if 0 <= i < len(SCREWDRIVER_MODELS):
        return SCREWDRIVER_MODELS[i]
    return SCREWDRIVER_MODELS[0]


def model_by_name(name: str) -> ScrewdriverModel:
    key = (name or "").strip().upper()
    if key not in _BY_NAME:
        raise KeyError(f"unknown screwdriver model: {name!r}")
    return _BY_NAME[key]
