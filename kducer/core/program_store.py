from __future__ import annotations

"""Program store: keep KDU programs, sequences and settings as JSON files.

- One block per file: <name>.json, e.g. {"kind": "program", "hex": "0000...", "_meta": {...}}
- Index file: index.json (stores e.g. the last used program per station)
- The KDU program/sequence number is NOT part of the stored block; it is chosen on send.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Union

from kducer.core.controller_settings import ControllerSettings
from kducer.core.errors import DecodingError
from kducer.core.program import TighteningProgram
from kducer.core.sequence import SequenceOfPrograms

_INVALID_FS_CHARS = r'<>:"/\\|?*'
_SCHEMA = "kducer_block_v1"

StoredBlock = Union[TighteningProgram, SequenceOfPrograms, ControllerSettings]

_KINDS = {
    "program": TighteningProgram,
    "sequence": SequenceOfPrograms,
    "settings": ControllerSettings,
}


def sanitize_block_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("block name must not be empty")
    name = re.sub(f"[{re.escape(_INVALID_FS_CHARS)}]", "_", name)
    name = re.sub(r"\s+", " ", name).strip()
    if not name:
        raise ValueError("invalid block name")
    # avoid reserved names on Windows (CON, PRN, etc.) by appending underscore
    if name.upper() in {"CON", "PRN", "AUX", "NUL", "INDEX"} or re.fullmatch(r"(?i)(COM|LPT)[1-9]", name):
        name = name + "_"
    return name


def kind_of(block: StoredBlock) -> str:
    for kind, cls in _KINDS.items():
        if isinstance(block, cls):
            return kind
    raise TypeError(f"cannot store {type(block).__name__}")


def block_from_payload(payload: Dict[str, Any]) -> StoredBlock:
    kind = payload.get("kind")
    if kind not in _KINDS:
        raise DecodingError(f"unknown stored block kind: {kind!r}")
    try:
        raw = bytes.fromhex(str(payload.get("hex", "")))
    except ValueError as e:
        raise DecodingError(f"stored {kind} is not valid hex: {e}") from e
    if kind == "sequence":
        return SequenceOfPrograms.from_bytes(raw)
    return _KINDS[kind](raw)


@dataclass
class ProgramStore:
    root: Path

    def __post_init__(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def default_root(app_dir_name: str = "kducer") -> Path:
        # e.g. C:\Users\<user>\kducer\programs
        return Path.home() / app_dir_name / "programs"

    def _path_of(self, name: str) -> Path:
        safe = sanitize_block_name(name)
        return self.root / f"{safe}.json"

    def list_names(self, kind: str = "") -> List[str]:
        names: List[str] = []
        for p in self.root.glob("*.json"):
            if p.name.lower() == "index.json":
                continue
            if kind:
                with p.open("r", encoding="utf-8") as f:
                    if json.load(f).get("kind") != kind:
                        continue
            names.append(p.stem)
        names.sort(key=lambda s: s.lower())
        return names

    def load(self, name: str) -> StoredBlock:
        p = self._path_of(name)
        if not p.exists():
            raise FileNotFoundError(f"no stored block named {name!r}")
        with p.open("r", encoding="utf-8") as f:
            return block_from_payload(json.load(f))

    def save(self, name: str, block: StoredBlock) -> str:
        safe = sanitize_block_name(name)
        p = self._path_of(safe)
        tmp = p.with_suffix(p.suffix + ".tmp")
        payload = {
            "kind": kind_of(block),
            "hex": block.to_bytes().hex(),
            "_meta": {"name": safe, "schema": _SCHEMA},
        }
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        tmp.replace(p)
        return safe

    def delete(self, name: str) -> None:
        p = self._path_of(name)
        if p.exists():
            p.unlink()

    def load_index(self) -> Dict[str, Any]:
        p = self.root / "index.json"
        if not p.exists():
            return {}
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)

    def save_index(self, index: Dict[str, Any]) -> None:
        p = self.root / "index.json"
        tmp = p.with_suffix(p.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(index, f, ensure_ascii=False, indent=2)
        tmp.replace(p)
