"""Tests for JSON persistence of programs, sequences and settings."""

import json

import pytest

from kducer.core.controller_settings import ControllerSettings
from kducer.core.errors import DecodingError
from kducer.core.program import TighteningProgram
from kducer.core.program_store import ProgramStore, block_from_payload, sanitize_block_name
from kducer.core.sequence import SequenceOfPrograms


@pytest.fixture
def store(tmp_path):
    return ProgramStore(tmp_path / "programs")


class TestProgramStore:
    """Save / load / list / delete with atomic writes."""

    def test_program_round_trip(self, store):
        p = TighteningProgram.default("KDS-PL10")
        p.description = "M4 bracket"
        name = store.save("bracket", p)
        assert name == "bracket"
        assert store.load("bracket") == p
        assert not list(store.root.glob("*.tmp"))

    def test_file_format(self, store):
        store.save("seq a", SequenceOfPrograms([1, 2]))
        payload = json.loads((store.root / "seq a.json").read_text(encoding="utf-8"))
        assert payload["kind"] == "sequence"
        assert bytes.fromhex(payload["hex"]) == SequenceOfPrograms([1, 2]).to_bytes()
        assert payload["_meta"]["name"] == "seq a"

    def test_list_by_kind(self, store):
        store.save("b-prog", TighteningProgram())
        store.save("A-prog", TighteningProgram())
        store.save("line", ControllerSettings())
        store.save_index({"last_program": "A-prog"})
        assert store.list_names() == ["A-prog", "b-prog", "line"]
        assert store.list_names("settings") == ["line"]
        assert store.load_index() == {"last_program": "A-prog"}

    def test_delete(self, store):
        store.save("x", TighteningProgram())
        store.delete("x")
        store.delete("x")
        assert store.list_names() == []
        with pytest.raises(FileNotFoundError):
            store.load("x")

    def test_empty_index(self, store):
        assert store.load_index() == {}


class TestBlockNames:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("a/b:c", "a_b_c"),
            ("  two   words ", "two words"),
            ("CON", "CON_"),
            ("index", "index_"),
            ("com1", "com1_"),
        ],
    )
    def test_sanitize(self, raw, expected):
        assert sanitize_block_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   "])
    def test_empty_name(self, raw):
        with pytest.raises(ValueError):
            sanitize_block_name(raw)

    def test_unknown_kind(self):
        with pytest.raises(DecodingError):
            block_from_payload({"kind": "recipe", "hex": ""})

    def test_bad_hex(self):
        with pytest.raises(DecodingError):
            block_from_payload({"kind": "program", "hex": "zz"})
