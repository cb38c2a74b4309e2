"""
Unit tests for the record codec and exclusion filter.
"""

import json

import pytest

from mods.autobackup.codec import RecordCodec
from mods.autobackup.errors import RecordParseError
from mods.autobackup.filters import ExclusionFilter
from mods.autobackup.models import Record


class TestRecordCodec:
    """Tests for RecordCodec."""

    def test_decode_extracts_identity(self):
        """Id and owner name come from info.id / info.username."""
        data = json.dumps({"info": {"id": "42", "username": "alice"}, "x": 1}).encode()

        record = RecordCodec().decode(data)

        assert record.id == "42"
        assert record.owner_name == "alice"
        assert record.content["x"] == 1

    @pytest.mark.parametrize(
        "payload",
        [
            b"{not json",
            b"\xff\xfe",
            b"[1, 2]",
            json.dumps({"info": {"username": "alice"}}).encode(),
            json.dumps({"info": {"id": 42, "username": "alice"}}).encode(),
            json.dumps({"info": {"id": "42"}}).encode(),
        ],
    )
    def test_decode_rejects_invalid(self, payload):
        """Anything that is not a record with identity is a parse error."""
        with pytest.raises(RecordParseError):
            RecordCodec().decode(payload, source="f.json")

    def test_custom_identity_paths(self):
        """Identity paths are configurable."""
        codec = RecordCodec(id_path=("sid",), name_path=("owner", "name"))

        record = codec.from_content({"sid": "s1", "owner": {"name": "bob"}})

        assert (record.id, record.owner_name) == ("s1", "bob")

    def test_encode_formatting(self):
        """Compact and indented encodings decode to the same content."""
        record = Record("42", "alice", {"info": {"id": "42", "username": "alice"}})

        compact = RecordCodec(compress=True).encode(record)
        pretty = RecordCodec(compress=False).encode(record)

        assert b"\n" not in compact
        assert b"\n" in pretty
        assert json.loads(compact) == json.loads(pretty) == record.content


class TestExclusionFilter:
    """Tests for ExclusionFilter."""

    def test_default_prefix(self):
        f = ExclusionFilter()
        assert f.is_excluded("headless_abc")
        assert not f.is_excluded("alice")
        assert not f.is_excluded("my_headless_alt")

    def test_no_prefixes_excludes_nothing(self):
        f = ExclusionFilter(())
        assert not f.is_excluded("headless_abc")
        assert not f.is_excluded("")

    def test_multiple_prefixes(self):
        f = ExclusionFilter(("headless_", "bot-"))
        assert f.is_excluded("bot-1")
        assert f.is_excluded("headless_2")
