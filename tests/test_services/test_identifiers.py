"""
Tests for identifier normalization.

References reach the engine as bare ids, populated sub-records, Mongo
extended JSON, or arbitrary objects; all of them must compare equal
when they name the same record.
"""

import uuid

import pytest

from orgchart.services.identifiers import RefKind, classify, normalize, same_id


class _Populated:
    """Object-style populated reference (attribute access, not a mapping)."""

    def __init__(self, _id):
        self._id = _id


class _Opaque:
    def __str__(self):
        return " 665f00aa "


class TestNormalize:
    """Tests for normalize()."""

    @pytest.mark.parametrize(
        "ref, expected",
        [
            (None, ""),
            ("", ""),
            ("   ", ""),
            ("A", "A"),
            ("  A  ", "A"),
            (42, "42"),
            ({"_id": "A", "code": "ENG"}, "A"),
            ({"id": "A"}, "A"),
            ({"$oid": "665f"}, "665f"),
            ({"_id": {"$oid": "665f"}}, "665f"),
            (_Populated("B"), "B"),
            (_Opaque(), "665f00aa"),
        ],
    )
    def test_shapes(self, ref, expected):
        assert normalize(ref) == expected

    def test_uuid_uses_its_string_form(self):
        value = uuid.uuid4()
        assert normalize(value) == str(value)

    @pytest.mark.parametrize(
        "ref",
        [None, "A", " A ", 7, {"_id": "A"}, {"_id": {"$oid": "x"}}, _Populated(3), _Opaque()],
    )
    def test_idempotent(self, ref):
        """normalize(normalize(x)) == normalize(x)."""
        once = normalize(ref)
        assert normalize(once) == once

    def test_mapping_without_id_falls_back_to_str(self):
        """A mapping with no id key is opaque, not silently empty."""
        ref = {"code": "ENG"}
        assert classify(ref) is RefKind.OPAQUE
        assert normalize(ref) == str(ref)


class TestClassify:
    """Tests for classify()."""

    def test_kinds(self):
        assert classify(None) is RefKind.MISSING
        assert classify("") is RefKind.MISSING
        assert classify("A") is RefKind.BARE
        assert classify(5) is RefKind.BARE
        assert classify({"_id": "A"}) is RefKind.POPULATED
        assert classify(_Populated("A")) is RefKind.POPULATED
        assert classify(_Opaque()) is RefKind.OPAQUE


class TestSameId:
    """Tests for same_id()."""

    def test_bare_and_populated_match(self):
        assert same_id("A", {"_id": "A", "title": "Head"})

    def test_different_ids(self):
        assert not same_id("A", "B")

    def test_missing_never_matches(self):
        """Two missing references do not name the same record."""
        assert not same_id(None, None)
        assert not same_id("", None)
