"""Tests for utility helpers."""

from types import SimpleNamespace

import pytest

from nanorelay.utils.helpers import get_store_path, normalize_channel_id, split_message, truncate_string


class TestNormalizeChannelId:
    @pytest.mark.parametrize("value, expected", [
        ("100", "100"),
        (100, "100"),
        ({"id": "abc", "type": 0}, "abc"),
        ({"id": 7}, "7"),
        (SimpleNamespace(id=9), "9"),
    ])
    def test_normalized(self, value, expected):
        assert normalize_channel_id(value) == expected

    @pytest.mark.parametrize("value", [None, "", {}, {"id": ""}, SimpleNamespace(name="x")])
    def test_unrecognized(self, value):
        assert normalize_channel_id(value) is None


class TestSplitMessage:
    def test_short_message(self):
        assert split_message("hello", 10) == ["hello"]

    def test_empty(self):
        assert split_message("", 10) == []

    def test_prefers_newline(self):
        assert split_message("aaaa\nbbbb cc", 8) == ["aaaa", "bbbb cc"]

    def test_then_space(self):
        assert split_message("aaa bbb ccc", 8) == ["aaa bbb", "ccc"]

    def test_hard_cut(self):
        assert split_message("abcdefghij", 4) == ["abcd", "efgh", "ij"]

    def test_chunks_respect_limit(self):
        text = " ".join(["word"] * 500)
        assert all(len(chunk) <= 50 for chunk in split_message(text, 50))


class TestPaths:
    def test_custom_store_path(self, tmp_path):
        path = get_store_path(str(tmp_path / "data" / "channels.json"))
        assert path == tmp_path / "data" / "channels.json"
        assert path.parent.exists()


def test_truncate_string():
    assert truncate_string("short", 10) == "short"
    assert truncate_string("a" * 20, 10) == "aaaaaaa..."
