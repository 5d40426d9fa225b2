"""Tests for mention markup handling."""

from nanorelay.forward.mentions import has_mentions, make_mention, rewrite_mentions


class TestMakeMention:
    def test_id_only(self):
        assert make_mention("42") == '<at id="42"/>'

    def test_with_name(self):
        assert make_mention("42", "Bob") == '<at id="42" name="Bob"/>'

    def test_name_is_escaped(self):
        marker = make_mention("42", 'A "quoted" <name>')
        assert '"quoted"' not in marker
        assert rewrite_mentions(marker, {}) == '@A "quoted" <name>'


class TestInspect:
    def test_has_mentions(self):
        assert has_mentions('hello <at id="1"/>')
        assert has_mentions('<at type="all"/> meeting')
        assert not has_mentions("hello @bob")


class TestRewrite:
    def test_member_directory_lookup(self):
        assert rewrite_mentions('<at id="42"/> hello', {"42": "Bob"}) == "@Bob hello"

    def test_directory_takes_precedence_over_marker_name(self):
        assert rewrite_mentions('<at id="42" name="old"/>', {"42": "Bob"}) == "@Bob"

    def test_falls_back_to_marker_name(self):
        assert rewrite_mentions('<at id="42" name="Bob"/>', {}) == "@Bob"

    def test_unresolved_id_is_kept_literally(self):
        content = 'hi <at id="99"/>'
        assert rewrite_mentions(content, {"42": "Bob"}) == content

    def test_marker_without_id_is_kept(self):
        content = '<at type="all"/> standup'
        assert rewrite_mentions(content, {"42": "Bob"}) == content

    def test_multiple_mentions(self):
        content = '<at id="1"/>, <at id="2"/> and <at id="3"/>'
        members = {"1": "Ann", "2": "Ben"}
        assert rewrite_mentions(content, members) == '@Ann, @Ben and <at id="3"/>'
