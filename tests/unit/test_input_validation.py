"""Tests for input sanitisation and format checks."""

from recruit_api.services.validation import is_valid_url, is_valid_uuid, sanitize_text


class TestSanitizeText:
    def test_strips_control_characters(self):
        assert sanitize_text("he\x00llo\x07 world\x1f") == "hello world"

    def test_keeps_newlines_and_tabs(self):
        assert sanitize_text("line one\n\tline two") == "line one\n\tline two"

    def test_trims_and_caps(self):
        assert sanitize_text("  abcdef  ", max_length=3) == "abc"

    def test_none_and_blank(self):
        assert sanitize_text(None) is None
        assert sanitize_text("   ") == ""


class TestFormats:
    def test_uuid(self):
        assert is_valid_uuid("6f1c0c2e-4d43-4f0e-9a53-1f0b1a7f2c11")
        assert not is_valid_uuid("not-a-uuid")
        assert not is_valid_uuid("")
        assert not is_valid_uuid(None)

    def test_url(self):
        assert is_valid_url("https://cal.example.org/ian")
        assert is_valid_url("http://localhost:3000/form?x=1")
        assert not is_valid_url("javascript:alert(1)")
        assert not is_valid_url("ftp://files.example.org")
        assert not is_valid_url("https://")
        assert not is_valid_url(None)
