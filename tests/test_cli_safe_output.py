"""Tests for CLI safe output handling with encoding fallback."""

from unittest import mock

from capstream.cli.lib.safe_output import decode_bytes, emoji, safe_print, safe_print_err


class TestEmoji:
    def test_emoji_provides_fallback(self):
        """Test emoji returns either the symbol or the ascii fallback."""
        result = emoji("❌", "[ERROR]")
        assert result in ["❌", "[ERROR]"]


class TestDecodeBytes:
    """Decoding recorded bodies before replay."""

    def test_decode_utf8_bytes(self):
        """Test decoding UTF-8 encoded bytes."""
        assert decode_bytes("data: Grüße\n".encode("utf-8")) == "data: Grüße\n"

    def test_decode_gb18030(self):
        """Test decoding GB18030 (Chinese encoding)."""
        text = "你好世界"
        assert decode_bytes(text.encode("gb18030"), preferred_encodings=["gb18030"]) == text

    def test_preferred_list_is_not_mutated(self):
        """Test decode_bytes does not mutate the preferred encodings list."""
        preferred = ["latin-1"]
        decode_bytes(b"abc", preferred_encodings=preferred)
        assert preferred == ["latin-1"]

    def test_unknown_encoding_is_skipped(self):
        """Test decode_bytes skips an unknown encoding name."""
        assert decode_bytes(b"abc", preferred_encodings=["no-such-codec"]) == "abc"

    def test_decode_invalid_bytes_fallback(self):
        """Test decode_bytes handles invalid bytes with replacement."""
        result = decode_bytes(b"\x80\x81\x82\x83")
        assert isinstance(result, str)
        assert len(result) > 0

    def test_decode_empty_bytes(self):
        """Test decode_bytes with empty input."""
        assert decode_bytes(b"") == ""


class TestSafePrint:
    def test_plain_print(self, capsys):
        """Test safe_print writes plain text with a newline."""
        safe_print("status: ok")
        assert capsys.readouterr().out == "status: ok\n"

    def test_no_newline(self, capsys):
        """Test safe_print honours end=""."""
        safe_print("tok", end="")
        safe_print("en", end="")
        assert capsys.readouterr().out == "token"

    def test_encode_error_falls_back(self):
        """Test safe_print degrades text the stream cannot encode."""
        calls = []

        def fake_print(text, end="\n", flush=False):
            calls.append(text)
            if len(calls) == 1:
                raise UnicodeEncodeError("ascii", text, 0, 1, "unsupported")

        with mock.patch("builtins.print", side_effect=fake_print):
            safe_print("✅ done")
        assert len(calls) == 2

    def test_err_goes_to_stderr(self, capsys):
        """Test safe_print(err=True) writes to stderr."""
        safe_print("broken", err=True)
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "broken" in captured.err

    def test_safe_print_err_without_newline(self, capsys):
        """Test safe_print_err without a trailing newline."""
        safe_print_err("a", end="")
        safe_print_err("b")
        assert capsys.readouterr().err == "ab\n"
