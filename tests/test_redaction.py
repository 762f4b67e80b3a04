"""
Tests for output redaction.

Tests cover:
- Literal masking of text and bytes
- Per-chunk stream masking and its boundary gap
- Held-tail stream masking across chunk boundaries
"""
import pytest

from hushvault.redaction import REDACTED, StreamRedactor, mask_secrets


class TestMaskSecrets:
    """mask_secrets on whole buffers."""

    def test_two_secrets(self):
        assert mask_secrets("key=S1 and S2", ["S1", "S2"]) == (
            "key=[REDACTED] and [REDACTED]"
        )

    def test_empty_secret_set(self):
        assert mask_secrets("key=S1 and S2", []) == "key=S1 and S2"

    def test_empty_values_skipped(self):
        assert mask_secrets("abc", ["", "b"]) == "a[REDACTED]c"

    def test_every_occurrence(self):
        assert mask_secrets("tok tok tok", ["tok"]) == " ".join([REDACTED] * 3)

    def test_regex_metacharacters_are_literal(self):
        secret = "p@$$.w*rd(1)?"
        assert mask_secrets(f"pw={secret}", [secret]) == "pw=[REDACTED]"
        assert mask_secrets("pXXXwwrd", [secret]) == "pXXXwwrd"

    def test_bytes(self):
        assert mask_secrets(b"token=abc123", [b"abc123"]) == b"token=[REDACTED]"

    def test_custom_marker(self):
        assert mask_secrets("user:hunter2", ["hunter2"], "***") == "user:***"

    def test_overlapping_applied_in_order(self):
        """The longer value goes first when listed first."""
        assert mask_secrets("abcdef", ["abcdef", "abc"]) == REDACTED
        assert mask_secrets("abcdef", ["abc", "abcdef"]) == "[REDACTED]def"


class TestStreamRedactor:
    """Default per-chunk mode."""

    def test_masks_within_chunk(self):
        r = StreamRedactor(["sk-123"])
        assert r.feed(b"token sk-123\n") == b"token [REDACTED]\n"
        assert r.flush() == b""

    def test_no_secrets_passthrough(self):
        r = StreamRedactor([])
        assert r.feed(b"plain output") == b"plain output"

    def test_split_secret_not_masked(self):
        """Known gap: a value split across chunks passes through."""
        r = StreamRedactor(["SECRET"])
        out = r.feed(b"xxSEC") + r.feed(b"RETyy") + r.flush()
        assert out == b"xxSECRETyy"

    def test_unicode_secret(self):
        r = StreamRedactor(["pässwörd"])
        assert r.feed("pw=pässwörd".encode()) == b"pw=[REDACTED]"

    def test_custom_marker(self):
        r = StreamRedactor(["abc"], marker="***")
        assert r.feed(b"abc") == b"***"

    @pytest.mark.parametrize("hold_tail", [False, True])
    def test_nested_secret_masked_whole(self, hold_tail):
        """A value containing another value is replaced as one."""
        r = StreamRedactor(["abc", "abcdef"], hold_tail=hold_tail)
        out = r.feed(b"x=abcdef y=abc\n") + r.flush()
        assert out == b"x=[REDACTED] y=[REDACTED]\n"


class TestHeldTail:
    """hold_tail=True closes the chunk-boundary gap."""

    @pytest.fixture
    def redactor(self):
        return StreamRedactor(["SECRET", "tok"], hold_tail=True)

    def test_split_secret_masked(self, redactor):
        first = redactor.feed(b"xxSEC")
        assert first == b"xx"
        out = first + redactor.feed(b"RETyy") + redactor.flush()
        assert out == b"xx[REDACTED]yy"

    def test_split_into_single_bytes(self, redactor):
        data = b"a SECRET b tok c"
        out = b"".join(redactor.feed(data[i:i + 1]) for i in range(len(data)))
        out += redactor.flush()
        assert out == b"a [REDACTED] b [REDACTED] c"

    def test_false_prefix_released(self, redactor):
        out = redactor.feed(b"SECRE") + redactor.feed(b"T? no: SECOND") + redactor.flush()
        assert out == b"[REDACTED]? no: SECOND"

    def test_partial_at_eof(self, redactor):
        assert redactor.feed(b"end SEC") == b"end "
        assert redactor.flush() == b"SEC"

    def test_output_order_preserved(self, redactor):
        chunks = [b"line 1\n", b"line 2 to", b"k\n", b"line 3\n"]
        out = b"".join(redactor.feed(c) for c in chunks) + redactor.flush()
        assert out == b"line 1\nline 2 [REDACTED]\nline 3\n"

    def test_nothing_held_without_prefix(self, redactor):
        assert redactor.feed(b"harmless\n") == b"harmless\n"
