"""Tests for inkport.fingerprint."""

import pytest

from inkport.fingerprint import (
    DIGEST_LENGTH,
    Digest,
    RecoveredPlaceholder,
    ResetPlaceholder,
    SizeFallback,
    fingerprint_bytes,
    fingerprints_match,
    is_sentinel,
    is_trusted,
    parse_fingerprint,
    sha256_bytes,
)


class TestFingerprintBytes:
    def test_digest_is_truncated_sha256(self):
        fp = fingerprint_bytes(b"page one")
        assert isinstance(fp, Digest)
        assert len(str(fp)) == DIGEST_LENGTH
        assert sha256_bytes(b"page one").startswith(str(fp))

    def test_deterministic(self):
        assert fingerprint_bytes(b"abc") == fingerprint_bytes(b"abc")

    def test_different_bytes_differ(self):
        assert fingerprint_bytes(b"abc") != fingerprint_bytes(b"abd")

    def test_empty_bytes_hash(self):
        assert isinstance(fingerprint_bytes(b""), Digest)

    def test_unhashable_falls_back_to_size(self):
        fp = fingerprint_bytes("not bytes")  # type: ignore[arg-type]
        assert fp == SizeFallback(len("not bytes"))
        assert str(fp) == "size-9"


class TestParse:
    def test_digest(self):
        assert parse_fingerprint("9f2c61d0a8b4e377") == Digest("9f2c61d0a8b4e377")

    def test_recovered(self):
        fp = parse_fingerprint("recovered-2048-1700000000")
        assert fp == RecoveredPlaceholder(2048, 1700000000)

    def test_reset(self):
        fp = parse_fingerprint("RESET-2024-05-01T10:00:00+00:00")
        assert fp == ResetPlaceholder("2024-05-01T10:00:00+00:00")

    def test_size(self):
        assert parse_fingerprint("size-12") == SizeFallback(12)

    def test_malformed_recovered_still_placeholder(self):
        assert isinstance(parse_fingerprint("recovered-junk"), RecoveredPlaceholder)

    @pytest.mark.parametrize(
        "fp",
        [Digest("0123456789abcdef"), SizeFallback(7), RecoveredPlaceholder(1, 2), ResetPlaceholder("t")],
    )
    def test_str_parses_back(self, fp):
        assert parse_fingerprint(str(fp)) == fp


class TestTrust:
    def test_only_digest_trusted(self):
        assert is_trusted(Digest("a"))
        assert not is_trusted(SizeFallback(1))
        assert not is_trusted(RecoveredPlaceholder(1, 1))
        assert not is_trusted(ResetPlaceholder("t"))

    def test_sentinels(self):
        assert is_sentinel(RecoveredPlaceholder(1, 1))
        assert is_sentinel(ResetPlaceholder("t"))
        assert not is_sentinel(SizeFallback(1))
        assert not is_sentinel(Digest("a"))

    def test_not_a_fingerprint(self):
        with pytest.raises(TypeError):
            is_trusted("abc")  # type: ignore[arg-type]


class TestMatch:
    def test_equal_digests_match(self):
        assert fingerprints_match(Digest("abc"), Digest("abc"))

    def test_different_digests_do_not_match(self):
        assert not fingerprints_match(Digest("abc"), Digest("abd"))

    def test_recovered_never_matches(self):
        current = fingerprint_bytes(b"x")
        assert not fingerprints_match(RecoveredPlaceholder(1, 1), current)

    def test_reset_never_matches_even_itself(self):
        r = ResetPlaceholder("t")
        assert not fingerprints_match(r, r)

    def test_size_fallbacks_never_match(self):
        assert not fingerprints_match(SizeFallback(5), SizeFallback(5))
