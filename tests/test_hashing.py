"""Tests for the bucketing hash."""

from __future__ import annotations

from collections import Counter

import pytest

from litestar_flagchain.hashing import bucket_for, murmur3_32


class TestMurmur3:
    """Tests for the MurmurHash3 x86 32-bit implementation."""

    @pytest.mark.parametrize(
        ("data", "seed", "expected"),
        [
            (b"", 0, 0),
            (b"", 1, 0x514E28B7),
            (b"hello", 0, 0x248BFA47),
            (b"The quick brown fox jumps over the lazy dog", 0, 0x2E4FF723),
        ],
    )
    def test_known_vectors(self, data: bytes, seed: int, expected: int) -> None:
        """Test against published reference values."""
        assert murmur3_32(data, seed) == expected

    def test_result_is_unsigned_32_bit(self) -> None:
        """Test that every result fits in an unsigned 32-bit integer."""
        for i in range(200):
            value = murmur3_32(f"key-{i}".encode())
            assert 0 <= value <= 0xFFFFFFFF

    def test_tail_lengths_differ(self) -> None:
        """Test inputs whose lengths exercise each tail branch."""
        values = {murmur3_32(b"a" * n) for n in range(1, 9)}
        assert len(values) == 8


class TestBucketFor:
    """Tests for bucket_for."""

    def test_deterministic(self) -> None:
        """Test that the same key and identity always land in the same bucket."""
        assert bucket_for("beta-x", "user-1visitor-1") == bucket_for("beta-x", "user-1visitor-1")

    def test_matches_hash_of_concatenation(self) -> None:
        """Test that the bucket is the hash of key plus identity."""
        expected = murmur3_32(b"beta-xuser-1visitor-1") % 100
        assert bucket_for("beta-x", "user-1visitor-1") == expected

    def test_custom_bucket_count(self) -> None:
        """Test bucket ranges for a custom bucket count."""
        assert all(0 <= bucket_for("flag", f"id-{i}", 3) < 3 for i in range(100))

    def test_distribution_is_roughly_uniform(self) -> None:
        """Test that identities spread across the buckets."""
        counts = Counter(bucket_for("spread", f"visitor-{i}", 10) for i in range(10_000))
        assert len(counts) == 10
        assert all(800 <= count <= 1200 for count in counts.values())
