"""Tests for fingerprint distance metrics."""

import math

import pytest
from hypothesis import assume, given, strategies as st

from thumbwatch.dedup.distance import (
    INCOMPARABLE,
    PackedFingerprint,
    hamming_distance,
    is_comparable,
    pack_fingerprint,
    packed_distance,
    within_threshold,
)

hex_strings = st.text(alphabet="0123456789abcdef", min_size=1, max_size=64)


class TestHammingDistance:
    def test_known_values(self):
        """0x0 ^ 0x1 has one differing bit; 0x0f ^ 0xf0 has eight."""
        assert hamming_distance("0", "1") == 1
        assert hamming_distance("0", "f") == 4
        assert hamming_distance("0f", "f0") == 8
        assert hamming_distance("abc123", "abc123") == 0

    def test_length_mismatch_is_incomparable(self):
        assert hamming_distance("abc", "ab") == INCOMPARABLE
        assert math.isinf(hamming_distance("abc", "ab"))

    def test_empty_is_incomparable(self):
        assert hamming_distance("", "") == INCOMPARABLE
        assert hamming_distance("", "0") == INCOMPARABLE

    def test_non_hex_is_incomparable(self):
        assert hamming_distance("zz", "00") == INCOMPARABLE

    def test_uppercase_digits_compare_like_lowercase(self):
        assert hamming_distance("ABC", "abc") == 0

    def test_distance_is_an_int(self):
        assert isinstance(hamming_distance("0123", "3210"), int)

    @given(a=hex_strings)
    def test_identity(self, a):
        assert hamming_distance(a, a) == 0

    @given(data=st.data(), length=st.integers(min_value=1, max_value=64))
    def test_symmetry(self, data, length):
        strategy = st.text(alphabet="0123456789abcdef", min_size=length, max_size=length)
        a = data.draw(strategy)
        b = data.draw(strategy)
        assert hamming_distance(a, b) == hamming_distance(b, a)

    @given(data=st.data(), length=st.integers(min_value=1, max_value=32))
    def test_bounded_by_bit_count(self, data, length):
        strategy = st.text(alphabet="0123456789abcdef", min_size=length, max_size=length)
        a = data.draw(strategy)
        b = data.draw(strategy)
        assert 0 <= hamming_distance(a, b) <= 4 * length

    @given(a=hex_strings, b=hex_strings)
    def test_unequal_lengths_never_raise(self, a, b):
        assume(len(a) != len(b))
        assert hamming_distance(a, b) == INCOMPARABLE


class TestHelpers:
    def test_is_comparable(self):
        assert is_comparable("00", "ff")
        assert not is_comparable("00", "fff")
        assert not is_comparable("", "")

    def test_within_threshold(self):
        assert within_threshold(pack_fingerprint("00"), pack_fingerprint("01"), threshold=1)
        assert not within_threshold(pack_fingerprint("00"), pack_fingerprint("03"), threshold=1)
        assert not within_threshold(pack_fingerprint("00"), pack_fingerprint("000"), threshold=100)


class TestPackedFingerprint:
    def test_pack(self):
        assert pack_fingerprint("0f") == PackedFingerprint(2, 15)
        assert pack_fingerprint("0F") == PackedFingerprint(2, 15)

    @pytest.mark.parametrize("fingerprint", ["", "zz", " ff", "0x1f", "f_f", "+1"])
    def test_rejects_anything_but_hex_digits(self, fingerprint):
        assert pack_fingerprint(fingerprint) is None

    def test_leading_zeros_keep_length(self):
        """00ff and ff share a value but not a length, so they never compare."""
        assert packed_distance(pack_fingerprint("00ff"), pack_fingerprint("ff")) == INCOMPARABLE
        assert packed_distance(pack_fingerprint("00ff"), pack_fingerprint("0000")) == 8

    def test_unparsed_is_incomparable(self):
        assert packed_distance(None, pack_fingerprint("00")) == INCOMPARABLE

    @given(data=st.data(), length=st.integers(min_value=1, max_value=64))
    def test_agrees_with_hamming_distance(self, data, length):
        strategy = st.text(alphabet="0123456789abcdefABCDEF", min_size=length, max_size=length)
        a = data.draw(strategy)
        b = data.draw(strategy)
        assert packed_distance(pack_fingerprint(a), pack_fingerprint(b)) == hamming_distance(a, b)
