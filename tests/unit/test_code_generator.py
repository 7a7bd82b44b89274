"""Unit tests for access code format rules and generation."""

from agora_authz.kernel.access_codes.generator import (
    generate_candidate,
    has_repeated_run,
    has_sequential_run,
    is_acceptable,
    normalize_code,
)

ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


class TestNormalizeCode:
    """Tests for normalize_code."""

    def test_uppercases_and_strips(self):
        assert normalize_code("  abcd2345  ", 8, 15) == "ABCD2345"

    def test_digit_only_codes_are_well_formed(self):
        assert normalize_code("0000000001", 8, 15) == "0000000001"

    def test_rejects_punctuation(self):
        assert normalize_code("bad-format!!", 8, 15) is None

    def test_rejects_length_outside_bounds(self):
        assert normalize_code("ABC2345", 8, 15) is None
        assert normalize_code("A" * 16, 8, 15) is None

    def test_rejects_none_and_empty(self):
        assert normalize_code(None, 8, 15) is None
        assert normalize_code("", 8, 15) is None


class TestAcceptability:
    """Tests for the low-entropy filters."""

    def test_repeated_run(self):
        assert has_repeated_run("AB222CDEFG")
        assert not has_repeated_run("AB22CDEFG")

    def test_sequential_letters_and_digits(self):
        assert has_sequential_run("XXABCYY")
        assert has_sequential_run("QP345ZZ")

    def test_no_run_across_letter_digit_boundary(self):
        assert not has_sequential_run("Z9A8B7")

    def test_is_acceptable(self):
        assert is_acceptable("H7KQ2MXP9W")
        assert not is_acceptable("AAAB7KQ2MX")
        assert not is_acceptable("H7KQ234PXW")


class TestGenerateCandidate:

    def test_length_and_alphabet(self):
        for _ in range(50):
            code = generate_candidate(10, ALPHABET)
            assert len(code) == 10
            assert set(code) <= set(ALPHABET)

    def test_candidates_differ(self):
        codes = {generate_candidate(10, ALPHABET) for _ in range(20)}
        assert len(codes) > 1
