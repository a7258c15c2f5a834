"""Tests for word, nickname and user id normalization."""
import pytest

from closeword.utils.exceptions import (
    InvalidNicknameError,
    InvalidUserIdError,
    InvalidWordError,
)
from closeword.utils.ranks import rank_tier
from closeword.utils.words import normalize_nickname, normalize_user_id, normalize_word


class TestNormalizeWord:

    def test_trims_and_lowercases(self):
        assert normalize_word("  Praia ") == "praia"

    def test_composes_unicode(self):
        # "e" followed by a combining acute accent
        assert normalize_word("Cafe\u0301") == "caf\u00e9"

    @pytest.mark.parametrize("raw", [None, "", "   ", "\t\n"])
    def test_rejects_empty(self, raw):
        with pytest.raises(InvalidWordError):
            normalize_word(raw)

    def test_rejects_multiple_words(self):
        with pytest.raises(InvalidWordError):
            normalize_word("dois sois")

    def test_rejects_long_words(self):
        with pytest.raises(InvalidWordError):
            normalize_word("a" * 11, max_length=10)
        assert normalize_word("a" * 10, max_length=10) == "a" * 10


class TestNormalizeNickname:

    def test_collapses_whitespace(self):
        assert normalize_nickname("  Ana   Maria ") == "Ana Maria"

    def test_keeps_case(self):
        assert normalize_nickname("Bob") == "Bob"

    @pytest.mark.parametrize("raw", [None, "", "    "])
    def test_rejects_blank(self, raw):
        with pytest.raises(InvalidNicknameError):
            normalize_nickname(raw)

    def test_rejects_long(self):
        with pytest.raises(InvalidNicknameError):
            normalize_nickname("x" * 5, max_length=4)


class TestNormalizeUserId:

    def test_strips(self):
        assert normalize_user_id("  abc-123 ") == "abc-123"

    @pytest.mark.parametrize("raw", [None, "", "  ", "a b", "x" * 65])
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidUserIdError):
            normalize_user_id(raw)


@pytest.mark.parametrize(
    "rank,tier",
    [(None, None), (1, "winner"), (2, "hot"), (100, "hot"), (101, "warm"), (1000, "warm"), (1001, "cold")],
)
def test_rank_tier(rank, tier):
    assert rank_tier(rank) == tier
