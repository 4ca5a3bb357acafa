"""
Tests for BIP39 mnemonic generation, validation and seed derivation.
"""

import pytest

from walletcore.errors import InvalidMnemonic, InvalidWordCount
from walletcore.wallet.mnemonic import (
    entropy_to_mnemonic,
    generate_mnemonic,
    get_wordlist,
    mnemonic_to_entropy,
    mnemonic_to_seed,
    validate_mnemonic,
)


class TestWordlist:
    def test_english_wordlist(self):
        words = get_wordlist()
        assert len(words) == 2048
        assert words[0] == "abandon"
        assert words[-1] == "zoo"


class TestEntropyToMnemonic:
    """Reference vectors from the BIP39 test suite."""

    def test_zero_entropy_12_words(self):
        assert entropy_to_mnemonic(bytes(16)) == "abandon " * 11 + "about"

    def test_7f_entropy(self):
        assert entropy_to_mnemonic(b"\x7f" * 16) == (
            "legal winner thank year wave sausage worth useful legal winner thank yellow"
        )

    def test_ff_entropy(self):
        assert entropy_to_mnemonic(b"\xff" * 16) == "zoo " * 11 + "wrong"

    def test_zero_entropy_24_words(self):
        assert entropy_to_mnemonic(bytes(32)) == "abandon " * 23 + "art"

    def test_bad_entropy_length(self):
        with pytest.raises(ValueError):
            entropy_to_mnemonic(bytes(15))

    def test_entropy_recovered(self):
        entropy = bytes(range(32))
        assert mnemonic_to_entropy(entropy_to_mnemonic(entropy)) == entropy


class TestGenerate:
    @pytest.mark.parametrize("word_count", [12, 24])
    def test_word_counts(self, word_count):
        mnemonic = generate_mnemonic(word_count)
        assert len(mnemonic.split()) == word_count
        assert validate_mnemonic(mnemonic)

    def test_default_is_24(self):
        assert len(generate_mnemonic().split()) == 24

    @pytest.mark.parametrize("word_count", [0, 11, 15, 18, 25])
    def test_invalid_word_count(self, word_count):
        with pytest.raises(InvalidWordCount) as exc_info:
            generate_mnemonic(word_count)
        assert exc_info.value.word_count == word_count

    def test_fresh_entropy(self):
        assert generate_mnemonic(12) != generate_mnemonic(12)


class TestValidate:
    def test_valid(self, test_mnemonic):
        assert validate_mnemonic(test_mnemonic)

    def test_bad_checksum(self):
        assert not validate_mnemonic("abandon " * 12)

    def test_unknown_word(self):
        assert not validate_mnemonic("abandon " * 11 + "bitcoinz")

    def test_wrong_length(self):
        assert not validate_mnemonic("abandon " * 10 + "about")

    def test_empty(self):
        assert not validate_mnemonic("")

    def test_extra_whitespace_ok(self):
        assert validate_mnemonic("  abandon  " * 11 + "about\n")

    def test_entropy_raises_for_invalid(self):
        with pytest.raises(InvalidMnemonic):
            mnemonic_to_entropy("abandon " * 12)


class TestSeed:
    def test_reference_seed(self, test_mnemonic):
        seed = mnemonic_to_seed(test_mnemonic)
        assert seed.hex() == (
            "5eb00bbddcf069084889a8ab9155568165f5c453ccb85e70811aaed6f6da5fc1"
            "9a5ac40b389cd370d086206dec8aa6c43daea6690f20ad3d8d48b2d2ce9e38e4"
        )

    def test_passphrase_trezor_vector(self, test_mnemonic):
        seed = mnemonic_to_seed(test_mnemonic, "TREZOR")
        assert seed.hex() == (
            "c55257c360c07c72029aebc1b53c05ed0362ada38ead3e3e9efa3708e5349553"
            "1f09a6987599d18264c1e1c92f2cf141630c7a3c4ab7c81b2f001698e7463b04"
        )

    def test_seed_length(self, test_mnemonic):
        assert len(mnemonic_to_seed(test_mnemonic, "x")) == 64

    def test_invalid_mnemonic_rejected(self):
        with pytest.raises(InvalidMnemonic):
            mnemonic_to_seed("abandon " * 12)
