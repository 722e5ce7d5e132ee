"""Tests for credential derivation."""

import pytest

from borrower_cli_tester.credentials import (
    LAVA_PUBKEY,
    build_credentials,
    derive_btc_address,
    generate_mnemonic,
)
from borrower_cli_tester.errors import CryptoError

ABANDON_ABOUT = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
ABANDON_ABOUT_ADDRESS = "tb1q6rz28mcfaxtmd6v789l9rrlrusdprr9pqcpvkl"


class TestGenerateMnemonic:
    """Tests for generate_mnemonic."""

    def test_generates_twelve_words(self) -> None:
        """Generates a 12-word phrase."""
        assert len(generate_mnemonic().split()) == 12

    def test_generated_phrase_is_derivable(self) -> None:
        """Generated phrases carry a valid checksum."""
        address = derive_btc_address(generate_mnemonic())

        assert address.startswith("tb1q")

    def test_generates_distinct_phrases(self) -> None:
        """Each call draws fresh entropy."""
        assert generate_mnemonic() != generate_mnemonic()

    def test_raises_crypto_error_without_random_source(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Reports an unavailable random source as CryptoError."""

        def unavailable(nbytes: int) -> bytes:
            raise OSError("no entropy")

        monkeypatch.setattr(
            "borrower_cli_tester.credentials.secrets.token_bytes", unavailable
        )

        with pytest.raises(CryptoError, match="Failed to generate mnemonic"):
            generate_mnemonic()


class TestDeriveBtcAddress:
    """Tests for derive_btc_address."""

    def test_derives_known_vector(self) -> None:
        """Derives the BIP-84 testnet address of the abandon/about vector."""
        assert derive_btc_address(ABANDON_ABOUT) == ABANDON_ABOUT_ADDRESS

    def test_is_deterministic(self) -> None:
        """Repeated derivations of one phrase are identical."""
        mnemonic = generate_mnemonic()

        addresses = {derive_btc_address(mnemonic) for _ in range(3)}

        assert len(addresses) == 1

    def test_different_phrases_give_different_addresses(self) -> None:
        """Distinct phrases map to distinct addresses."""
        assert derive_btc_address(generate_mnemonic()) != ABANDON_ABOUT_ADDRESS

    @pytest.mark.parametrize(
        "mnemonic",
        [
            " ".join(["abandon"] * 12),
            ABANDON_ABOUT.replace("about", "above"),
            "not a mnemonic at all",
            "",
        ],
    )
    def test_rejects_invalid_phrase(self, mnemonic: str) -> None:
        """Raises CryptoError for bad checksums and unknown words."""
        with pytest.raises(CryptoError, match="Invalid mnemonic"):
            derive_btc_address(mnemonic)

    def test_rejects_non_english_phrase(self) -> None:
        """Only the English wordlist is accepted."""
        french = " ".join(["abaisser"] * 11 + ["abeille"])

        with pytest.raises(CryptoError, match="Invalid mnemonic"):
            derive_btc_address(french)


class TestBuildCredentials:
    """Tests for build_credentials."""

    def test_uses_provided_mnemonic(self) -> None:
        """Keeps a caller supplied phrase and derives its address."""
        credentials = build_credentials(ABANDON_ABOUT)

        assert credentials.mnemonic == ABANDON_ABOUT
        assert credentials.btc_address == ABANDON_ABOUT_ADDRESS
        assert credentials.generated is False

    def test_generates_mnemonic_when_missing(self) -> None:
        """Generates a phrase when none is supplied."""
        credentials = build_credentials()

        assert credentials.generated is True
        assert credentials.btc_address == derive_btc_address(credentials.mnemonic)

    def test_uses_static_lava_pubkey(self) -> None:
        """The counterparty key is the fixed faucet recipient."""
        assert build_credentials(ABANDON_ABOUT).lava_pubkey == LAVA_PUBKEY
        assert build_credentials().lava_pubkey == LAVA_PUBKEY

    def test_propagates_invalid_mnemonic(self) -> None:
        """Invalid supplied phrases fail with CryptoError."""
        with pytest.raises(CryptoError):
            build_credentials("abandon abandon")
