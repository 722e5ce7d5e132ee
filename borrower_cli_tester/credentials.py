"""Deterministic credential derivation for a test run."""

import secrets
from dataclasses import dataclass

from bip_utils import (
    Bip32KeyError,
    Bip39Languages,
    Bip39MnemonicGenerator,
    Bip39MnemonicValidator,
    Bip39SeedGenerator,
    Bip44Changes,
    Bip84,
    Bip84Coins,
)

from borrower_cli_tester.errors import CryptoError

ENTROPY_BYTES = 16  # 128 bits, 12 words

# Known working LavaUSD faucet recipient. Not derived from the mnemonic.
LAVA_PUBKEY = "CU9KRXJobqo1HVbaJwoWpnboLFXw3bef54xJ1dewXzcf"


@dataclass(frozen=True, kw_only=True)
class CredentialSet:
    """Credentials owned by a single run."""

    mnemonic: str
    btc_address: str
    lava_pubkey: str
    generated: bool


def generate_mnemonic() -> str:
    """Generate a fresh 12-word English BIP-39 mnemonic."""
    try:
        entropy = secrets.token_bytes(ENTROPY_BYTES)
    except OSError as e:
        raise CryptoError(f"Failed to generate mnemonic: {e}") from e

    return Bip39MnemonicGenerator(Bip39Languages.ENGLISH).FromEntropy(entropy).ToStr()


def derive_btc_address(mnemonic: str) -> str:
    """Derive the first native segwit testnet address of a mnemonic.

    The seed uses an empty passphrase and the key is taken at
    m/84'/1'/0'/0/0.

    Args:
        mnemonic: BIP-39 phrase

    Returns:
        A bech32 P2WPKH testnet address (tb1...)

    Raises:
        CryptoError: If the phrase is invalid or derivation fails

    """
    if not Bip39MnemonicValidator(Bip39Languages.ENGLISH).IsValid(mnemonic):
        raise CryptoError("Invalid mnemonic: checksum or word list mismatch")

    try:
        seed = Bip39SeedGenerator(mnemonic, Bip39Languages.ENGLISH).Generate("")
        address_ctx = (
            Bip84.FromSeed(seed, Bip84Coins.BITCOIN_TESTNET)
            .Purpose()
            .Coin()
            .Account(0)
            .Change(Bip44Changes.CHAIN_EXT)
            .AddressIndex(0)
        )
        return address_ctx.PublicKey().ToAddress()
    except (Bip32KeyError, ValueError) as e:
        raise CryptoError(f"Failed to derive address: {e}") from e


def build_credentials(mnemonic: str | None = None) -> CredentialSet:
    """Build the credential set for a run, generating a mnemonic if needed."""
    generated = mnemonic is None
    phrase = generate_mnemonic() if mnemonic is None else mnemonic

    return CredentialSet(
        mnemonic=phrase,
        btc_address=derive_btc_address(phrase),
        lava_pubkey=LAVA_PUBKEY,
        generated=generated,
    )
