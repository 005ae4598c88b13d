"""Solana wallet utilities for x402 payments."""

from typing import Optional

import base58
from solana.rpc.api import Client
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from x402_exact.svm.rpc import get_rpc_client


class SvmSigner:
    """A Solana keypair together with an RPC client for one network."""

    def __init__(self, network: str, keypair: Keypair, client: Client):
        self.network = network
        self._keypair = keypair
        self._client = client

    @property
    def keypair(self) -> Keypair:
        """Get the underlying Solders keypair."""
        return self._keypair

    @property
    def client(self) -> Client:
        return self._client

    @property
    def pubkey(self) -> Pubkey:
        """Get the public key."""
        return self._keypair.pubkey()

    @property
    def address(self) -> str:
        """Get the base58-encoded address."""
        return str(self.pubkey)

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        return f"SvmSigner({self.network}, {self.address})"


def create_svm_signer(
    network: str, private_key: str, custom_rpc_url: Optional[str] = None
) -> SvmSigner:
    """
    Create a signer from a base58-encoded private key.

    Args:
        network: "solana" or "solana-devnet"
        private_key: Base58-encoded private key (64 bytes)
        custom_rpc_url: Optional RPC URL overriding the network default

    Returns:
        SvmSigner instance

    Raises:
        ValueError: If the key cannot be decoded
    """
    try:
        secret_bytes = base58.b58decode(private_key)
        keypair = Keypair.from_bytes(secret_bytes)
    except Exception as e:
        raise ValueError(f"Invalid base58 private key: {e}") from e
    return SvmSigner(network, keypair, get_rpc_client(network, custom_rpc_url))


def generate_svm_signer(network: str, custom_rpc_url: Optional[str] = None) -> SvmSigner:
    """Generate a signer with a new random keypair."""
    return SvmSigner(network, Keypair(), get_rpc_client(network, custom_rpc_url))
