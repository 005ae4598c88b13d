"""Solana RPC endpoints and clients."""

from typing import Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed

from x402_exact.errors import UnsupportedNetworkError

DEFAULT_RPC_URLS = {
    "solana-devnet": "https://api.devnet.solana.com",
    "solana": "https://api.mainnet-beta.solana.com",
}

RPC_TIMEOUT_SECONDS = 10


def get_rpc_url(network: str, custom_url: Optional[str] = None) -> str:
    """
    Resolve the RPC endpoint of a Solana network.

    Raises:
        UnsupportedNetworkError: If network is not "solana" or "solana-devnet"
    """
    if network not in DEFAULT_RPC_URLS:
        raise UnsupportedNetworkError(network)
    return custom_url or DEFAULT_RPC_URLS[network]


def get_rpc_client(network: str, custom_url: Optional[str] = None) -> Client:
    """Create an RPC client reading at confirmed commitment."""
    return Client(
        get_rpc_url(network, custom_url), commitment=Confirmed, timeout=RPC_TIMEOUT_SECONDS
    )
