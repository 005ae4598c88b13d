"""Hedera client and mirror node utilities for x402 payments."""

import logging
from typing import Optional

import httpx
from hiero_sdk_python import Client, Network

from x402_exact.errors import UnsupportedNetworkError
from x402_exact.hedera.transaction import is_native_asset

logger = logging.getLogger(__name__)

# Hedera network names understood by the SDK
SDK_NETWORK_NAMES = {
    "hedera-testnet": "testnet",
    "hedera-mainnet": "mainnet",
}

MIRROR_NODE_URLS = {
    "hedera-testnet": "https://testnet.mirrornode.hedera.com",
    "hedera-mainnet": "https://mainnet-public.mirrornode.hedera.com",
}


def get_mirror_node_url(network: str, custom_url: Optional[str] = None) -> str:
    """
    Get the mirror node REST URL for a Hedera network.

    Args:
        network: Network name ("hedera-testnet" or "hedera-mainnet")
        custom_url: Optional custom mirror node URL

    Returns:
        Mirror node base URL

    Raises:
        UnsupportedNetworkError: If network is not a Hedera network
    """
    if custom_url:
        return custom_url.rstrip("/")
    if network not in MIRROR_NODE_URLS:
        raise UnsupportedNetworkError(network)
    return MIRROR_NODE_URLS[network]


def get_client(network: str) -> Client:
    """
    Create a Hedera client for the given network without an operator.

    Raises:
        UnsupportedNetworkError: If network is not a Hedera network
    """
    if network not in SDK_NETWORK_NAMES:
        raise UnsupportedNetworkError(network)
    return Client(Network(network=SDK_NETWORK_NAMES[network]))


def fetch_account_balance(
    network: str,
    account_id: str,
    asset: str,
    http_client: Optional[httpx.Client] = None,
    mirror_node_url: Optional[str] = None,
) -> Optional[int]:
    """Look up an account's balance of HBAR or a token on the mirror node.

    Returns:
        Balance in tinybars or token base units, or None when the mirror
        node could not answer
    """
    url = f"{get_mirror_node_url(network, mirror_node_url)}/api/v1/accounts/{account_id}"
    client = http_client or httpx.Client(timeout=10.0)
    try:
        response = client.get(url)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Mirror node balance lookup failed for %s: %s", account_id, e)
        return None
    finally:
        if http_client is None:
            client.close()

    balance = data.get("balance") or {}
    if is_native_asset(asset):
        return balance.get("balance")
    for token in balance.get("tokens", []):
        if token.get("token_id") == asset:
            return token.get("balance")
    # the account payload only lists a page of token balances
    return None
