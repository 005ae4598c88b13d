from typing import TypedDict

from x402_exact.errors import UnsupportedNetworkError
from x402_exact.networks import NETWORKS_BY_FAMILY

NETWORK_TO_ID = {
    network: str(chain_id)
    for table in NETWORKS_BY_FAMILY.values()
    for network, chain_id in table.items()
}


def get_chain_id(network: str) -> str:
    """Get the chain ID for a given network
    Supports string encoded chain IDs and human readable networks
    """
    try:
        int(network)
        return network
    except ValueError:
        pass
    if network not in NETWORK_TO_ID:
        raise UnsupportedNetworkError(network)
    return NETWORK_TO_ID[network]


class KnownToken(TypedDict):
    human_name: str
    address: str
    name: str
    decimals: int
    version: str


def _usdc(address: str, name: str = "USDC", version: str = "2") -> KnownToken:
    return {
        "human_name": "usdc",
        "address": address,
        "name": name,  # needs to be exactly what is returned by name() on contract
        "decimals": 6,
        "version": version,
    }


KNOWN_TOKENS: dict[str, list[KnownToken]] = {
    "84532": [_usdc("0x036CbD53842c5426634e7929541eC2318f3dCF7e")],
    "8453": [_usdc("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", "USD Coin")],
    "43113": [_usdc("0x5425890298aed601595a70AB815c96711a31Bc65", "USD Coin")],
    "43114": [_usdc("0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E", "USD Coin")],
    "4689": [_usdc("0xcdf79194c6c285077a58da47641d4dbe51f63542", "Bridged USDC")],
    "1329": [_usdc("0xe15fC38F6D8c56aF07bbCBe3BAf5708A2Bf42392")],
    "1328": [_usdc("0x4fCF1784B31630811181f670Aea7A7bEF803eaED")],
    "137": [_usdc("0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", "USD Coin")],
    "80002": [_usdc("0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582")],
    "3338": [_usdc("0xbbA60da06c2c5424f03f7434542280FCAd453d10")],
    "103": [_usdc("4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU", version="")],
    "101": [_usdc("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", version="")],
    "296": [_usdc("0.0.429274", version="")],
    "295": [_usdc("0.0.456858", version="")],
}


def _find_token(chain_id: str, address: str) -> KnownToken:
    for token in KNOWN_TOKENS.get(chain_id, []):
        if token["address"].lower() == address.lower():
            return token
    raise ValueError(f"Token not found for chain {chain_id} and address {address}")


def get_token_name(chain_id: str, address: str) -> str:
    """Get the token name for a given chain and address"""
    return _find_token(chain_id, address)["name"]


def get_token_version(chain_id: str, address: str) -> str:
    """Get the token version for a given chain and address"""
    return _find_token(chain_id, address)["version"]


def get_token_decimals(chain_id: str, address: str) -> int:
    """Get the token decimals for a given chain and address"""
    return _find_token(chain_id, address)["decimals"]


def get_default_token_address(chain_id: str, token_type: str = "usdc") -> str:
    """Get the default token address for a given chain and token type"""
    for token in KNOWN_TOKENS.get(chain_id, []):
        if token["human_name"] == token_type:
            return token["address"]
    raise ValueError(f"Token type '{token_type}' not found for chain {chain_id}")
