"""Network identifiers and their ledger families."""

from enum import Enum
from typing import Literal, Mapping

from x402_exact.errors import UnsupportedNetworkError


class NetworkFamily(str, Enum):
    EVM = "evm"
    SVM = "svm"
    HEDERA = "hedera"


SupportedNetworks = Literal[
    "base-sepolia",
    "base",
    "avalanche-fuji",
    "avalanche",
    "iotex",
    "sei",
    "sei-testnet",
    "polygon",
    "polygon-amoy",
    "peaq",
    "solana-devnet",
    "solana",
    "hedera-testnet",
    "hedera-mainnet",
]

EVM_NETWORK_TO_CHAIN_ID = {
    "base-sepolia": 84532,
    "base": 8453,
    "avalanche-fuji": 43113,
    "avalanche": 43114,
    "iotex": 4689,
    "sei": 1329,
    "sei-testnet": 1328,
    "polygon": 137,
    "polygon-amoy": 80002,
    "peaq": 3338,
}

SVM_NETWORK_TO_CHAIN_ID = {
    "solana-devnet": 103,
    "solana": 101,
}

HEDERA_NETWORK_TO_CHAIN_ID = {
    "hedera-testnet": 296,
    "hedera-mainnet": 295,
}

SUPPORTED_EVM_NETWORKS = list(EVM_NETWORK_TO_CHAIN_ID)
SUPPORTED_SVM_NETWORKS = list(SVM_NETWORK_TO_CHAIN_ID)
SUPPORTED_HEDERA_NETWORKS = list(HEDERA_NETWORK_TO_CHAIN_ID)

NETWORKS_BY_FAMILY: Mapping[NetworkFamily, Mapping[str, int]] = {
    NetworkFamily.EVM: EVM_NETWORK_TO_CHAIN_ID,
    NetworkFamily.SVM: SVM_NETWORK_TO_CHAIN_ID,
    NetworkFamily.HEDERA: HEDERA_NETWORK_TO_CHAIN_ID,
}

ALL_NETWORKS = [network for table in NETWORKS_BY_FAMILY.values() for network in table]


def get_network_family(network: str) -> NetworkFamily:
    """Classify a network identifier into its ledger family.

    Raises:
        UnsupportedNetworkError: If the network is not in any family table
    """
    for family, table in NETWORKS_BY_FAMILY.items():
        if network in table:
            return family
    raise UnsupportedNetworkError(network)


def build_chain_id_to_network(
    tables: Mapping[NetworkFamily, Mapping[str, int]],
) -> dict[int, str]:
    """Merge the per-family chain id tables into one reverse lookup.

    Raises:
        ValueError: If two networks claim the same chain id
    """
    reverse: dict[int, str] = {}
    for table in tables.values():
        for network, chain_id in table.items():
            if chain_id in reverse:
                raise ValueError(
                    f"Chain id {chain_id} is claimed by both "
                    f"{reverse[chain_id]} and {network}"
                )
            reverse[chain_id] = network
    return reverse


CHAIN_ID_TO_NETWORK = build_chain_id_to_network(NETWORKS_BY_FAMILY)


def get_network_for_chain_id(chain_id: int) -> str:
    try:
        return CHAIN_ID_TO_NETWORK[int(chain_id)]
    except KeyError:
        raise UnsupportedNetworkError(str(chain_id)) from None
