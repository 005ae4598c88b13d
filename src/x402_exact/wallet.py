"""Signers and connected clients for every network family."""

from dataclasses import dataclass
from typing import Any, Optional, Union

from eth_account.signers.local import LocalAccount
from hiero_sdk_python import Client as HederaClient
from solana.rpc.api import Client as SolanaClient
from web3 import Web3

from x402_exact.evm.signers import EvmSigner, create_connected_web3, create_evm_signer
from x402_exact.hedera.wallet import HederaSigner, create_hedera_client, create_hedera_signer
from x402_exact.networks import NetworkFamily, get_network_family
from x402_exact.svm.rpc import get_rpc_client
from x402_exact.svm.wallet import SvmSigner, create_svm_signer

EvmPayer = Union[EvmSigner, LocalAccount]

Signer = Union[EvmSigner, LocalAccount, SvmSigner, HederaSigner]

ConnectedClient = Union[Web3, SolanaClient, HederaClient]


@dataclass(frozen=True)
class MultiNetworkSigner:
    """One signer per family, for clients that can pay on several families."""

    evm: Optional[EvmPayer] = None
    svm: Optional[SvmSigner] = None
    hedera: Optional[HederaSigner] = None

    def for_family(self, family: NetworkFamily) -> Optional[Signer]:
        return {
            NetworkFamily.EVM: self.evm,
            NetworkFamily.SVM: self.svm,
            NetworkFamily.HEDERA: self.hedera,
        }[family]


def is_evm_signer(signer: Any) -> bool:
    return isinstance(signer, (EvmSigner, LocalAccount))


def is_evm_facilitator_signer(signer: Any) -> bool:
    """Settling submits a transaction, so a bare LocalAccount cannot facilitate."""
    return isinstance(signer, EvmSigner)


def is_svm_signer(signer: Any) -> bool:
    return isinstance(signer, SvmSigner)


def is_hedera_signer(signer: Any) -> bool:
    return isinstance(signer, HederaSigner)


def is_multi_network_signer(signer: Any) -> bool:
    return isinstance(signer, MultiNetworkSigner)


def create_signer(
    network: str,
    private_key: str,
    account_id: Optional[str] = None,
    rpc_url: Optional[str] = None,
) -> Signer:
    """
    Create the signer matching a network's family.

    Args:
        network: Network identifier, e.g. "base-sepolia" or "hedera-testnet"
        private_key: Hex key for EVM and Hedera, base58 keypair for Solana
        account_id: Hedera account id owning the key, required for Hedera
        rpc_url: Optional RPC URL override for EVM and Solana

    Raises:
        UnsupportedNetworkError: If the network is unknown
        ValueError: If the key is invalid or a Hedera account id is missing
    """
    family = get_network_family(network)
    if family == NetworkFamily.EVM:
        return create_evm_signer(network, private_key, rpc_url)
    if family == NetworkFamily.SVM:
        return create_svm_signer(network, private_key, rpc_url)
    if not account_id:
        raise ValueError("account_id is required to create a Hedera signer")
    return create_hedera_signer(network, private_key, account_id)


def create_connected_client(network: str, rpc_url: Optional[str] = None) -> ConnectedClient:
    """
    Create a read-only ledger client for a network.

    Raises:
        UnsupportedNetworkError: If the network is unknown
    """
    family = get_network_family(network)
    if family == NetworkFamily.EVM:
        return create_connected_web3(network, rpc_url)
    if family == NetworkFamily.SVM:
        return get_rpc_client(network, rpc_url)
    return create_hedera_client(network)
