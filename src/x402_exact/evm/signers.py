"""EVM signers backed by eth_account and web3.py."""

import logging
from typing import Any, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

from x402_exact.errors import UnsupportedNetworkError
from x402_exact.evm.constants import DEFAULT_GAS_LIMIT, DEFAULT_RPC_URLS, ERC20_ABI

logger = logging.getLogger(__name__)


def get_rpc_url(network: str, custom_url: Optional[str] = None) -> str:
    """
    Get the JSON-RPC URL for an EVM network.

    Raises:
        UnsupportedNetworkError: If network is not an EVM network
    """
    if network not in DEFAULT_RPC_URLS:
        raise UnsupportedNetworkError(network)
    return custom_url or DEFAULT_RPC_URLS[network]


def create_connected_web3(network: str, custom_url: Optional[str] = None) -> Web3:
    """Create a Web3 client for a network, with PoA extra-data support for testnets."""
    w3 = Web3(Web3.HTTPProvider(get_rpc_url(network, custom_url)))
    w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


class EvmSigner:
    """A local account bound to a web3 connection for one EVM network.

    Clients use it to sign EIP-3009 authorizations; facilitators use it to
    read token state and submit transferWithAuthorization.
    """

    def __init__(self, network: str, account: LocalAccount, w3: Web3):
        self.network = network
        self._account = account
        self._w3 = w3

    @property
    def account(self) -> LocalAccount:
        return self._account

    @property
    def w3(self) -> Web3:
        return self._w3

    @property
    def address(self) -> str:
        return self._account.address

    def read_contract(
        self,
        address: str,
        abi: list[dict[str, Any]],
        function_name: str,
        *args: Any,
    ) -> Any:
        """Call a view function of a contract.

        Args:
            address: Contract address.
            abi: Contract ABI.
            function_name: Function to call.
            *args: Function arguments.

        Returns:
            Function return value.
        """
        contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=abi,
        )
        func = getattr(contract.functions, function_name)
        return func(*args).call()

    def write_contract(
        self,
        address: str,
        abi: list[dict[str, Any]],
        function_name: str,
        *args: Any,
    ) -> str:
        """Sign and send a contract call from this account.

        The nonce is read from the node for every call, including pending
        transactions.

        Returns:
            Transaction hash.
        """
        contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=abi,
        )
        func = getattr(contract.functions, function_name)

        tx = func(*args).build_transaction(
            {
                "from": self._account.address,
                "nonce": self._w3.eth.get_transaction_count(self._account.address, "pending"),
                "gas": DEFAULT_GAS_LIMIT,
                "gasPrice": self._w3.eth.gas_price,
            }
        )

        signed_tx = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return Web3.to_hex(tx_hash)

    def wait_for_transaction_receipt(self, tx_hash: str, timeout: float) -> Any:
        """Block until the transaction is mined.

        Raises:
            web3.exceptions.TimeExhausted: If no receipt arrives in time
        """
        return self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)

    def get_balance(self, address: str, token_address: str) -> int:
        """Get ERC20 token balance."""
        return self.read_contract(
            token_address, ERC20_ABI, "balanceOf", Web3.to_checksum_address(address)
        )

    def __repr__(self) -> str:
        return f"EvmSigner({self.network}, {self.address})"


def create_evm_signer(
    network: str, private_key: str, custom_rpc_url: Optional[str] = None
) -> EvmSigner:
    """Create a signer from a hex private key, with or without 0x prefix.

    Raises:
        ValueError: If the key cannot be parsed
    """
    if not private_key.startswith("0x"):
        private_key = "0x" + private_key
    account = Account.from_key(private_key)
    return EvmSigner(network, account, create_connected_web3(network, custom_rpc_url))
