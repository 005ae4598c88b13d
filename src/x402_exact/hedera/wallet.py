"""Hedera wallet utilities for x402 payments."""

import logging
from typing import Any, Optional

from hiero_sdk_python import AccountId, Client, PrivateKey
from hiero_sdk_python.transaction.transaction import Transaction

from x402_exact.hedera.rpc import fetch_account_balance, get_client

logger = logging.getLogger(__name__)


class HederaSigner:
    """An operator account bound to a client for one Hedera network.

    Used on both sides: clients sign the payer leg with it, facilitators
    co-sign as fee payer and submit.
    """

    def __init__(
        self,
        network: str,
        client: Client,
        account_id: AccountId,
        private_key: PrivateKey,
    ):
        self.network = network
        self._client = client
        self._account_id = account_id
        self._private_key = private_key

    @property
    def client(self) -> Client:
        return self._client

    @property
    def account_id(self) -> AccountId:
        return self._account_id

    @property
    def private_key(self) -> PrivateKey:
        return self._private_key

    @property
    def address(self) -> str:
        """Get the account id as "shard.realm.num"."""
        return str(self._account_id)

    def freeze(self, transaction: Transaction) -> Transaction:
        transaction.freeze_with(self._client)
        return transaction

    def sign(self, transaction: Transaction) -> Transaction:
        transaction.sign(self._private_key)
        return transaction

    def execute(self, transaction: Transaction) -> Any:
        """Submit a transaction and block until its receipt is available."""
        return transaction.execute(self._client)

    def get_balance(self, account_id: str, asset: str) -> Optional[int]:
        return fetch_account_balance(self.network, account_id, asset)

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        return f"HederaSigner({self.network}, {self.address})"


def create_hedera_signer(network: str, private_key: str, account_id: str) -> HederaSigner:
    """
    Create a signer from an ECDSA private key and its account id.

    Args:
        network: "hedera-testnet" or "hedera-mainnet"
        private_key: Hex encoded ECDSA private key
        account_id: Account id, e.g. "0.0.123456"

    Returns:
        HederaSigner with the client operator set to this account

    Raises:
        ValueError: If the key or account id cannot be parsed
    """
    if not account_id:
        raise ValueError("account_id is required to create a Hedera signer")
    try:
        key = PrivateKey.from_string_ecdsa(private_key)
        account = AccountId.from_string(account_id)
    except Exception as e:
        raise ValueError(f"Invalid Hedera credentials: {e}") from e

    client = get_client(network)
    client.set_operator(account, key)
    logger.debug("Created Hedera signer for %s on %s", account, network)
    return HederaSigner(network, client, account, key)


def create_hedera_client(network: str) -> Client:
    """Create a read-only Hedera client without an operator."""
    return get_client(network)
