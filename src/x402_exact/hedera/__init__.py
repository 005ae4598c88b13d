"""Hedera support for x402 payments."""

from x402_exact.hedera.wallet import HederaSigner, create_hedera_signer, create_hedera_client
from x402_exact.hedera.rpc import get_client, get_mirror_node_url
from x402_exact.hedera.transaction import (
    create_transfer_transaction,
    deserialize_transaction,
    is_native_asset,
    read_transfer_legs,
    serialize_transaction,
)

__all__ = [
    "HederaSigner",
    "create_hedera_signer",
    "create_hedera_client",
    "get_client",
    "get_mirror_node_url",
    "create_transfer_transaction",
    "deserialize_transaction",
    "is_native_asset",
    "read_transfer_legs",
    "serialize_transaction",
]
