"""Hedera transfer transaction utilities for x402 payments."""

import base64
from dataclasses import dataclass, field
from typing import Any

from hiero_sdk_python import AccountId, TokenId, TransactionId, TransferTransaction
from hiero_sdk_python.transaction.transaction import Transaction

from x402_exact.errors import InvalidAmountError

# Asset identifiers meaning "pay in HBAR", compared case-insensitively
NATIVE_ASSET_SENTINELS = frozenset({"0.0.0", "hbar"})

# Hedera transfer amounts are signed 64-bit integers
MAX_TRANSFER_AMOUNT = 2**63 - 1


def is_native_asset(asset: str) -> bool:
    """Return True if the asset identifier denotes HBAR rather than a token."""
    return asset.strip().lower() in NATIVE_ASSET_SENTINELS


def check_transfer_amount(amount: int) -> int:
    """
    Ensure an amount can be carried by a Hedera transfer leg.

    Raises:
        InvalidAmountError: If the amount is zero or does not fit in int64
    """
    if amount <= 0:
        raise InvalidAmountError("Hedera transfer amount must be greater than zero")
    if amount > MAX_TRANSFER_AMOUNT:
        raise InvalidAmountError(f"Hedera transfer amount {amount} exceeds int64 range")
    return amount


def create_transfer_transaction(
    payer: str,
    pay_to: str,
    asset: str,
    amount: int,
    fee_payer: str,
) -> TransferTransaction:
    """
    Build an unsigned, unfrozen transfer of `amount` from payer to pay_to.

    The transaction id is generated from the fee payer's account so the
    facilitator is the one charged for network fees.

    Args:
        payer: Account id debited, e.g. "0.0.123456"
        pay_to: Account id credited
        asset: "0.0.0"/"hbar" for HBAR, otherwise a token id
        amount: Amount in tinybars or token base units
        fee_payer: Facilitator account id

    Returns:
        TransferTransaction with one debit and one credit leg
    """
    check_transfer_amount(amount)
    payer_id = AccountId.from_string(payer)
    pay_to_id = AccountId.from_string(pay_to)

    transaction = TransferTransaction()
    if is_native_asset(asset):
        transaction.add_hbar_transfer(payer_id, -amount)
        transaction.add_hbar_transfer(pay_to_id, amount)
    else:
        token_id = TokenId.from_string(asset)
        transaction.add_token_transfer(token_id, payer_id, -amount)
        transaction.add_token_transfer(token_id, pay_to_id, amount)

    transaction.transaction_id = TransactionId.generate(AccountId.from_string(fee_payer))
    return transaction


def serialize_transaction(transaction: Transaction) -> str:
    """Encode a frozen, signed transaction to base64."""
    return base64.b64encode(transaction.to_bytes()).decode("utf-8")


def deserialize_transaction(encoded_tx: str) -> Transaction:
    """
    Decode a base64-encoded transaction.

    Raises:
        ValueError: If the payload is not base64 or not a Hedera transaction
    """
    tx_bytes = base64.b64decode(encoded_tx, validate=True)
    return Transaction.from_bytes(tx_bytes)


@dataclass
class TransferLegs:
    """
    Net per-account amounts of a transfer, keyed by account id string.

    `approved` holds accounts debited or credited through an allowance
    rather than their own signature. `nfts` counts NFT movements.
    """

    hbar: dict[str, int] = field(default_factory=dict)
    tokens: dict[str, dict[str, int]] = field(default_factory=dict)
    approved: set[str] = field(default_factory=set)
    nfts: int = 0


def _accumulate(legs: TransferLegs, target: dict[str, int], leg: Any) -> None:
    key = str(leg.account_id)
    target[key] = target.get(key, 0) + int(leg.amount)
    if leg.is_approved:
        legs.approved.add(key)


def read_transfer_legs(transaction: TransferTransaction) -> TransferLegs:
    """Collect HBAR, token and NFT legs from a decoded transfer transaction."""
    legs = TransferLegs()
    for leg in transaction.hbar_transfers:
        _accumulate(legs, legs.hbar, leg)

    for token_id, transfers in transaction.token_transfers.items():
        per_token = legs.tokens.setdefault(str(token_id), {})
        for leg in transfers:
            _accumulate(legs, per_token, leg)

    for transfers in transaction.nft_transfers.values():
        legs.nfts += len(transfers)
        legs.approved.update(str(nft.sender_id) for nft in transfers if nft.is_approved)

    legs.hbar = {account: amount for account, amount in legs.hbar.items() if amount}
    legs.tokens = {
        token: {account: amount for account, amount in accounts.items() if amount}
        for token, accounts in legs.tokens.items()
    }
    legs.tokens = {token: accounts for token, accounts in legs.tokens.items() if accounts}
    return legs
