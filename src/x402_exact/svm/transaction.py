"""Solana transaction utilities for x402 payments."""

import base64
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from x402_exact.errors import ERR_INSUFFICIENT_BALANCE, ERR_TRANSACTION_FAILED, SettlementError

logger = logging.getLogger(__name__)

TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PazEjcQG6uk7sb")
COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")

TOKEN_PROGRAM_IDS = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

# Programs a payment transaction may call besides the token transfer
ALLOWED_COMPANION_PROGRAMS = (ASSOCIATED_TOKEN_PROGRAM_ID, COMPUTE_BUDGET_PROGRAM_ID)

# SPL token instruction tag for TransferChecked
TRANSFER_CHECKED_DISCRIMINATOR = 12

# Offset of the decimals byte in an SPL mint account
MINT_DECIMALS_OFFSET = 44

# Asset identifiers meaning native SOL, compared case-insensitively
NATIVE_ASSET_SENTINELS = frozenset({"sol", "native"})


def is_native_asset(asset: str) -> bool:
    return asset.strip().lower() in NATIVE_ASSET_SENTINELS


def get_associated_token_address_for_owner(
    mint: Pubkey, owner: Pubkey, token_program_id: Pubkey = TOKEN_PROGRAM_ID
) -> Pubkey:
    """Derive the owner's associated token account for a mint."""
    return get_associated_token_address(owner, mint, token_program_id)


def get_mint_decimals(client: Client, mint: Pubkey) -> int:
    """
    Read the decimals of a token mint.

    Raises:
        ValueError: If the mint account cannot be fetched
    """
    mint_info = client.get_account_info(mint)
    if not mint_info.value or not mint_info.value.data:
        raise ValueError(f"Could not fetch mint info for {mint}")
    return mint_info.value.data[MINT_DECIMALS_OFFSET]


def create_ata_instruction_if_needed(
    client: Client,
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Optional[Instruction]:
    """
    Create an instruction to create an associated token account if it doesn't exist.

    Args:
        client: Solana RPC client
        payer: Account that will pay for the ATA creation
        owner: Owner of the ATA
        mint: Token mint address
        token_program_id: Token program ID

    Returns:
        CreateAssociatedTokenAccount instruction if ATA doesn't exist, None otherwise
    """
    ata_address = get_associated_token_address_for_owner(mint, owner, token_program_id)
    if client.get_account_info(ata_address).value is not None:
        return None

    return create_associated_token_account(payer=payer, owner=owner, mint=mint)


def create_transfer_instruction(
    source: Pubkey,
    dest: Pubkey,
    owner: Pubkey,
    amount: int,
    decimals: int,
    mint: Pubkey,
    token_program_id: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """
    Create a transfer_checked instruction for SPL tokens.

    Args:
        source: Source token account
        dest: Destination token account
        owner: Owner/authority of the source account
        amount: Amount to transfer (in atomic units)
        decimals: Token decimals
        mint: Token mint address
        token_program_id: Token program ID

    Returns:
        Transfer instruction
    """
    return transfer_checked(
        TransferCheckedParams(
            program_id=token_program_id,
            source=source,
            mint=mint,
            dest=dest,
            owner=owner,
            amount=amount,
            decimals=decimals,
        )
    )


def build_transaction(
    instructions: List[Instruction], fee_payer: Pubkey, recent_blockhash: Hash
) -> Transaction:
    message = Message.new_with_blockhash(instructions, fee_payer, recent_blockhash)
    return Transaction.new_unsigned(message)


def sign_transaction(transaction: Transaction, signers: List[Keypair]) -> Transaction:
    """
    Add signatures for the given keypairs, leaving other slots untouched.

    Args:
        transaction: Transaction to sign
        signers: Keypairs to sign with

    Returns:
        Signed transaction
    """
    transaction.partial_sign(signers, transaction.message.recent_blockhash)
    return transaction


@dataclass
class TransferCheckedDetails:
    program_id: Pubkey
    source: Pubkey
    mint: Pubkey
    destination: Pubkey
    authority: Pubkey
    amount: int
    decimals: int


def parse_transfer_checked(transaction: Transaction) -> List[TransferCheckedDetails]:
    """
    Find every SPL TransferChecked instruction in a transaction.

    Raises:
        ValueError: If a TransferChecked instruction is truncated
    """
    message = transaction.message
    keys = message.account_keys
    transfers = []
    for ix in message.instructions:
        program_id = keys[ix.program_id_index]
        data = bytes(ix.data)
        if program_id not in TOKEN_PROGRAM_IDS or not data:
            continue
        if data[0] != TRANSFER_CHECKED_DISCRIMINATOR:
            continue
        accounts = list(ix.accounts)
        if len(data) < 10 or len(accounts) < 4:
            raise ValueError("Truncated TransferChecked instruction")
        transfers.append(
            TransferCheckedDetails(
                program_id=program_id,
                source=keys[accounts[0]],
                mint=keys[accounts[1]],
                destination=keys[accounts[2]],
                authority=keys[accounts[3]],
                amount=int.from_bytes(data[1:9], "little"),
                decimals=data[9],
            )
        )
    return transfers


def instruction_program_ids(transaction: Transaction) -> List[Pubkey]:
    keys = transaction.message.account_keys
    return [keys[ix.program_id_index] for ix in transaction.message.instructions]


def has_valid_signature(transaction: Transaction, signer: Pubkey) -> bool:
    """Check that `signer` holds a required signature slot with a valid signature."""
    message = transaction.message
    required = message.header.num_required_signatures
    signers = list(message.account_keys[:required])
    if signer not in signers:
        return False
    signature = transaction.signatures[signers.index(signer)]
    if signature == Signature.default():
        return False
    return signature.verify(signer, bytes(message))


def send_transaction(
    client: Client,
    transaction: Transaction,
    skip_preflight: bool = True,
    max_retries: int = 3,
) -> str:
    """Submit a fully signed transaction and return its base58 signature."""
    opts = TxOpts(
        skip_preflight=skip_preflight,
        preflight_commitment=Confirmed,
        max_retries=max_retries,
    )
    response = client.send_transaction(transaction, opts=opts)
    signature = str(response.value)
    logger.debug("Sent Solana transaction %s", signature)
    return signature


def confirm_transaction(
    client: Client,
    signature: str,
    timeout_seconds: float = 30,
    poll_interval: float = 1.0,
) -> None:
    """
    Wait for a transaction to reach confirmed commitment.

    Raises:
        SettlementError: If the transaction failed on chain
        TimeoutError: If it was not confirmed in time
    """
    sig = Signature.from_string(signature)
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        result = client.get_signature_statuses([sig])
        status = result.value[0] if result.value else None
        if status is not None:
            if status.err:
                reason = (
                    ERR_INSUFFICIENT_BALANCE
                    if "insufficient" in str(status.err).lower()
                    else ERR_TRANSACTION_FAILED
                )
                raise SettlementError(reason, str(status.err), transaction=signature)
            if status.confirmation_status in (
                TransactionConfirmationStatus.Confirmed,
                TransactionConfirmationStatus.Finalized,
            ):
                return
        time.sleep(poll_interval)

    raise TimeoutError(f"Transaction {signature} not confirmed after {timeout_seconds}s")


def encode_transaction(transaction: Transaction) -> str:
    """Serialize a transaction to the base64 wire form."""
    return base64.b64encode(bytes(transaction)).decode("utf-8")


def decode_transaction(encoded_tx: str) -> Transaction:
    """
    Raises:
        binascii.Error: If the input is not strict base64
        ValueError: If the bytes are not a legacy transaction
    """
    tx_bytes = base64.b64decode(encoded_tx, validate=True)
    return Transaction.from_bytes(tx_bytes)
