"""Exact payment scheme implementation for Solana Virtual Machine (SVM)."""

import logging
from typing import Any, Dict

from solana.rpc.core import RPCException
from solders.pubkey import Pubkey

from x402_exact.common import SCHEME_EXACT, parse_atomic_amount
from x402_exact.encoding import encode_payment
from x402_exact.errors import (
    ERR_AMOUNT_MISMATCH,
    ERR_ASSET_MISMATCH,
    ERR_CONFIRMATION_TIMEOUT,
    ERR_INSUFFICIENT_BALANCE,
    ERR_INSUFFICIENT_FUNDS,
    ERR_INVALID_NETWORK,
    ERR_INVALID_SIGNATURE,
    ERR_INVALID_TRANSACTION,
    ERR_RECIPIENT_MISMATCH,
    ERR_TRANSACTION_FAILED,
    ERR_UNEXPECTED_SETTLE,
    ERR_UNEXPECTED_VERIFY,
    ERR_UNSUPPORTED_SCHEME,
    FeePayerRequiredError,
    InvalidAmountError,
    SettlementError,
    VerificationError,
)
from x402_exact.networks import SUPPORTED_SVM_NETWORKS
from x402_exact.svm.transaction import (
    ALLOWED_COMPANION_PROGRAMS,
    TOKEN_PROGRAM_IDS,
    build_transaction,
    confirm_transaction,
    create_ata_instruction_if_needed,
    create_transfer_instruction,
    decode_transaction,
    encode_transaction,
    get_associated_token_address_for_owner,
    get_mint_decimals,
    has_valid_signature,
    instruction_program_ids,
    is_native_asset,
    parse_transfer_checked,
    send_transaction,
    sign_transaction,
)
from x402_exact.svm.wallet import SvmSigner
from x402_exact.types import (
    ExactSvmPayload,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT_SECONDS = 30.0

# u64 ceiling of SPL token amounts
MAX_TOKEN_AMOUNT = 2**64 - 1


def create_payment_header(
    signer: SvmSigner,
    x402_version: int,
    payment_requirements: PaymentRequirements,
) -> str:
    """
    Create a payment header for SVM (Solana) payments.

    Args:
        signer: Payer's Solana signer
        x402_version: x402 protocol version
        payment_requirements: Payment requirements from the server

    Returns:
        Base64-encoded payment header

    Example:
        >>> from x402_exact.svm import create_svm_signer
        >>> signer = create_svm_signer("solana-devnet", "...")
        >>> header = create_payment_header(signer, 1, requirements)
    """
    payment_payload = create_and_sign_payment(signer, payment_requirements)
    return encode_payment(
        {
            "x402Version": x402_version,
            "scheme": payment_requirements.scheme,
            "network": payment_requirements.network,
            "payload": payment_payload,
        }
    )


def create_and_sign_payment(
    signer: SvmSigner,
    payment_requirements: PaymentRequirements,
) -> Dict[str, Any]:
    """
    Create and partially sign a token transfer paid for by the facilitator.

    Raises:
        FeePayerRequiredError: If requirements carry no `extra.feePayer`
        InvalidAmountError: If the amount does not fit in a u64 or the asset
            is native SOL
    """
    fee_payer = Pubkey.from_string(payment_requirements.fee_payer())
    amount = parse_atomic_amount(payment_requirements.max_amount_required)
    if amount > MAX_TOKEN_AMOUNT:
        raise InvalidAmountError(f"Token amount {amount} exceeds u64 range")
    if is_native_asset(payment_requirements.asset):
        raise InvalidAmountError("Native SOL payments are not supported, use a token mint")

    client = signer.client
    mint = Pubkey.from_string(payment_requirements.asset)
    pay_to = Pubkey.from_string(payment_requirements.pay_to)

    source_ata = get_associated_token_address_for_owner(mint, signer.pubkey)
    dest_ata = get_associated_token_address_for_owner(mint, pay_to)
    decimals = get_mint_decimals(client, mint)

    instructions = []
    ata_instruction = create_ata_instruction_if_needed(client, fee_payer, pay_to, mint)
    if ata_instruction:
        instructions.append(ata_instruction)

    instructions.append(
        create_transfer_instruction(
            source=source_ata,
            dest=dest_ata,
            owner=signer.pubkey,
            amount=amount,
            decimals=decimals,
            mint=mint,
        )
    )

    recent_blockhash = client.get_latest_blockhash().value.blockhash
    transaction = build_transaction(instructions, fee_payer, recent_blockhash)

    # Fee payer signs on the facilitator side
    sign_transaction(transaction, [signer.keypair])

    return {"transaction": encode_transaction(transaction)}


def _verify(
    signer: SvmSigner, payload: PaymentPayload, requirements: PaymentRequirements
) -> str:
    """Run every check and return the payer address."""
    if payload.scheme != SCHEME_EXACT or requirements.scheme != SCHEME_EXACT:
        raise VerificationError(ERR_UNSUPPORTED_SCHEME)
    if (
        payload.network != requirements.network
        or requirements.network not in SUPPORTED_SVM_NETWORKS
    ):
        raise VerificationError(ERR_INVALID_NETWORK)

    if not isinstance(payload.payload, ExactSvmPayload):
        raise VerificationError(ERR_INVALID_TRANSACTION, "payload carries no Solana transaction")
    try:
        transaction = decode_transaction(payload.payload.transaction)
        transfers = parse_transfer_checked(transaction)
    except Exception as e:
        raise VerificationError(ERR_INVALID_TRANSACTION, f"could not decode: {e}") from None

    if len(transfers) != 1:
        raise VerificationError(
            ERR_INVALID_TRANSACTION, f"expected one TransferChecked, found {len(transfers)}"
        )
    for program_id in instruction_program_ids(transaction):
        if program_id not in TOKEN_PROGRAM_IDS and program_id not in ALLOWED_COMPANION_PROGRAMS:
            raise VerificationError(ERR_INVALID_TRANSACTION, f"unexpected program {program_id}")
    transfer = transfers[0]

    try:
        expected_fee_payer = requirements.fee_payer()
    except FeePayerRequiredError:
        raise VerificationError(ERR_INVALID_SIGNATURE, "feePayer missing from requirements") from None
    embedded = str(transaction.message.account_keys[0])
    if embedded != signer.address or embedded != expected_fee_payer:
        raise VerificationError(
            ERR_INVALID_SIGNATURE,
            f"transaction fee payer {embedded} does not match facilitator {signer.address} "
            f"and feePayer {expected_fee_payer}",
        )
    if transfer.authority == signer.pubkey:
        raise VerificationError(ERR_INVALID_TRANSACTION, "fee payer must not fund the transfer")
    if not has_valid_signature(transaction, transfer.authority):
        raise VerificationError(ERR_INVALID_SIGNATURE, "payer signature missing or invalid")

    if is_native_asset(requirements.asset):
        raise VerificationError(ERR_ASSET_MISMATCH, "native SOL is not a token mint")
    try:
        mint = Pubkey.from_string(requirements.asset)
        pay_to = Pubkey.from_string(requirements.pay_to)
    except Exception:
        raise VerificationError(ERR_ASSET_MISMATCH, "asset or payTo is not a valid address") from None
    if transfer.mint != mint:
        raise VerificationError(ERR_ASSET_MISMATCH, f"transfer moves mint {transfer.mint}")

    expected_destination = get_associated_token_address_for_owner(
        mint, pay_to, transfer.program_id
    )
    if transfer.destination != expected_destination:
        raise VerificationError(ERR_RECIPIENT_MISMATCH, f"credit goes to {transfer.destination}")

    required = parse_atomic_amount(requirements.max_amount_required)
    if transfer.amount != required:
        raise VerificationError(
            ERR_AMOUNT_MISMATCH, f"transfers {transfer.amount}, requires {required}"
        )

    payer = str(transfer.authority)
    try:
        balance = int(signer.client.get_token_account_balance(transfer.source).value.amount)
    except Exception as e:
        logger.warning("Token balance lookup failed for %s: %s", transfer.source, e)
    else:
        if balance < required:
            raise VerificationError(ERR_INSUFFICIENT_FUNDS, f"{payer} holds {balance}")
    return payer


def verify(
    signer: SvmSigner,
    payload: PaymentPayload,
    payment_requirements: PaymentRequirements,
) -> VerifyResponse:
    """
    Verify a Solana payment without submitting it.

    Args:
        signer: Facilitator's signer, expected to be the transaction fee payer
        payload: Decoded payment payload from the client
        payment_requirements: Requirements the payment must satisfy

    Returns:
        VerifyResponse with the payer address when valid
    """
    try:
        payer = _verify(signer, payload, payment_requirements)
    except VerificationError as e:
        logger.info("Solana payment rejected: %s", e)
        return VerifyResponse(is_valid=False, invalid_reason=e.reason, payer="")
    except Exception:
        logger.exception("Unexpected error verifying Solana payment")
        return VerifyResponse(is_valid=False, invalid_reason=ERR_UNEXPECTED_VERIFY, payer="")
    return VerifyResponse(is_valid=True, payer=payer)


def settle(
    signer: SvmSigner,
    payload: PaymentPayload,
    payment_requirements: PaymentRequirements,
    timeout_seconds: float = DEFAULT_SETTLE_TIMEOUT_SECONDS,
) -> SettleResponse:
    """
    Settle a payment by signing with fee payer and sending to blockchain.

    Args:
        signer: Facilitator's signer
        payload: Decoded payment payload from the client
        payment_requirements: Payment requirements
        timeout_seconds: How long to wait for confirmation

    Returns:
        Settlement response with transaction signature
    """
    network = payment_requirements.network
    verification = verify(signer, payload, payment_requirements)
    if not verification.is_valid:
        return SettleResponse(
            success=False,
            error_reason=verification.invalid_reason,
            transaction="",
            network=network,
            payer=verification.payer or "",
        )
    payer = verification.payer

    def failed(reason: str, transaction: str = "") -> SettleResponse:
        return SettleResponse(
            success=False,
            error_reason=reason,
            transaction=transaction,
            network=network,
            payer=payer,
        )

    try:
        transaction = decode_transaction(payload.payload.transaction)
        sign_transaction(transaction, [signer.keypair])
        signature = send_transaction(signer.client, transaction)
    except RPCException as e:
        if "insufficient" in str(e).lower():
            logger.warning("Solana submission rejected for balance: %s", e)
            return failed(ERR_INSUFFICIENT_BALANCE)
        logger.warning("Solana submission rejected: %s", e)
        return failed(ERR_TRANSACTION_FAILED)
    except Exception:
        logger.exception("Unexpected error submitting Solana payment")
        return failed(ERR_UNEXPECTED_SETTLE)

    try:
        confirm_transaction(signer.client, signature, timeout_seconds)
    except TimeoutError:
        logger.warning("Solana transaction %s not confirmed in time", signature)
        return failed(ERR_CONFIRMATION_TIMEOUT)
    except SettlementError as e:
        logger.warning("Solana transaction %s failed: %s", signature, e)
        return failed(e.reason, signature)
    except RPCException as e:
        logger.warning("Solana status lookup for %s failed: %s", signature, e)
        return failed(ERR_TRANSACTION_FAILED, signature)
    except Exception:
        logger.exception("Unexpected error confirming Solana payment")
        return failed(ERR_UNEXPECTED_SETTLE)

    logger.info("Settled Solana payment %s from %s", signature, payer)
    return SettleResponse(
        success=True,
        transaction=signature,
        network=network,
        payer=payer,
    )
