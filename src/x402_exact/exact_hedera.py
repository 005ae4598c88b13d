"""Exact payment scheme implementation for Hedera."""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict

from hiero_sdk_python import AccountId, ResponseCode, TokenId, TransferTransaction
from hiero_sdk_python.exceptions import MaxAttemptsError, PrecheckError, ReceiptStatusError

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
    SettlementError,
    VerificationError,
)
from x402_exact.hedera.transaction import (
    TransferLegs,
    check_transfer_amount,
    create_transfer_transaction,
    deserialize_transaction,
    is_native_asset,
    read_transfer_legs,
    serialize_transaction,
)
from x402_exact.hedera.wallet import HederaSigner
from x402_exact.networks import SUPPORTED_HEDERA_NETWORKS
from x402_exact.types import (
    ExactHederaPayload,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT_SECONDS = 30.0


def create_payment_header(
    signer: HederaSigner,
    x402_version: int,
    payment_requirements: PaymentRequirements,
) -> str:
    """
    Create a payment header for Hedera payments.

    Args:
        signer: Payer's Hedera signer
        x402_version: x402 protocol version
        payment_requirements: Payment requirements from the server

    Returns:
        Base64-encoded payment header

    Raises:
        FeePayerRequiredError: If requirements carry no `extra.feePayer`
        InvalidAmountError: If the amount is not a positive int64
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
    signer: HederaSigner,
    payment_requirements: PaymentRequirements,
) -> Dict[str, Any]:
    """
    Build the transfer, freeze it and sign it as the payer.

    The facilitator adds the fee payer signature at settlement.

    Returns:
        Payment payload with the signed transaction
    """
    fee_payer = payment_requirements.fee_payer()
    amount = check_transfer_amount(
        parse_atomic_amount(payment_requirements.max_amount_required)
    )

    transaction = create_transfer_transaction(
        payer=signer.address,
        pay_to=payment_requirements.pay_to,
        asset=payment_requirements.asset,
        amount=amount,
        fee_payer=fee_payer,
    )
    signer.freeze(transaction)
    signer.sign(transaction)

    return {"transaction": serialize_transaction(transaction)}


def _normalize_account(account_id: str) -> str:
    try:
        return str(AccountId.from_string(account_id))
    except Exception:
        raise VerificationError(ERR_RECIPIENT_MISMATCH, f"invalid account id {account_id}") from None


def _check_scheme_and_network(
    payload: PaymentPayload, requirements: PaymentRequirements
) -> None:
    if payload.scheme != SCHEME_EXACT or requirements.scheme != SCHEME_EXACT:
        raise VerificationError(ERR_UNSUPPORTED_SCHEME)
    if (
        payload.network != requirements.network
        or requirements.network not in SUPPORTED_HEDERA_NETWORKS
    ):
        raise VerificationError(ERR_INVALID_NETWORK)


def _check_fee_payer(
    signer: HederaSigner, transaction: TransferTransaction, requirements: PaymentRequirements
) -> None:
    transaction_id = getattr(transaction, "transaction_id", None)
    if transaction_id is None or transaction_id.account_id is None:
        raise VerificationError(ERR_INVALID_TRANSACTION, "missing transaction id")

    try:
        expected_fee_payer = requirements.fee_payer()
    except FeePayerRequiredError:
        raise VerificationError(ERR_INVALID_SIGNATURE, "feePayer missing from requirements") from None

    embedded = str(transaction_id.account_id)
    if embedded != signer.address or embedded != expected_fee_payer:
        raise VerificationError(
            ERR_INVALID_SIGNATURE,
            f"transaction fee payer {embedded} does not match facilitator {signer.address} "
            f"and feePayer {expected_fee_payer}",
        )


def _check_leg_kinds(legs: TransferLegs) -> None:
    if legs.nfts:
        raise VerificationError(ERR_INVALID_TRANSACTION, "transfer moves NFTs")
    if legs.approved:
        raise VerificationError(
            ERR_INVALID_TRANSACTION,
            f"allowance transfers for {', '.join(sorted(legs.approved))}",
        )


def _select_legs(legs: TransferLegs, asset: str) -> dict[str, int]:
    if is_native_asset(asset):
        if legs.tokens:
            raise VerificationError(ERR_ASSET_MISMATCH, "token legs in an HBAR payment")
        return legs.hbar

    try:
        token_id = str(TokenId.from_string(asset))
    except Exception:
        raise VerificationError(ERR_ASSET_MISMATCH, f"invalid token id {asset}") from None
    if legs.hbar or set(legs.tokens) != {token_id}:
        raise VerificationError(ERR_ASSET_MISMATCH, f"transfer is not limited to token {token_id}")
    return legs.tokens[token_id]


def _check_amount_and_recipient(
    legs: dict[str, int], requirements: PaymentRequirements
) -> str:
    credits = {account: amount for account, amount in legs.items() if amount > 0}
    debits = {account: amount for account, amount in legs.items() if amount < 0}
    if len(credits) != 1 or len(debits) != 1:
        raise VerificationError(
            ERR_INVALID_TRANSACTION, "expected exactly one debit and one credit leg"
        )

    recipient, credited = next(iter(credits.items()))
    payer, debited = next(iter(debits.items()))
    if recipient != _normalize_account(requirements.pay_to):
        raise VerificationError(ERR_RECIPIENT_MISMATCH, f"credit goes to {recipient}")

    required = parse_atomic_amount(requirements.max_amount_required)
    if credited != required or debited != -required:
        raise VerificationError(
            ERR_AMOUNT_MISMATCH, f"transfers {credited}, requires {required}"
        )
    return payer


def _verify(
    signer: HederaSigner, payload: PaymentPayload, requirements: PaymentRequirements
) -> str:
    """Run every check and return the payer account id."""
    _check_scheme_and_network(payload, requirements)

    if not isinstance(payload.payload, ExactHederaPayload):
        raise VerificationError(ERR_INVALID_TRANSACTION, "payload carries no Hedera transaction")
    try:
        transaction = deserialize_transaction(payload.payload.transaction)
    except Exception as e:
        raise VerificationError(ERR_INVALID_TRANSACTION, f"could not decode: {e}") from None
    if not isinstance(transaction, TransferTransaction):
        raise VerificationError(
            ERR_INVALID_TRANSACTION, f"expected TransferTransaction, got {type(transaction).__name__}"
        )

    _check_fee_payer(signer, transaction, requirements)
    legs = read_transfer_legs(transaction)
    _check_leg_kinds(legs)
    payer = _check_amount_and_recipient(_select_legs(legs, requirements.asset), requirements)

    if payer == signer.address:
        raise VerificationError(ERR_INVALID_TRANSACTION, "fee payer must not fund the transfer")

    balance = signer.get_balance(payer, requirements.asset)
    if balance is not None and balance < parse_atomic_amount(requirements.max_amount_required):
        raise VerificationError(ERR_INSUFFICIENT_FUNDS, f"{payer} holds {balance}")
    return payer


def verify(
    signer: HederaSigner,
    payload: PaymentPayload,
    payment_requirements: PaymentRequirements,
) -> VerifyResponse:
    """
    Verify a Hedera payment without submitting it.

    Args:
        signer: Facilitator's Hedera signer, expected to be the fee payer
        payload: Decoded payment payload from the client
        payment_requirements: Requirements the payment must satisfy

    Returns:
        VerifyResponse with the payer account when valid
    """
    try:
        payer = _verify(signer, payload, payment_requirements)
    except VerificationError as e:
        logger.info("Hedera payment rejected: %s", e)
        return VerifyResponse(is_valid=False, invalid_reason=e.reason, payer="")
    except Exception:
        logger.exception("Unexpected error verifying Hedera payment")
        return VerifyResponse(is_valid=False, invalid_reason=ERR_UNEXPECTED_VERIFY, payer="")
    return VerifyResponse(is_valid=True, payer=payer)


def _is_insufficient_balance(message: str) -> bool:
    return "INSUFFICIENT_ACCOUNT_BALANCE" in message or "INSUFFICIENT_TOKEN_BALANCE" in message


def _execute_with_timeout(
    signer: HederaSigner, transaction: Any, timeout_seconds: float
) -> Any:
    # execute blocks until the receipt arrives; a late receipt is abandoned
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(signer.execute, transaction)
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        raise SettlementError(ERR_CONFIRMATION_TIMEOUT, f"no receipt after {timeout_seconds}s") from None
    except (PrecheckError, ReceiptStatusError) as e:
        if _is_insufficient_balance(e.status.name):
            raise SettlementError(ERR_INSUFFICIENT_BALANCE, str(e)) from e
        raise SettlementError(ERR_TRANSACTION_FAILED, str(e)) from e
    except MaxAttemptsError as e:
        raise SettlementError(ERR_TRANSACTION_FAILED, str(e)) from e
    finally:
        executor.shutdown(wait=False)


def settle(
    signer: HederaSigner,
    payload: PaymentPayload,
    payment_requirements: PaymentRequirements,
    timeout_seconds: float = DEFAULT_SETTLE_TIMEOUT_SECONDS,
) -> SettleResponse:
    """
    Settle a Hedera payment: re-verify, co-sign as fee payer, submit and
    wait for the receipt.

    Args:
        signer: Facilitator's Hedera signer
        payload: Decoded payment payload from the client
        payment_requirements: Requirements the payment must satisfy
        timeout_seconds: How long to wait for the receipt

    Returns:
        SettleResponse with the transaction id on success
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

    try:
        transaction = deserialize_transaction(payload.payload.transaction)
        signer.sign(transaction)
        transaction_id = str(transaction.transaction_id)
        receipt = _execute_with_timeout(signer, transaction, timeout_seconds)
    except SettlementError as e:
        logger.warning("Hedera settlement failed: %s", e)
        return SettleResponse(
            success=False,
            error_reason=e.reason,
            transaction="",
            network=network,
            payer=payer,
        )
    except Exception:
        logger.exception("Unexpected error settling Hedera payment")
        return SettleResponse(
            success=False,
            error_reason=ERR_UNEXPECTED_SETTLE,
            transaction="",
            network=network,
            payer=payer,
        )

    status = ResponseCode(receipt.status)
    if status != ResponseCode.SUCCESS:
        reason = (
            ERR_INSUFFICIENT_BALANCE
            if _is_insufficient_balance(status.name)
            else ERR_TRANSACTION_FAILED
        )
        logger.warning("Hedera transaction %s finished with %s", transaction_id, status.name)
        return SettleResponse(
            success=False,
            error_reason=reason,
            transaction=transaction_id,
            network=network,
            payer=payer,
        )

    logger.info("Settled Hedera payment %s from %s", transaction_id, payer)
    return SettleResponse(
        success=True,
        transaction=transaction_id,
        network=network,
        payer=payer,
    )
