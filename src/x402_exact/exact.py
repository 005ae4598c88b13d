"""Exact payment scheme implementation for EVM networks (EIP-3009)."""

import logging
import secrets
import time
from typing import Any, Dict, Union

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from pydantic import ValidationError
from typing_extensions import (
    TypedDict,
)  # use `typing_extensions.TypedDict` instead of `typing.TypedDict` on Python < 3.12
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from x402_exact.chains import get_chain_id, get_token_name, get_token_version
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
    ERR_INVALID_VALID_AFTER,
    ERR_INVALID_VALID_BEFORE,
    ERR_RECIPIENT_MISMATCH,
    ERR_TRANSACTION_FAILED,
    ERR_UNEXPECTED_SETTLE,
    ERR_UNEXPECTED_VERIFY,
    ERR_UNSUPPORTED_SCHEME,
    VerificationError,
)
from x402_exact.evm.constants import (
    DEFAULT_VALIDITY_BUFFER,
    EIP712_DOMAIN_TYPE,
    ERC20_ABI,
    TRANSFER_WITH_AUTHORIZATION_TYPE,
    TX_STATUS_SUCCESS,
)
from x402_exact.evm.signers import EvmSigner
from x402_exact.networks import SUPPORTED_EVM_NETWORKS
from x402_exact.types import (
    EIP3009Authorization,
    EvmExtra,
    ExactEvmPayload,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT_SECONDS = 30.0

# An authorization must stay valid at least this long after verification
VALID_BEFORE_MARGIN_SECONDS = 6


class PaymentHeader(TypedDict):
    x402Version: int
    scheme: str
    network: str
    payload: dict[str, Any]


def create_nonce() -> str:
    """Create a random 32-byte hex-encoded nonce for authorization signatures."""
    return secrets.token_hex(32)


def _local_account(signer: Union[EvmSigner, LocalAccount]) -> LocalAccount:
    return signer.account if isinstance(signer, EvmSigner) else signer


def get_eip712_domain(payment_requirements: PaymentRequirements) -> Dict[str, Any]:
    """Build the token's EIP-712 domain.

    Name and version come from `extra`, falling back to the known token table.

    Raises:
        ValueError: If neither source knows the token
    """
    chain_id = get_chain_id(payment_requirements.network)
    try:
        extra = payment_requirements.extra_as(EvmExtra)
        name, version = extra.name, extra.version
    except ValidationError:
        name = get_token_name(chain_id, payment_requirements.asset)
        version = get_token_version(chain_id, payment_requirements.asset)
    return {
        "name": name,
        "version": version,
        "chainId": int(chain_id),
        "verifyingContract": payment_requirements.asset,
    }


def build_typed_data(
    payment_requirements: PaymentRequirements, authorization: Dict[str, Any]
) -> Dict[str, Any]:
    """Assemble the TransferWithAuthorization typed data for an authorization."""
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_TYPE,
            "TransferWithAuthorization": TRANSFER_WITH_AUTHORIZATION_TYPE,
        },
        "primaryType": "TransferWithAuthorization",
        "domain": get_eip712_domain(payment_requirements),
        "message": {
            "from": authorization["from"],
            "to": authorization["to"],
            "value": int(authorization["value"]),
            "validAfter": int(authorization["validAfter"]),
            "validBefore": int(authorization["validBefore"]),
            "nonce": bytes.fromhex(authorization["nonce"].removeprefix("0x")),
        },
    }


def prepare_payment_header(
    signer: Union[EvmSigner, LocalAccount, str],
    x402_version: int,
    payment_requirements: PaymentRequirements,
) -> PaymentHeader:
    """Prepare an unsigned payment header with the authorization ready for signing."""
    now = int(time.time())
    sender = signer if isinstance(signer, str) else _local_account(signer).address

    return {
        "x402Version": x402_version,
        "scheme": payment_requirements.scheme,
        "network": payment_requirements.network,
        "payload": {
            "signature": None,
            "authorization": {
                "from": sender,
                "to": payment_requirements.pay_to,
                "value": payment_requirements.max_amount_required,
                "validAfter": str(now - DEFAULT_VALIDITY_BUFFER),
                "validBefore": str(now + payment_requirements.max_timeout_seconds),
                "nonce": create_nonce(),
            },
        },
    }


def sign_payment_header(
    signer: Union[EvmSigner, LocalAccount],
    payment_requirements: PaymentRequirements,
    header: PaymentHeader,
) -> str:
    """Sign a prepared payment header and encode it for the X-PAYMENT header."""
    auth = header["payload"]["authorization"]
    typed_data = build_typed_data(payment_requirements, auth)

    signed_message = _local_account(signer).sign_typed_data(full_message=typed_data)
    signature = signed_message.signature.hex()
    if not signature.startswith("0x"):
        signature = f"0x{signature}"

    header["payload"]["signature"] = signature
    if not auth["nonce"].startswith("0x"):
        auth["nonce"] = f"0x{auth['nonce']}"

    return encode_payment(header)


def create_payment_header(
    signer: Union[EvmSigner, LocalAccount],
    x402_version: int,
    payment_requirements: PaymentRequirements,
) -> str:
    """Create a signed EIP-3009 payment header for EVM networks.

    Raises:
        InvalidAmountError: If the amount is not a non-negative integer
        ValueError: If the token's EIP-712 domain is unknown
    """
    parse_atomic_amount(payment_requirements.max_amount_required)
    header = prepare_payment_header(signer, x402_version, payment_requirements)
    return sign_payment_header(signer, payment_requirements, header)


def split_signature(signature: str) -> tuple[int, bytes, bytes]:
    """Split a 65-byte signature into (v, r, s)."""
    sig = bytes.fromhex(signature.removeprefix("0x"))
    if len(sig) != 65:
        raise ValueError(f"Expected a 65-byte signature, got {len(sig)} bytes")
    v = sig[64]
    if v < 27:
        v += 27
    return v, sig[:32], sig[32:64]


def _authorization_dict(authorization: EIP3009Authorization) -> Dict[str, Any]:
    return authorization.model_dump(by_alias=True)


def _verify(
    signer: EvmSigner, payload: PaymentPayload, requirements: PaymentRequirements
) -> str:
    """Run every check and return the payer address."""
    if payload.scheme != SCHEME_EXACT or requirements.scheme != SCHEME_EXACT:
        raise VerificationError(ERR_UNSUPPORTED_SCHEME)
    if (
        payload.network != requirements.network
        or requirements.network not in SUPPORTED_EVM_NETWORKS
    ):
        raise VerificationError(ERR_INVALID_NETWORK)
    if not isinstance(payload.payload, ExactEvmPayload):
        raise VerificationError(ERR_INVALID_TRANSACTION, "payload carries no EIP-3009 authorization")

    evm_payload = payload.payload
    authorization = evm_payload.authorization
    payer = authorization.from_

    if authorization.to.lower() != requirements.pay_to.lower():
        raise VerificationError(ERR_RECIPIENT_MISMATCH, f"authorization pays {authorization.to}")

    required = parse_atomic_amount(requirements.max_amount_required)
    if int(authorization.value) != required:
        raise VerificationError(
            ERR_AMOUNT_MISMATCH, f"authorizes {authorization.value}, requires {required}"
        )

    now = int(time.time())
    if int(authorization.valid_before) < now + VALID_BEFORE_MARGIN_SECONDS:
        raise VerificationError(ERR_INVALID_VALID_BEFORE)
    if int(authorization.valid_after) > now:
        raise VerificationError(ERR_INVALID_VALID_AFTER)

    try:
        typed_data = build_typed_data(requirements, _authorization_dict(authorization))
    except ValueError as e:
        raise VerificationError(ERR_ASSET_MISMATCH, str(e)) from None

    try:
        recovered = Account.recover_message(
            encode_typed_data(full_message=typed_data),
            signature=evm_payload.signature,
        )
    except Exception as e:
        raise VerificationError(ERR_INVALID_SIGNATURE, f"could not recover signer: {e}") from None
    if recovered.lower() != payer.lower():
        raise VerificationError(ERR_INVALID_SIGNATURE, f"signed by {recovered}, not {payer}")

    try:
        balance = signer.get_balance(payer, requirements.asset)
    except Exception as e:
        logger.warning("Token balance lookup failed for %s: %s", payer, e)
    else:
        if balance < required:
            raise VerificationError(ERR_INSUFFICIENT_FUNDS, f"{payer} holds {balance}")
    return payer


def verify(
    signer: EvmSigner,
    payload: PaymentPayload,
    payment_requirements: PaymentRequirements,
) -> VerifyResponse:
    """
    Verify an EIP-3009 authorization without submitting it.

    Args:
        signer: Facilitator's EVM signer, used for on-chain reads
        payload: Decoded payment payload from the client
        payment_requirements: Requirements the payment must satisfy

    Returns:
        VerifyResponse with the payer address when valid
    """
    try:
        payer = _verify(signer, payload, payment_requirements)
    except VerificationError as e:
        logger.info("EVM payment rejected: %s", e)
        return VerifyResponse(is_valid=False, invalid_reason=e.reason, payer=_payer_of(payload))
    except Exception:
        logger.exception("Unexpected error verifying EVM payment")
        return VerifyResponse(
            is_valid=False, invalid_reason=ERR_UNEXPECTED_VERIFY, payer=_payer_of(payload)
        )
    return VerifyResponse(is_valid=True, payer=payer)


def _payer_of(payload: PaymentPayload) -> str:
    if isinstance(payload.payload, ExactEvmPayload):
        return payload.payload.authorization.from_
    return ""


def settle(
    signer: EvmSigner,
    payload: PaymentPayload,
    payment_requirements: PaymentRequirements,
    timeout_seconds: float = DEFAULT_SETTLE_TIMEOUT_SECONDS,
) -> SettleResponse:
    """
    Settle an authorization by submitting transferWithAuthorization from the
    facilitator account.

    Args:
        signer: Facilitator's EVM signer, pays gas
        payload: Decoded payment payload from the client
        payment_requirements: Requirements the payment must satisfy
        timeout_seconds: How long to wait for the receipt

    Returns:
        SettleResponse with the transaction hash on success
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

    authorization = payload.payload.authorization
    try:
        v, r, s = split_signature(payload.payload.signature)
        tx_hash = signer.write_contract(
            payment_requirements.asset,
            ERC20_ABI,
            "transferWithAuthorization",
            Web3.to_checksum_address(authorization.from_),
            Web3.to_checksum_address(authorization.to),
            int(authorization.value),
            int(authorization.valid_after),
            int(authorization.valid_before),
            bytes.fromhex(authorization.nonce.removeprefix("0x")),
            v,
            r,
            s,
        )
    except (ContractLogicError, Web3RPCError) as e:
        message = str(e).lower()
        if "insufficient" in message or "exceeds balance" in message:
            logger.warning("EVM submission rejected for balance: %s", e)
            return failed(ERR_INSUFFICIENT_BALANCE)
        logger.warning("EVM submission rejected: %s", e)
        return failed(ERR_TRANSACTION_FAILED)
    except Exception:
        logger.exception("Unexpected error submitting EVM payment")
        return failed(ERR_UNEXPECTED_SETTLE)

    try:
        receipt = signer.wait_for_transaction_receipt(tx_hash, timeout=timeout_seconds)
    except TimeExhausted:
        logger.warning("EVM transaction %s not mined in time", tx_hash)
        return failed(ERR_CONFIRMATION_TIMEOUT)
    except Web3RPCError as e:
        logger.warning("EVM receipt lookup for %s failed: %s", tx_hash, e)
        return failed(ERR_TRANSACTION_FAILED, tx_hash)
    except Exception:
        logger.exception("Unexpected error waiting for EVM receipt")
        return failed(ERR_UNEXPECTED_SETTLE)

    if receipt["status"] != TX_STATUS_SUCCESS:
        logger.warning("EVM transaction %s reverted", tx_hash)
        return failed(ERR_TRANSACTION_FAILED, tx_hash)

    logger.info("Settled EVM payment %s from %s", tx_hash, payer)
    return SettleResponse(
        success=True,
        transaction=tx_hash,
        network=network,
        payer=payer,
    )
