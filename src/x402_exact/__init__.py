"""x402_exact: exact-amount x402 payments on EVM, Solana and Hedera."""

from x402_exact.common import (
    SCHEME_EXACT,
    find_matching_payment_requirements,
    process_price_to_atomic_amount,
    x402_VERSION,
)
from x402_exact.encoding import (
    decode_payment,
    decode_settle_response_header,
    encode_payment,
    encode_settle_response_header,
)
from x402_exact.errors import (
    FeePayerRequiredError,
    InvalidAmountError,
    InvalidSignerError,
    MalformedPayloadError,
    UnsupportedNetworkError,
    UnsupportedSchemeException,
    X402Error,
)
from x402_exact.networks import NetworkFamily, get_network_family, get_network_for_chain_id
from x402_exact.types import (
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    SupportedResponse,
    VerifyResponse,
    x402PaymentRequiredResponse,
)
from x402_exact.wallet import MultiNetworkSigner, create_connected_client, create_signer
from x402_exact.strategy import PaymentScheme, Strategy, build_strategy
from x402_exact.facilitator import settle, verify, x402Facilitator
from x402_exact.client import create_payment_header
from x402_exact.clients.base import (
    PaymentAmountExceededError,
    PaymentError,
    decode_x_payment_response,
    x402Client,
)
from x402_exact.facilitator_client import FacilitatorClient, FacilitatorConfig

__all__ = [
    "SCHEME_EXACT",
    "x402_VERSION",
    "find_matching_payment_requirements",
    "process_price_to_atomic_amount",
    "encode_payment",
    "decode_payment",
    "encode_settle_response_header",
    "decode_settle_response_header",
    "X402Error",
    "UnsupportedNetworkError",
    "UnsupportedSchemeException",
    "MalformedPayloadError",
    "FeePayerRequiredError",
    "InvalidAmountError",
    "InvalidSignerError",
    "NetworkFamily",
    "get_network_family",
    "get_network_for_chain_id",
    "PaymentPayload",
    "PaymentRequirements",
    "VerifyResponse",
    "SettleResponse",
    "SupportedResponse",
    "x402PaymentRequiredResponse",
    "MultiNetworkSigner",
    "create_signer",
    "create_connected_client",
    "PaymentScheme",
    "Strategy",
    "build_strategy",
    "verify",
    "settle",
    "x402Facilitator",
    "create_payment_header",
    "x402Client",
    "decode_x_payment_response",
    "PaymentError",
    "PaymentAmountExceededError",
    "FacilitatorClient",
    "FacilitatorConfig",
]
