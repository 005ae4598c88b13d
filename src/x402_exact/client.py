"""Client-side construction of payment headers for any supported network."""

from typing import Union

from x402_exact.common import SCHEME_EXACT
from x402_exact.errors import UnsupportedSchemeException
from x402_exact.networks import get_network_family
from x402_exact.strategy import Strategy
from x402_exact.facilitator import resolve_signer
from x402_exact.types import PaymentRequirements
from x402_exact.wallet import MultiNetworkSigner, Signer


def create_payment_header(
    strategy: Strategy,
    signer: Union[Signer, MultiNetworkSigner],
    x402_version: int,
    payment_requirements: PaymentRequirements,
) -> str:
    """
    Build, sign and encode a payment for the requirements' network.

    Unlike verify and settle, failures propagate: a client that cannot pay
    has nothing to fall back to.

    Raises:
        UnsupportedSchemeException: If the scheme is not "exact"
        UnsupportedNetworkError: If the network is unknown
        InvalidSignerError: If the signer cannot pay on the network
        FeePayerRequiredError: If a fee-payer family lacks `extra.feePayer`
        InvalidAmountError: If the amount is not payable on the family
    """
    if payment_requirements.scheme != SCHEME_EXACT:
        raise UnsupportedSchemeException(
            f"Unsupported payment scheme: {payment_requirements.scheme}"
        )
    scheme = strategy[get_network_family(payment_requirements.network)]
    return scheme.create_payment_header(
        resolve_signer(scheme, signer), x402_version, payment_requirements
    )
