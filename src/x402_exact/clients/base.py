from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from x402_exact.client import create_payment_header
from x402_exact.common import SCHEME_EXACT, parse_atomic_amount, x402_VERSION
from x402_exact.encoding import decode_settle_response_header
from x402_exact.errors import (
    InvalidSignerError,
    UnsupportedNetworkError,
    UnsupportedSchemeException,
    X402Error,
)
from x402_exact.facilitator import resolve_signer
from x402_exact.networks import get_network_family
from x402_exact.strategy import Strategy, build_strategy
from x402_exact.types import PaymentRequirements, SettleResponse, x402PaymentRequiredResponse
from x402_exact.wallet import MultiNetworkSigner, Signer

# Define type for the payment requirements selector
PaymentSelectorCallable = Callable[
    [List[PaymentRequirements], Optional[str], Optional[str], Optional[int]],
    PaymentRequirements,
]


def decode_x_payment_response(header: str) -> SettleResponse:
    """Decode the X-PAYMENT-RESPONSE header.

    Args:
        header: The X-PAYMENT-RESPONSE header to decode

    Returns:
        The settlement result: success, transaction, network and payer

    Raises:
        MalformedPayloadError: If the header is not base64 JSON of a settle response
    """
    return decode_settle_response_header(header)


class PaymentError(X402Error):
    """Base class for payment-related errors."""

    pass


class PaymentAmountExceededError(PaymentError):
    """Raised when payment amount exceeds maximum allowed value."""

    pass


class x402Client:
    """Pays for resources on any network the signer covers."""

    def __init__(
        self,
        signer: Union[Signer, MultiNetworkSigner],
        strategy: Optional[Strategy] = None,
        max_value: Optional[int] = None,
        payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    ):
        """Initialize the x402 client.

        Args:
            signer: Signer for one network, or a MultiNetworkSigner
            strategy: Family table from build_strategy(); built here when omitted
            max_value: Optional maximum allowed payment amount in base units
            payment_requirements_selector: Optional custom selector for payment requirements
        """
        self.signer = signer
        self.strategy = strategy if strategy is not None else build_strategy()
        self.max_value = max_value
        self._payment_requirements_selector = (
            payment_requirements_selector or self.default_payment_requirements_selector
        )

    @staticmethod
    def default_payment_requirements_selector(
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
        max_value: Optional[int] = None,
    ) -> PaymentRequirements:
        """Select the first exact-scheme requirements on a known network within max_value.

        Raises:
            UnsupportedSchemeException: If no supported scheme is found
            PaymentAmountExceededError: If every supported entry exceeds max_value
        """
        over_limit = None
        for requirements in accepts:
            if scheme_filter and requirements.scheme != scheme_filter:
                continue
            if network_filter and requirements.network != network_filter:
                continue
            if requirements.scheme != SCHEME_EXACT:
                continue
            try:
                get_network_family(requirements.network)
            except UnsupportedNetworkError:
                continue

            if max_value is not None:
                amount = parse_atomic_amount(requirements.max_amount_required)
                if amount > max_value:
                    if over_limit is None:
                        over_limit = amount
                    continue
            return requirements

        if over_limit is not None:
            raise PaymentAmountExceededError(
                f"Payment amount {over_limit} exceeds maximum allowed value {max_value}"
            )
        raise UnsupportedSchemeException("No supported payment scheme found")

    def can_pay(self, payment_requirements: PaymentRequirements) -> bool:
        """Return True if the signer covers the requirements' network family."""
        try:
            scheme = self.strategy.get(get_network_family(payment_requirements.network))
        except UnsupportedNetworkError:
            return False
        if scheme is None:
            return False
        try:
            resolve_signer(scheme, self.signer)
        except InvalidSignerError:
            return False
        return True

    def select_payment_requirements(
        self,
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
    ) -> PaymentRequirements:
        """Select payment requirements the signer can pay, using the configured selector."""
        payable = [requirements for requirements in accepts if self.can_pay(requirements)]
        return self._payment_requirements_selector(
            payable, network_filter, scheme_filter, self.max_value
        )

    def create_payment_header(
        self,
        payment_requirements: PaymentRequirements,
        x402_version: int = x402_VERSION,
    ) -> str:
        """Create a signed X-PAYMENT header value for the given requirements."""
        return create_payment_header(
            self.strategy, self.signer, x402_version, payment_requirements
        )

    def pay(
        self,
        challenge: Union[x402PaymentRequiredResponse, Dict[str, Any]],
        network_filter: Optional[str] = None,
    ) -> Tuple[PaymentRequirements, str]:
        """Answer a 402 challenge body.

        Returns:
            The selected requirements and the X-PAYMENT header value
        """
        if isinstance(challenge, dict):
            challenge = x402PaymentRequiredResponse.model_validate(challenge)
        selected = self.select_payment_requirements(challenge.accepts, network_filter)
        return selected, self.create_payment_header(selected, challenge.x402_version)
