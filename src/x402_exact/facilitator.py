"""Facilitator-side routing of verify and settle to the right network family."""

import logging
from typing import Any, Mapping, Optional, Union

from x402_exact.common import SCHEME_EXACT, x402_VERSION
from x402_exact.errors import (
    ERR_INVALID_NETWORK,
    ERR_INVALID_SCHEME,
    InvalidSignerError,
    UnsupportedNetworkError,
)
from x402_exact.exact_hedera import DEFAULT_SETTLE_TIMEOUT_SECONDS
from x402_exact.networks import NetworkFamily, get_network_family
from x402_exact.strategy import PaymentScheme, Strategy, build_strategy
from x402_exact.types import (
    ExactEvmPayload,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    SupportedKind,
    SupportedResponse,
    VerifyResponse,
)
from x402_exact.wallet import MultiNetworkSigner, Signer

logger = logging.getLogger(__name__)

# Families whose transactions are submitted with the facilitator as fee payer
FEE_PAYER_FAMILIES = (NetworkFamily.SVM, NetworkFamily.HEDERA)


def route(
    strategy: Strategy, payload: PaymentPayload, requirements: PaymentRequirements
) -> Optional[PaymentScheme]:
    """Return the family implementation for a payment, or None if it cannot be routed."""
    if payload.scheme != SCHEME_EXACT or requirements.scheme != SCHEME_EXACT:
        return None
    try:
        family = get_network_family(requirements.network)
    except UnsupportedNetworkError:
        return None
    return strategy.get(family)


def resolve_signer(
    scheme: PaymentScheme,
    signer: Union[Signer, MultiNetworkSigner, None],
    facilitator: bool = False,
) -> Any:
    """Pick the signer for the scheme's family and check it can act in the role.

    Raises:
        InvalidSignerError: If the signer cannot act for the family
    """
    if isinstance(signer, MultiNetworkSigner):
        signer = signer.for_family(scheme.family)
    is_capable = scheme.is_facilitator_signer if facilitator else scheme.is_signer
    if signer is None or not is_capable(signer):
        raise InvalidSignerError(scheme.family.value.upper())
    return signer


def _payer_hint(payload: PaymentPayload) -> str:
    if isinstance(payload.payload, ExactEvmPayload):
        return payload.payload.authorization.from_
    return ""


def verify(
    strategy: Strategy,
    signer: Union[Signer, MultiNetworkSigner],
    payload: PaymentPayload,
    requirements: PaymentRequirements,
) -> VerifyResponse:
    """
    Verify a payment with the implementation of its network's family.

    Unroutable payments are reported as `invalid_scheme` rather than raised.

    Raises:
        InvalidSignerError: If the signer cannot facilitate on the network's family
    """
    scheme = route(strategy, payload, requirements)
    if scheme is None:
        logger.info(
            "Cannot route %s payment on %s", requirements.scheme, requirements.network
        )
        return VerifyResponse(
            is_valid=False, invalid_reason=ERR_INVALID_SCHEME, payer=_payer_hint(payload)
        )
    return scheme.verify(
        resolve_signer(scheme, signer, facilitator=True), payload, requirements
    )


def settle(
    strategy: Strategy,
    signer: Union[Signer, MultiNetworkSigner],
    payload: PaymentPayload,
    requirements: PaymentRequirements,
    timeout_seconds: float = DEFAULT_SETTLE_TIMEOUT_SECONDS,
) -> SettleResponse:
    """
    Settle a payment with the implementation of its network's family.

    Raises:
        InvalidSignerError: If the signer cannot facilitate on the network's family
    """
    scheme = route(strategy, payload, requirements)
    if scheme is None:
        logger.info(
            "Cannot route %s payment on %s", requirements.scheme, requirements.network
        )
        return SettleResponse(
            success=False,
            error_reason=ERR_INVALID_SCHEME,
            transaction="",
            network=requirements.network,
            payer=_payer_hint(payload),
        )
    return scheme.settle(
        resolve_signer(scheme, signer, facilitator=True),
        payload,
        requirements,
        timeout_seconds=timeout_seconds,
    )


class x402Facilitator:
    """Verifies and settles payments on behalf of resource servers.

    Holds one signer per network it serves and the family table it routes
    through. Safe to share across concurrent requests.

    Example:
        ```python
        from x402_exact import x402Facilitator, build_strategy, create_signer

        facilitator = x402Facilitator(
            build_strategy(),
            {"base-sepolia": create_signer("base-sepolia", evm_key)},
        )
        result = facilitator.verify(payload, requirements)
        ```
    """

    def __init__(
        self,
        strategy: Optional[Strategy] = None,
        signers: Optional[Mapping[str, Signer]] = None,
        settle_timeout_seconds: float = DEFAULT_SETTLE_TIMEOUT_SECONDS,
    ) -> None:
        self._strategy = strategy if strategy is not None else build_strategy()
        self._signers = dict(signers or {})
        self._settle_timeout_seconds = settle_timeout_seconds
        for network, signer in self._signers.items():
            scheme = self._strategy[get_network_family(network)]
            resolve_signer(scheme, signer, facilitator=True)

    @property
    def networks(self) -> list[str]:
        return list(self._signers)

    def signer_for(self, network: str) -> Optional[Signer]:
        return self._signers.get(network)

    def verify(self, payload: PaymentPayload, requirements: PaymentRequirements) -> VerifyResponse:
        """Verify a payment without submitting it.

        Returns:
            VerifyResponse with is_valid=True or the reason it is invalid.
        """
        signer = self._signers.get(requirements.network)
        if signer is None and route(self._strategy, payload, requirements) is not None:
            logger.info("No signer configured for %s", requirements.network)
            return VerifyResponse(
                is_valid=False, invalid_reason=ERR_INVALID_NETWORK, payer=_payer_hint(payload)
            )
        return verify(self._strategy, signer, payload, requirements)

    def settle(self, payload: PaymentPayload, requirements: PaymentRequirements) -> SettleResponse:
        """Verify, then submit a payment and wait for its receipt.

        Returns:
            SettleResponse with the ledger transaction id on success.
        """
        signer = self._signers.get(requirements.network)
        if signer is None and route(self._strategy, payload, requirements) is not None:
            logger.info("No signer configured for %s", requirements.network)
            return SettleResponse(
                success=False,
                error_reason=ERR_INVALID_NETWORK,
                transaction="",
                network=requirements.network,
                payer=_payer_hint(payload),
            )
        return settle(
            self._strategy,
            signer,
            payload,
            requirements,
            timeout_seconds=self._settle_timeout_seconds,
        )

    def get_supported(self) -> SupportedResponse:
        """List the scheme/network pairs this facilitator settles.

        Fee-payer families advertise the facilitator account as `extra.feePayer`.
        """
        kinds = []
        for network, signer in self._signers.items():
            extra = None
            if get_network_family(network) in FEE_PAYER_FAMILIES:
                extra = {"feePayer": signer.address}
            kinds.append(
                SupportedKind(
                    x402_version=x402_VERSION,
                    scheme=SCHEME_EXACT,
                    network=network,
                    extra=extra,
                )
            )
        return SupportedResponse(kinds=kinds)
