"""The exact scheme's per-family implementations, selected by network family."""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

from x402_exact import exact, exact_hedera, exact_svm
from x402_exact.networks import NetworkFamily, get_network_family
from x402_exact.types import (
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)
from x402_exact.wallet import (
    is_evm_facilitator_signer,
    is_evm_signer,
    is_hedera_signer,
    is_svm_signer,
)

CreateHeaderFn = Callable[[Any, int, PaymentRequirements], str]
VerifyFn = Callable[[Any, PaymentPayload, PaymentRequirements], VerifyResponse]
SettleFn = Callable[..., SettleResponse]


@dataclass(frozen=True)
class PaymentScheme:
    """Builder, verifier and settler of one network family.

    `is_signer` accepts payer signers, `is_facilitator_signer` the signers
    that can verify and submit.
    """

    family: NetworkFamily
    create_payment_header: CreateHeaderFn
    verify: VerifyFn
    settle: SettleFn
    is_signer: Callable[[Any], bool]
    is_facilitator_signer: Callable[[Any], bool]


Strategy = Mapping[NetworkFamily, PaymentScheme]


def build_strategy() -> Strategy:
    """Build the read-only family table. Call once at startup and pass it along."""
    return MappingProxyType(
        {
            NetworkFamily.EVM: PaymentScheme(
                family=NetworkFamily.EVM,
                create_payment_header=exact.create_payment_header,
                verify=exact.verify,
                settle=exact.settle,
                is_signer=is_evm_signer,
                is_facilitator_signer=is_evm_facilitator_signer,
            ),
            NetworkFamily.SVM: PaymentScheme(
                family=NetworkFamily.SVM,
                create_payment_header=exact_svm.create_payment_header,
                verify=exact_svm.verify,
                settle=exact_svm.settle,
                is_signer=is_svm_signer,
                is_facilitator_signer=is_svm_signer,
            ),
            NetworkFamily.HEDERA: PaymentScheme(
                family=NetworkFamily.HEDERA,
                create_payment_header=exact_hedera.create_payment_header,
                verify=exact_hedera.verify,
                settle=exact_hedera.settle,
                is_signer=is_hedera_signer,
                is_facilitator_signer=is_hedera_signer,
            ),
        }
    )


def scheme_for_network(strategy: Strategy, network: str) -> PaymentScheme:
    """
    Raises:
        UnsupportedNetworkError: If the network is unknown
        KeyError: If the strategy has no entry for the network's family
    """
    return strategy[get_network_family(network)]
