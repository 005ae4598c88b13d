from __future__ import annotations

import re
from typing import Any, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from x402_exact.errors import FeePayerRequiredError, UnsupportedNetworkError
from x402_exact.networks import NetworkFamily, get_network_family

_ATOMIC_AMOUNT = re.compile(r"^[0-9]+$")

ExtraT = TypeVar("ExtraT", bound=BaseModel)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _validate_atomic_amount(field: str, v: str) -> str:
    if not isinstance(v, str) or not _ATOMIC_AMOUNT.match(v):
        raise ValueError(f"{field} must be a non-negative integer encoded as a string")
    return v


class EvmExtra(CamelModel):
    """EIP-712 domain fields a token contract needs for EIP-3009 signing"""

    name: str
    version: str


class FeePayerExtra(CamelModel):
    """Extra fields for families where the facilitator pays network fees"""

    fee_payer: str


class PaymentRequirements(CamelModel):
    scheme: str
    network: str
    max_amount_required: str
    resource: str
    description: str = ""
    mime_type: str = ""
    output_schema: Optional[Any] = None
    pay_to: str
    max_timeout_seconds: int
    asset: str
    extra: Optional[dict[str, Any]] = None

    @field_validator("max_amount_required")
    def validate_max_amount_required(cls, v):
        return _validate_atomic_amount("max_amount_required", v)

    def extra_as(self, model: Type[ExtraT]) -> ExtraT:
        """Parse the open `extra` bag into a family-specific struct.

        Raises:
            pydantic.ValidationError: If required fields are missing
        """
        return model.model_validate(self.extra or {})

    def fee_payer(self) -> str:
        """Return `extra.feePayer`.

        Raises:
            FeePayerRequiredError: If the field is absent or empty
        """
        try:
            fee_payer = self.extra_as(FeePayerExtra).fee_payer
        except ValidationError:
            raise FeePayerRequiredError(self.network) from None
        if not fee_payer:
            raise FeePayerRequiredError(self.network)
        return fee_payer


# Returned by a server as json alongside a 402 response code
class x402PaymentRequiredResponse(CamelModel):
    x402_version: int
    accepts: list[PaymentRequirements]
    error: str = ""


class EIP3009Authorization(CamelModel):
    from_: str = Field(alias="from")
    to: str
    value: str
    valid_after: str
    valid_before: str
    nonce: str

    @field_validator("value")
    def validate_value(cls, v):
        return _validate_atomic_amount("value", v)


class ExactEvmPayload(CamelModel):
    signature: str
    authorization: EIP3009Authorization


class ExactSvmPayload(CamelModel):
    """Base64 encoded, partially signed Solana transaction"""

    transaction: str


class ExactHederaPayload(CamelModel):
    """Base64 encoded, payer-signed Hedera TransferTransaction"""

    transaction: str


# Union of payloads for each family of the exact scheme
SchemePayloads = Union[ExactEvmPayload, ExactSvmPayload, ExactHederaPayload]

_TRANSACTION_PAYLOADS = {
    NetworkFamily.SVM: ExactSvmPayload,
    NetworkFamily.HEDERA: ExactHederaPayload,
}


class PaymentPayload(CamelModel):
    x402_version: int
    scheme: str
    network: str
    payload: SchemePayloads

    @model_validator(mode="after")
    def resolve_family_payload(self):
        # SVM and Hedera payloads share a shape, so the network decides
        try:
            family = get_network_family(self.network)
        except UnsupportedNetworkError:
            return self
        expected = _TRANSACTION_PAYLOADS.get(family)
        if expected is not None and not isinstance(self.payload, (expected, ExactEvmPayload)):
            self.payload = expected(transaction=self.payload.transaction)
        return self


class VerifyResponse(CamelModel):
    is_valid: bool
    invalid_reason: Optional[str] = None
    payer: Optional[str] = None


class SettleResponse(CamelModel):
    success: bool
    error_reason: Optional[str] = None
    transaction: str = ""
    network: Optional[str] = None
    payer: Optional[str] = None


class SupportedKind(CamelModel):
    x402_version: int = 1
    scheme: str
    network: str
    extra: Optional[dict[str, Any]] = None


class SupportedResponse(CamelModel):
    kinds: list[SupportedKind]


class FacilitatorRequest(CamelModel):
    """Body accepted by the facilitator's /verify and /settle endpoints.

    Callers send either the decoded `paymentPayload` or the raw
    `paymentHeader` string taken from the X-PAYMENT header.
    """

    x402_version: int = 1
    payment_payload: Optional[PaymentPayload] = None
    payment_header: Optional[str] = None
    payment_requirements: PaymentRequirements

    @model_validator(mode="after")
    def require_payment(self):
        if self.payment_payload is None and not self.payment_header:
            raise ValueError("paymentPayload or paymentHeader is required")
        return self


VerifyRequest = FacilitatorRequest
SettleRequest = FacilitatorRequest
