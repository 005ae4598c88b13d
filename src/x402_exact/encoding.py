import base64
import binascii
import json
from typing import Any, Dict, Union

from pydantic import ValidationError

from x402_exact.errors import MalformedPayloadError
from x402_exact.types import PaymentPayload, SettleResponse


def safe_base64_encode(data: Union[str, bytes]) -> str:
    """Safely encode string or bytes to base64 string.

    Args:
        data: String or bytes to encode

    Returns:
        Base64 encoded string
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def safe_base64_decode(data: str) -> str:
    """Safely decode base64 string to bytes and then to utf-8 string.

    Args:
        data: Base64 encoded string

    Returns:
        Decoded utf-8 string

    Raises:
        ValueError: If the input is not valid base64 or not utf-8
    """
    return base64.b64decode(data, validate=True).decode("utf-8")


def _canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"))


def encode_payment(payment_payload: Union[PaymentPayload, Dict[str, Any]]) -> str:
    """Encode a payment payload into the X-PAYMENT header value.

    Dict input is validated first, so the output field order always follows
    the PaymentPayload model and not the caller's insertion order.

    Raises:
        MalformedPayloadError: If a dict does not describe a PaymentPayload
    """
    if not isinstance(payment_payload, PaymentPayload):
        try:
            payment_payload = PaymentPayload.model_validate(payment_payload)
        except ValidationError as e:
            raise MalformedPayloadError(f"Invalid payment payload: {e}") from e
    data = payment_payload.model_dump(by_alias=True, exclude_none=True)
    return safe_base64_encode(_canonical_json(data))


def decode_payment(encoded_payment: str) -> PaymentPayload:
    """Decode an X-PAYMENT header value into a PaymentPayload.

    Only the envelope shape is checked here. Whether the payment is any good
    is decided by the verifier.

    Raises:
        MalformedPayloadError: On invalid base64, invalid JSON or a wrong shape
    """
    try:
        decoded = safe_base64_decode(encoded_payment)
    except (binascii.Error, ValueError, TypeError) as e:
        raise MalformedPayloadError(f"Payment header is not valid base64: {e}") from e
    try:
        return PaymentPayload.model_validate_json(decoded)
    except ValidationError as e:
        raise MalformedPayloadError(f"Payment header has an invalid shape: {e}") from e


def encode_settle_response_header(response: SettleResponse) -> str:
    """Encode a settlement result into the X-PAYMENT-RESPONSE header value."""
    data = response.model_dump(by_alias=True, exclude_none=True)
    return safe_base64_encode(_canonical_json(data))


def decode_settle_response_header(header: str) -> SettleResponse:
    """Decode an X-PAYMENT-RESPONSE header value.

    Raises:
        MalformedPayloadError: On invalid base64 or JSON
    """
    try:
        return SettleResponse.model_validate_json(safe_base64_decode(header))
    except (binascii.Error, ValueError) as e:
        raise MalformedPayloadError(f"Invalid payment response header: {e}") from e
