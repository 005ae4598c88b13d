"""
Client helpers for paying x402-protected resources.

    - x402Client: selects requirements and builds X-PAYMENT headers
    - decode_x_payment_response: decode the X-PAYMENT-RESPONSE header
"""

from x402_exact.clients.base import (
    PaymentAmountExceededError,
    PaymentError,
    decode_x_payment_response,
    x402Client,
)

__all__ = [
    "x402Client",
    "decode_x_payment_response",
    "PaymentError",
    "PaymentAmountExceededError",
]
