"""Error reasons and exceptions shared by every network family."""

# Structural
ERR_INVALID_SCHEME = "invalid_scheme"
ERR_UNSUPPORTED_SCHEME = "unsupported_scheme"
ERR_INVALID_NETWORK = "invalid_network"
ERR_INVALID_PAYLOAD = "invalid_payload"
ERR_INVALID_TRANSACTION = "invalid_payload_transaction"

# Authorization
ERR_INVALID_SIGNATURE = "invalid_payload_transaction_signature"
ERR_INVALID_VALID_BEFORE = "invalid_payload_authorization_valid_before"
ERR_INVALID_VALID_AFTER = "invalid_payload_authorization_valid_after"

# Economic
ERR_ASSET_MISMATCH = "invalid_payload_transaction_asset_mismatch"
ERR_AMOUNT_MISMATCH = "invalid_payload_transaction_amount_mismatch"
ERR_RECIPIENT_MISMATCH = "invalid_payload_transaction_recipient_mismatch"
ERR_INSUFFICIENT_FUNDS = "insufficient_funds"

# Settlement
ERR_INSUFFICIENT_BALANCE = "insufficient_balance"
ERR_TRANSACTION_FAILED = "transaction_failed"
ERR_CONFIRMATION_TIMEOUT = "confirmation_timeout"

# Catch-all
ERR_UNEXPECTED_VERIFY = "unexpected_verify_error"
ERR_UNEXPECTED_SETTLE = "unexpected_settle_error"

ERROR_REASONS = frozenset(
    [
        ERR_INVALID_SCHEME,
        ERR_UNSUPPORTED_SCHEME,
        ERR_INVALID_NETWORK,
        ERR_INVALID_PAYLOAD,
        ERR_INVALID_TRANSACTION,
        ERR_INVALID_SIGNATURE,
        ERR_INVALID_VALID_BEFORE,
        ERR_INVALID_VALID_AFTER,
        ERR_ASSET_MISMATCH,
        ERR_AMOUNT_MISMATCH,
        ERR_RECIPIENT_MISMATCH,
        ERR_INSUFFICIENT_FUNDS,
        ERR_INSUFFICIENT_BALANCE,
        ERR_TRANSACTION_FAILED,
        ERR_CONFIRMATION_TIMEOUT,
        ERR_UNEXPECTED_VERIFY,
        ERR_UNEXPECTED_SETTLE,
    ]
)


class X402Error(Exception):
    """Base class for errors raised by this package."""


def _check_reason(reason: str) -> None:
    if reason not in ERROR_REASONS:
        raise ValueError(f"Unknown error reason: {reason}")


class UnsupportedNetworkError(X402Error, ValueError):
    def __init__(self, network: str):
        super().__init__(f"Unsupported network: {network}")
        self.network = network


class UnsupportedSchemeException(X402Error):
    pass


class MalformedPayloadError(X402Error, ValueError):
    """Raised when a payment header is not valid base64 JSON of the expected shape."""


class FeePayerRequiredError(X402Error, ValueError):
    """Raised when requirements lack the `extra.feePayer` field a family needs."""

    def __init__(self, network: str = ""):
        where = f" for {network}" if network else ""
        super().__init__(f"feePayer is required in paymentRequirements.extra{where}")


class InvalidAmountError(X402Error, ValueError):
    pass


class InvalidSignerError(X402Error, TypeError):
    """Raised when a signer does not match the family of the requested network."""

    def __init__(self, family: str):
        super().__init__(f"Invalid {family} wallet client provided")
        self.family = family


class VerificationError(X402Error):
    """Raised inside a verifier to short-circuit with a known reason."""

    def __init__(self, reason: str, detail: str = ""):
        _check_reason(reason)
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class SettlementError(X402Error):
    """Raised inside a settler when the ledger rejects or times out."""

    def __init__(self, reason: str, detail: str = "", transaction: str = ""):
        _check_reason(reason)
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail
        self.transaction = transaction
