import base64
import json

import pytest

from x402_exact.encoding import (
    decode_payment,
    decode_settle_response_header,
    encode_payment,
    encode_settle_response_header,
    safe_base64_decode,
    safe_base64_encode,
)
from x402_exact.errors import MalformedPayloadError
from x402_exact.types import (
    ExactEvmPayload,
    ExactHederaPayload,
    ExactSvmPayload,
    PaymentPayload,
    SettleResponse,
)

EVM_PAYMENT = {
    "x402Version": 1,
    "scheme": "exact",
    "network": "base-sepolia",
    "payload": {
        "signature": "0x" + "11" * 65,
        "authorization": {
            "from": "0x857b06519E91e3A54538791bDbb0E22373e36b66",
            "to": "0x209693Bc6afc0C5328bA36FaF03C514EF312287C",
            "value": "10000",
            "validAfter": "1740672089",
            "validBefore": "1740672154",
            "nonce": "0x" + "22" * 32,
        },
    },
}


def test_safe_base64_encode_decode():
    assert safe_base64_encode("hello") == "aGVsbG8="
    assert safe_base64_encode(b"hello") == "aGVsbG8="
    assert safe_base64_decode("aGVsbG8=") == "hello"


def test_safe_base64_decode_rejects_garbage():
    with pytest.raises(ValueError):
        safe_base64_decode("not base64!!")


class TestPaymentCodec:
    def test_round_trip_evm(self):
        """An EVM payment survives encode then decode."""
        encoded = encode_payment(EVM_PAYMENT)
        decoded = decode_payment(encoded)
        assert isinstance(decoded.payload, ExactEvmPayload)
        assert decoded.payload.authorization.from_ == EVM_PAYMENT["payload"]["authorization"]["from"]
        assert decoded == PaymentPayload.model_validate(EVM_PAYMENT)

    def test_transaction_payload_resolved_by_network(self):
        """The same payload shape decodes to the family of its network."""
        svm = decode_payment(
            encode_payment(
                {"x402Version": 1, "scheme": "exact", "network": "solana", "payload": {"transaction": "AQ=="}}
            )
        )
        hedera = decode_payment(
            encode_payment(
                {
                    "x402Version": 1,
                    "scheme": "exact",
                    "network": "hedera-testnet",
                    "payload": {"transaction": "AQ=="},
                }
            )
        )
        assert isinstance(svm.payload, ExactSvmPayload)
        assert isinstance(hedera.payload, ExactHederaPayload)
        assert hedera.payload.transaction == "AQ=="

    def test_encoding_is_independent_of_key_order(self):
        reordered = {
            "payload": EVM_PAYMENT["payload"],
            "network": "base-sepolia",
            "scheme": "exact",
            "x402Version": 1,
        }
        assert encode_payment(reordered) == encode_payment(EVM_PAYMENT)

    def test_encoded_json_uses_wire_names(self):
        data = json.loads(base64.b64decode(encode_payment(EVM_PAYMENT)))
        assert list(data) == ["x402Version", "scheme", "network", "payload"]
        assert "validAfter" in data["payload"]["authorization"]
        assert "from" in data["payload"]["authorization"]

    def test_decode_invalid_base64(self):
        with pytest.raises(MalformedPayloadError):
            decode_payment("%%%")

    def test_decode_invalid_json(self):
        with pytest.raises(MalformedPayloadError):
            decode_payment(base64.b64encode(b"{not json").decode())

    def test_decode_wrong_shape(self):
        with pytest.raises(MalformedPayloadError):
            decode_payment(base64.b64encode(b'{"scheme": "exact"}').decode())

    def test_decode_keeps_unknown_network(self):
        """Semantic problems are left to the verifier."""
        payment = dict(EVM_PAYMENT, network="mystery-chain")
        decoded = decode_payment(encode_payment(payment))
        assert decoded.network == "mystery-chain"

    def test_encode_rejects_invalid_dict(self):
        with pytest.raises(MalformedPayloadError):
            encode_payment({"scheme": "exact"})


class TestSettleResponseHeader:
    def test_round_trip(self):
        response = SettleResponse(
            success=True, transaction="0.0.999999@1700000000.000000001", network="hedera-testnet", payer="0.0.123456"
        )
        header = encode_settle_response_header(response)
        assert json.loads(base64.b64decode(header))["transaction"] == response.transaction
        assert decode_settle_response_header(header) == response

    def test_decode_invalid(self):
        with pytest.raises(MalformedPayloadError):
            decode_settle_response_header("invalid base64!")
