from decimal import Decimal

import pytest

from x402_exact.common import (
    find_matching_payment_requirements,
    parse_atomic_amount,
    parse_money,
    process_price_to_atomic_amount,
)
from x402_exact.errors import InvalidAmountError, UnsupportedNetworkError
from x402_exact.types import PaymentPayload, PaymentRequirements


class TestParseAtomicAmount:
    def test_parses_beyond_float_precision(self):
        assert parse_atomic_amount("9007199254740993") == 9007199254740993
        assert parse_atomic_amount(str(2**70)) == 2**70

    @pytest.mark.parametrize("amount", ["", "-5", "1.0", "abc", " 1", None])
    def test_rejects(self, amount):
        with pytest.raises(InvalidAmountError):
            parse_atomic_amount(amount)


class TestParseMoney:
    @pytest.mark.parametrize(
        "money,expected",
        [("$1.50", "1.50"), ("0.01 USDC", "0.01"), (2, "2"), (0.25, "0.25"), (Decimal("3"), "3")],
    )
    def test_parse(self, money, expected):
        assert parse_money(money) == Decimal(expected)

    def test_invalid(self):
        with pytest.raises(InvalidAmountError):
            parse_money("ten dollars")


class TestProcessPriceToAtomicAmount:
    def test_evm_usdc(self):
        amount, asset = process_price_to_atomic_amount("$0.01", "base-sepolia")
        assert amount == "10000"
        assert asset == "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

    def test_hedera_usdc(self):
        assert process_price_to_atomic_amount("$1", "hedera-testnet") == ("1000000", "0.0.429274")

    def test_rejects_excess_precision(self):
        with pytest.raises(InvalidAmountError):
            process_price_to_atomic_amount("$0.0000001", "base")

    def test_rejects_negative(self):
        with pytest.raises(InvalidAmountError):
            process_price_to_atomic_amount("-1", "base")

    def test_unknown_network(self):
        with pytest.raises(UnsupportedNetworkError):
            process_price_to_atomic_amount("$1", "nowhere")


def test_find_matching_payment_requirements():
    def requirements(network):
        return PaymentRequirements(
            scheme="exact",
            network=network,
            asset="hbar",
            pay_to="0.0.2",
            max_amount_required="1",
            resource="https://example.com",
            max_timeout_seconds=60,
        )

    accepts = [requirements("base"), requirements("hedera-testnet")]
    payment = PaymentPayload.model_validate(
        {"x402Version": 1, "scheme": "exact", "network": "hedera-testnet", "payload": {"transaction": "AQ=="}}
    )
    assert find_matching_payment_requirements(accepts, payment) is accepts[1]
    payment.network = "solana"
    assert find_matching_payment_requirements(accepts, payment) is None
