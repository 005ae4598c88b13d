from unittest.mock import MagicMock

import pytest
from eth_account import Account
from hiero_sdk_python import AccountId, PrivateKey, ResponseCode
from solders.hash import Hash
from solders.keypair import Keypair

from x402_exact.evm.signers import EvmSigner
from x402_exact.hedera.wallet import HederaSigner
from x402_exact.strategy import build_strategy
from x402_exact.svm.wallet import SvmSigner
from x402_exact.types import PaymentRequirements

BASE_SEPOLIA_USDC = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"
SOLANA_DEVNET_USDC = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"

HEDERA_PAYER = "0.0.123456"
HEDERA_PAY_TO = "0.0.789012"
HEDERA_FEE_PAYER = "0.0.999999"


@pytest.fixture(scope="session")
def strategy():
    return build_strategy()


# EVM


class FakeEvmSigner(EvmSigner):
    """EvmSigner with the chain replaced by canned answers."""

    def __init__(self, account=None, balance=10**12, receipt=None):
        super().__init__("base-sepolia", account or Account.create(), MagicMock())
        self.balance = balance
        self.receipt = receipt if receipt is not None else {"status": 1}
        self.write_contract = MagicMock(return_value="0x" + "ab" * 32)
        self.wait_for_transaction_receipt = MagicMock(return_value=self.receipt)

    def get_balance(self, address, token_address):
        return self.balance


@pytest.fixture
def evm_payer():
    return Account.create()


@pytest.fixture
def evm_facilitator():
    return FakeEvmSigner()


@pytest.fixture
def evm_requirements():
    return PaymentRequirements(
        scheme="exact",
        network="base-sepolia",
        asset=BASE_SEPOLIA_USDC,
        pay_to="0x0000000000000000000000000000000000000001",
        max_amount_required="10000",
        resource="https://example.com/weather",
        description="weather report",
        max_timeout_seconds=300,
        mime_type="application/json",
        extra={"name": "USDC", "version": "2"},
    )


# Solana


def make_mint_data(decimals=6):
    data = bytearray(82)
    data[44] = decimals
    return bytes(data)


def make_svm_client(existing_accounts=(), decimals=6):
    """A MagicMock Solana RPC client with the given accounts already created."""
    client = MagicMock()
    existing = set(existing_accounts)

    def get_account_info(pubkey):
        response = MagicMock()
        if str(pubkey) == SOLANA_DEVNET_USDC:
            response.value.data = make_mint_data(decimals)
        elif pubkey in existing:
            response.value.data = b"\x00"
        else:
            response.value = None
        return response

    client.get_account_info.side_effect = get_account_info
    client.get_latest_blockhash.return_value.value.blockhash = Hash.default()
    client.get_token_account_balance.return_value.value.amount = str(10**12)
    return client


@pytest.fixture
def svm_client():
    return make_svm_client()


@pytest.fixture
def svm_payer(svm_client):
    return SvmSigner("solana-devnet", Keypair(), svm_client)


@pytest.fixture
def svm_facilitator(svm_client):
    return SvmSigner("solana-devnet", Keypair(), svm_client)


@pytest.fixture
def svm_requirements(svm_facilitator):
    return PaymentRequirements(
        scheme="exact",
        network="solana-devnet",
        asset=SOLANA_DEVNET_USDC,
        pay_to=str(Keypair().pubkey()),
        max_amount_required="1000",
        resource="https://example.com/weather",
        max_timeout_seconds=60,
        extra={"feePayer": svm_facilitator.address},
    )


# Hedera

HEDERA_NODE = "0.0.3"


class FakeHederaSigner(HederaSigner):
    """HederaSigner with a real key whose network calls are replaced by canned answers."""

    def __init__(self, account_id, balance=10**12, status=ResponseCode.SUCCESS):
        super().__init__(
            "hedera-testnet",
            MagicMock(),
            AccountId.from_string(account_id),
            PrivateKey.generate_ecdsa(),
        )
        self.balance = balance
        self.status = status
        self.execute_error = None
        self.frozen = []
        self.signed = []
        self.executed = []

    @property
    def public_key(self):
        return self.private_key.public_key()

    def freeze(self, transaction):
        # no client network to pick nodes from
        transaction.set_node_account_ids([AccountId.from_string(HEDERA_NODE)])
        transaction.freeze()
        self.frozen.append(transaction)
        return transaction

    def sign(self, transaction):
        super().sign(transaction)
        self.signed.append(transaction)
        return transaction

    def execute(self, transaction):
        self.executed.append(transaction)
        if self.execute_error is not None:
            raise self.execute_error
        receipt = MagicMock()
        receipt.status = self.status
        return receipt

    def get_balance(self, account_id, asset):
        return self.balance


@pytest.fixture
def hedera_payer():
    return FakeHederaSigner(HEDERA_PAYER)


@pytest.fixture
def hedera_facilitator():
    return FakeHederaSigner(HEDERA_FEE_PAYER)


@pytest.fixture
def hedera_requirements():
    return PaymentRequirements(
        scheme="exact",
        network="hedera-testnet",
        asset="hbar",
        pay_to=HEDERA_PAY_TO,
        max_amount_required="50000000",
        resource="https://example.com/weather",
        max_timeout_seconds=60,
        extra={"feePayer": HEDERA_FEE_PAYER},
    )
