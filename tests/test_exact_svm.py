from unittest.mock import MagicMock

import pytest
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction_status import TransactionConfirmationStatus

from conftest import SOLANA_DEVNET_USDC
from x402_exact.encoding import decode_payment, encode_payment
from x402_exact.errors import (
    ERROR_REASONS,
    FeePayerRequiredError,
    InvalidAmountError,
    UnsupportedNetworkError,
)
from x402_exact.exact_svm import create_payment_header, settle, verify
from x402_exact.svm.rpc import get_rpc_url
from x402_exact.svm.transaction import (
    build_transaction,
    create_transfer_instruction,
    decode_transaction,
    encode_transaction,
    get_associated_token_address_for_owner,
    has_valid_signature,
    parse_transfer_checked,
    sign_transaction,
)
from x402_exact.svm.wallet import create_svm_signer

MINT = Pubkey.from_string(SOLANA_DEVNET_USDC)


def payment_for(transaction, network="solana-devnet"):
    return decode_payment(
        encode_payment(
            {
                "x402Version": 1,
                "scheme": "exact",
                "network": network,
                "payload": {"transaction": encode_transaction(transaction)},
            }
        )
    )


def transfer_instruction(payer, requirements, amount=None, mint=MINT, pay_to=None):
    pay_to = Pubkey.from_string(pay_to or requirements.pay_to)
    return create_transfer_instruction(
        source=get_associated_token_address_for_owner(mint, payer.pubkey),
        dest=get_associated_token_address_for_owner(mint, pay_to),
        owner=payer.pubkey,
        amount=int(requirements.max_amount_required) if amount is None else amount,
        decimals=6,
        mint=mint,
    )


def build_transfer(payer, requirements, fee_payer, extra_instructions=(), sign=True, **transfer):
    """Build a TransferChecked transaction by hand, signed by the payer only."""
    transaction = build_transaction(
        [*extra_instructions, transfer_instruction(payer, requirements, **transfer)],
        fee_payer,
        payer.client.get_latest_blockhash().value.blockhash,
    )
    return sign_transaction(transaction, [payer.keypair]) if sign else transaction


def confirm_with(client, status=TransactionConfirmationStatus.Confirmed, err=None):
    client.send_transaction.return_value.value = Signature.default()
    entry = MagicMock()
    entry.err = err
    entry.confirmation_status = status
    client.get_signature_statuses.return_value.value = [entry]


class TestRpc:
    def test_urls(self):
        assert get_rpc_url("solana-devnet") == "https://api.devnet.solana.com"
        assert get_rpc_url("solana") == "https://api.mainnet-beta.solana.com"
        assert get_rpc_url("solana", "http://localhost:8899") == "http://localhost:8899"

    def test_unknown_network(self):
        with pytest.raises(UnsupportedNetworkError):
            get_rpc_url("base")

    def test_invalid_private_key(self):
        with pytest.raises(ValueError):
            create_svm_signer("solana-devnet", "not-a-key")


class TestCreatePaymentHeader:
    def test_transfer_paid_by_facilitator(self, svm_payer, svm_facilitator, svm_requirements):
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        transaction = decode_transaction(payment.payload.transaction)

        assert transaction.message.account_keys[0] == svm_facilitator.pubkey
        (transfer,) = parse_transfer_checked(transaction)
        assert transfer.amount == 1000
        assert transfer.decimals == 6
        assert transfer.mint == MINT
        assert transfer.authority == svm_payer.pubkey
        assert has_valid_signature(transaction, svm_payer.pubkey)
        assert not has_valid_signature(transaction, svm_facilitator.pubkey)

    def test_creates_recipient_token_account_when_missing(self, svm_payer, svm_requirements):
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        transaction = decode_transaction(payment.payload.transaction)
        assert len(transaction.message.instructions) == 2

    def test_fee_payer_required(self, svm_payer, svm_requirements):
        requirements = svm_requirements.model_copy(update={"extra": None})
        with pytest.raises(FeePayerRequiredError):
            create_payment_header(svm_payer, 1, requirements)

    def test_native_sol_rejected(self, svm_payer, svm_requirements):
        requirements = svm_requirements.model_copy(update={"asset": "SOL"})
        with pytest.raises(InvalidAmountError):
            create_payment_header(svm_payer, 1, requirements)

    def test_amount_beyond_u64_rejected(self, svm_payer, svm_requirements):
        requirements = svm_requirements.model_copy(update={"max_amount_required": str(2**64)})
        with pytest.raises(InvalidAmountError):
            create_payment_header(svm_payer, 1, requirements)


class TestVerify:
    def test_valid(self, svm_payer, svm_facilitator, svm_requirements):
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = verify(svm_facilitator, payment, svm_requirements)
        assert result.is_valid
        assert result.payer == svm_payer.address

    def test_network_mismatch(self, svm_payer, svm_facilitator, svm_requirements):
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        requirements = svm_requirements.model_copy(update={"network": "solana"})
        assert verify(svm_facilitator, payment, requirements).invalid_reason == "invalid_network"

    def test_garbage_transaction(self, svm_facilitator, svm_requirements):
        payment = decode_payment(
            encode_payment(
                {
                    "x402Version": 1,
                    "scheme": "exact",
                    "network": "solana-devnet",
                    "payload": {"transaction": "AQID"},
                }
            )
        )
        result = verify(svm_facilitator, payment, svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction"

    def test_fee_payer_is_not_facilitator(self, svm_payer, svm_facilitator, svm_requirements):
        """A transaction whose fee payer is another account is rejected."""
        transaction = build_transfer(svm_payer, svm_requirements, fee_payer=Keypair().pubkey())
        result = verify(svm_facilitator, payment_for(transaction), svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction_signature"

    def test_requirements_fee_payer_mismatch(self, svm_payer, svm_facilitator, svm_requirements):
        transaction = build_transfer(svm_payer, svm_requirements, fee_payer=svm_facilitator.pubkey)
        requirements = svm_requirements.model_copy(
            update={"extra": {"feePayer": str(Keypair().pubkey())}}
        )
        result = verify(svm_facilitator, payment_for(transaction), requirements)
        assert result.invalid_reason == "invalid_payload_transaction_signature"

    def test_wrong_mint(self, svm_payer, svm_facilitator, svm_requirements):
        transaction = build_transfer(
            svm_payer, svm_requirements, fee_payer=svm_facilitator.pubkey, mint=Keypair().pubkey()
        )
        result = verify(svm_facilitator, payment_for(transaction), svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction_asset_mismatch"

    def test_wrong_recipient(self, svm_payer, svm_facilitator, svm_requirements):
        transaction = build_transfer(
            svm_payer,
            svm_requirements,
            fee_payer=svm_facilitator.pubkey,
            pay_to=str(Keypair().pubkey()),
        )
        result = verify(svm_facilitator, payment_for(transaction), svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction_recipient_mismatch"

    def test_wrong_amount(self, svm_payer, svm_facilitator, svm_requirements):
        transaction = build_transfer(
            svm_payer, svm_requirements, fee_payer=svm_facilitator.pubkey, amount=999
        )
        result = verify(svm_facilitator, payment_for(transaction), svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction_amount_mismatch"

    def test_unsigned_payer(self, svm_payer, svm_facilitator, svm_requirements):
        unsigned = build_transfer(
            svm_payer, svm_requirements, fee_payer=svm_facilitator.pubkey, sign=False
        )
        result = verify(svm_facilitator, payment_for(unsigned), svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction_signature"

    def test_unexpected_program(self, svm_payer, svm_facilitator, svm_requirements):
        drain = transfer(
            TransferParams(from_pubkey=svm_payer.pubkey, to_pubkey=Keypair().pubkey(), lamports=1)
        )
        transaction = build_transfer(
            svm_payer,
            svm_requirements,
            fee_payer=svm_facilitator.pubkey,
            extra_instructions=[drain],
        )
        result = verify(svm_facilitator, payment_for(transaction), svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction"

    def test_facilitator_cannot_be_authority(self, svm_facilitator, svm_requirements):
        transaction = build_transfer(svm_facilitator, svm_requirements, fee_payer=svm_facilitator.pubkey)
        result = verify(svm_facilitator, payment_for(transaction), svm_requirements)
        assert result.invalid_reason == "invalid_payload_transaction"

    def test_insufficient_funds(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        svm_client.get_token_account_balance.return_value.value.amount = "10"
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = verify(svm_facilitator, payment, svm_requirements)
        assert result.invalid_reason == "insufficient_funds"

    def test_balance_lookup_failure_is_tolerated(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        svm_client.get_token_account_balance.side_effect = RuntimeError("account not found")
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        assert verify(svm_facilitator, payment, svm_requirements).is_valid


class TestSettle:
    def test_success(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        confirm_with(svm_client)
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = settle(svm_facilitator, payment, svm_requirements)

        assert result.success
        assert result.transaction == str(Signature.default())
        assert result.payer == svm_payer.address
        sent = svm_client.send_transaction.call_args.args[0]
        assert has_valid_signature(sent, svm_facilitator.pubkey)
        assert has_valid_signature(sent, svm_payer.pubkey)

    def test_invalid_payment_not_sent(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        requirements = svm_requirements.model_copy(update={"max_amount_required": "5"})
        result = settle(svm_facilitator, payment, requirements)

        assert result.error_reason == "invalid_payload_transaction_amount_mismatch"
        assert result.transaction == ""
        svm_client.send_transaction.assert_not_called()

    def test_confirmation_timeout(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        confirm_with(svm_client)
        svm_client.get_signature_statuses.return_value.value = [None]
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = settle(svm_facilitator, payment, svm_requirements, timeout_seconds=0)

        assert result.error_reason == "confirmation_timeout"
        assert result.transaction == ""

    def test_failed_on_chain(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        confirm_with(svm_client, err="InstructionError")
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = settle(svm_facilitator, payment, svm_requirements)

        assert result.error_reason == "transaction_failed"
        assert result.transaction == str(Signature.default())

    def test_insufficient_balance_on_send(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        svm_client.send_transaction.side_effect = RPCException("Error: insufficient funds for fee")
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        assert settle(svm_facilitator, payment, svm_requirements).error_reason == "insufficient_balance"

    def test_rejected_on_send(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        svm_client.send_transaction.side_effect = RPCException("Blockhash not found")
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = settle(svm_facilitator, payment, svm_requirements)

        assert result.error_reason == "transaction_failed"
        assert result.transaction == ""

    def test_status_lookup_rejected(self, svm_payer, svm_facilitator, svm_requirements, svm_client):
        confirm_with(svm_client)
        svm_client.get_signature_statuses.side_effect = RPCException("node is behind")
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = settle(svm_facilitator, payment, svm_requirements)

        assert result.error_reason == "transaction_failed"
        assert result.transaction == str(Signature.default())

    @pytest.mark.parametrize("error", [ConnectionError("rpc down"), RuntimeError("bug")])
    def test_unexpected_send_error(self, svm_payer, svm_facilitator, svm_requirements, svm_client, error):
        svm_client.send_transaction.side_effect = error
        payment = decode_payment(create_payment_header(svm_payer, 1, svm_requirements))
        result = settle(svm_facilitator, payment, svm_requirements)

        assert result.error_reason == "unexpected_settle_error"
        assert result.error_reason in ERROR_REASONS
