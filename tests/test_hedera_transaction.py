import httpx
import pytest
from hiero_sdk_python import (
    AccountId,
    Hbar,
    NftId,
    PrivateKey,
    TokenId,
    TransactionId,
    TransferTransaction,
)

from x402_exact.errors import InvalidAmountError, UnsupportedNetworkError
from x402_exact.hedera.rpc import fetch_account_balance, get_mirror_node_url
from x402_exact.hedera.transaction import (
    MAX_TRANSFER_AMOUNT,
    check_transfer_amount,
    create_transfer_transaction,
    deserialize_transaction,
    is_native_asset,
    read_transfer_legs,
    serialize_transaction,
)
from x402_exact.hedera.wallet import create_hedera_signer


class TestNativeAssetPredicate:
    @pytest.mark.parametrize("asset", ["0.0.0", "hbar", "HBAR", "Hbar", " hbar "])
    def test_native(self, asset):
        assert is_native_asset(asset)

    @pytest.mark.parametrize("asset", ["0.0.429274", "0.0.1", "usdc", "hbars"])
    def test_token(self, asset):
        assert not is_native_asset(asset)


class TestCheckTransferAmount:
    def test_accepts_int64_range(self):
        assert check_transfer_amount(1) == 1
        assert check_transfer_amount(MAX_TRANSFER_AMOUNT) == MAX_TRANSFER_AMOUNT

    @pytest.mark.parametrize("amount", [0, -1, MAX_TRANSFER_AMOUNT + 1])
    def test_rejects(self, amount):
        with pytest.raises(InvalidAmountError):
            check_transfer_amount(amount)


class TestCreateTransferTransaction:
    def test_hbar_transfer_legs(self):
        transaction = create_transfer_transaction(
            payer="0.0.123456",
            pay_to="0.0.789012",
            asset="HBAR",
            amount=50_000_000,
            fee_payer="0.0.999999",
        )
        assert isinstance(transaction, TransferTransaction)
        legs = read_transfer_legs(transaction)
        assert legs.hbar == {"0.0.123456": -50_000_000, "0.0.789012": 50_000_000}
        assert legs.tokens == {}

    def test_token_transfer_legs(self):
        transaction = create_transfer_transaction(
            payer="0.0.123456",
            pay_to="0.0.789012",
            asset="0.0.429274",
            amount=1_000,
            fee_payer="0.0.999999",
        )
        legs = read_transfer_legs(transaction)
        assert legs.hbar == {}
        assert legs.tokens == {"0.0.429274": {"0.0.123456": -1_000, "0.0.789012": 1_000}}

    def test_transaction_id_uses_fee_payer(self):
        transaction = create_transfer_transaction(
            payer="0.0.123456",
            pay_to="0.0.789012",
            asset="0.0.0",
            amount=1,
            fee_payer="0.0.999999",
        )
        assert str(transaction.transaction_id.account_id) == "0.0.999999"

    def test_rejects_out_of_range_amount(self):
        with pytest.raises(InvalidAmountError):
            create_transfer_transaction(
                payer="0.0.123456",
                pay_to="0.0.789012",
                asset="hbar",
                amount=MAX_TRANSFER_AMOUNT + 1,
                fee_payer="0.0.999999",
            )


class TestReadTransferLegs:
    def _transfer(self):
        transaction = TransferTransaction()
        transaction.transaction_id = TransactionId.generate(AccountId.from_string("0.0.999999"))
        return transaction

    def test_merges_repeated_accounts_and_drops_zero_sums(self):
        transaction = self._transfer()
        transaction.add_hbar_transfer(AccountId.from_string("0.0.1"), -5)
        transaction.add_hbar_transfer(AccountId.from_string("0.0.1"), 5)
        transaction.add_hbar_transfer(AccountId.from_string("0.0.3"), 4)
        transaction.add_token_transfer(TokenId.from_string("0.0.7"), AccountId.from_string("0.0.1"), 2)
        transaction.add_token_transfer(TokenId.from_string("0.0.8"), AccountId.from_string("0.0.2"), 0)

        legs = read_transfer_legs(transaction)
        assert legs.hbar == {"0.0.3": 4}
        assert legs.tokens == {"0.0.7": {"0.0.1": 2}}
        assert legs.approved == set()
        assert legs.nfts == 0

    def test_hbar_objects_are_converted_to_tinybars(self):
        transaction = self._transfer()
        transaction.add_hbar_transfer(AccountId.from_string("0.0.1"), Hbar(1))
        assert read_transfer_legs(transaction).hbar == {"0.0.1": 100_000_000}

    def test_approved_legs(self):
        transaction = self._transfer()
        transaction.add_approved_hbar_transfer(AccountId.from_string("0.0.1"), -5)
        transaction.add_hbar_transfer(AccountId.from_string("0.0.2"), 5)
        transaction.add_approved_token_transfer(
            TokenId.from_string("0.0.7"), AccountId.from_string("0.0.4"), -3
        )
        transaction.add_token_transfer(TokenId.from_string("0.0.7"), AccountId.from_string("0.0.2"), 3)

        assert read_transfer_legs(transaction).approved == {"0.0.1", "0.0.4"}

    def test_nft_legs(self):
        transaction = self._transfer()
        token_id = TokenId.from_string("0.0.9")
        transaction.add_nft_transfer(
            NftId(token_id, 1), AccountId.from_string("0.0.1"), AccountId.from_string("0.0.2")
        )
        transaction.add_approved_nft_transfer(
            NftId(token_id, 2), AccountId.from_string("0.0.5"), AccountId.from_string("0.0.2")
        )

        legs = read_transfer_legs(transaction)
        assert legs.nfts == 2
        assert legs.approved == {"0.0.5"}
        assert legs.hbar == {}
        assert legs.tokens == {}

    def test_legs_survive_serialization(self):
        transaction = create_transfer_transaction(
            payer="0.0.123456",
            pay_to="0.0.789012",
            asset="0.0.429274",
            amount=1_000,
            fee_payer="0.0.999999",
        )
        transaction.set_node_account_ids([AccountId.from_string("0.0.3")])
        transaction.freeze()
        transaction.sign(PrivateKey.generate_ecdsa())

        restored = deserialize_transaction(serialize_transaction(transaction))
        legs = read_transfer_legs(restored)
        assert legs.tokens == {"0.0.429274": {"0.0.123456": -1_000, "0.0.789012": 1_000}}
        assert str(restored.transaction_id) == str(transaction.transaction_id)

    def test_rejects_malformed_base64(self):
        with pytest.raises(ValueError):
            deserialize_transaction("not base64!")


class TestMirrorNode:
    def test_default_urls(self):
        assert get_mirror_node_url("hedera-testnet") == "https://testnet.mirrornode.hedera.com"
        assert get_mirror_node_url("hedera-mainnet") == "https://mainnet-public.mirrornode.hedera.com"
        assert get_mirror_node_url("hedera-testnet", "http://localhost:5551/") == "http://localhost:5551"

    def test_unknown_network(self):
        with pytest.raises(UnsupportedNetworkError):
            get_mirror_node_url("base")

    def _client(self, handler):
        return httpx.Client(transport=httpx.MockTransport(handler))

    def test_hbar_and_token_balances(self):
        def handler(request):
            assert request.url.path == "/api/v1/accounts/0.0.123456"
            return httpx.Response(
                200,
                json={
                    "balance": {
                        "balance": 75_000_000,
                        "tokens": [{"token_id": "0.0.429274", "balance": 1_000}],
                    }
                },
            )

        client = self._client(handler)
        assert fetch_account_balance("hedera-testnet", "0.0.123456", "hbar", client) == 75_000_000
        assert fetch_account_balance("hedera-testnet", "0.0.123456", "0.0.429274", client) == 1_000
        assert fetch_account_balance("hedera-testnet", "0.0.123456", "0.0.5", client) is None

    def test_http_failure_returns_none(self):
        client = self._client(lambda request: httpx.Response(503))
        assert fetch_account_balance("hedera-testnet", "0.0.123456", "hbar", client) is None


class TestCreateHederaSigner:
    def test_requires_account_id(self):
        with pytest.raises(ValueError):
            create_hedera_signer("hedera-testnet", "ab" * 32, "")

    def test_rejects_bad_account_id(self):
        with pytest.raises(ValueError):
            create_hedera_signer("hedera-testnet", "ab" * 32, "not-an-account")
