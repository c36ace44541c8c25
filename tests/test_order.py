"""Tests for order hashing and order UIDs."""

from datetime import datetime, timezone

import pytest
from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak, to_checksum_address

from gpv2_sdk.settlement import (
    ORDER_TYPE_HASH,
    ORDER_UID_LENGTH,
    Order,
    OrderBalance,
    OrderKind,
    OrderUidParams,
    ValidationError,
    ZERO_ADDRESS,
    compute_order_uid,
    domain,
    extract_order_uid_params,
    hash_order,
    hash_order_cancellation,
    hashify,
    normalize_order,
    pack_order_uid_params,
    timestamp,
)
from gpv2_sdk.settlement.order import domain_separator, order_struct_hash, order_typed_data
from gpv2_sdk.settlement.types import CANCELLATION_TYPE_HASH, ORDER_TYPES


TEST_PRIVATE_KEY = "0x" + "ab" * 32
TEST_ADDRESS = Account.from_key(TEST_PRIVATE_KEY).address

SELL_TOKEN = to_checksum_address("0x" + "aa" * 20)
BUY_TOKEN = to_checksum_address("0x" + "bb" * 20)
TEST_DOMAIN = domain(1, "0x" + "cc" * 20)


def make_order(**overrides) -> Order:
    fields = dict(
        sell_token=SELL_TOKEN,
        buy_token=BUY_TOKEN,
        sell_amount=1000,
        buy_amount=900,
        valid_to=1700000000,
        app_data=0,
        fee_amount=10,
        kind=OrderKind.SELL,
        partially_fillable=False,
    )
    fields.update(overrides)
    return Order(**fields)


class TestNormalization:
    """Tests for order normalization."""

    def test_timestamp_from_datetime(self):
        """Test that datetimes are converted to whole Unix seconds."""
        assert timestamp(datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)) == 1700000000
        assert timestamp(1700000000) == 1700000000

    def test_timestamp_out_of_range(self):
        """Test that timestamps must fit in a uint32."""
        with pytest.raises(ValidationError):
            timestamp(2**32)
        with pytest.raises(ValidationError):
            timestamp(-1)

    def test_timestamp_rejects_naive_datetime(self):
        """Test that datetimes without a timezone are rejected."""
        with pytest.raises(ValidationError, match="naive datetime"):
            timestamp(datetime(2023, 11, 14, 22, 13, 20))

    def test_hashify(self):
        """Test hash-like values are left-padded to 32 bytes."""
        assert hashify(0) == "0x" + "00" * 32
        assert hashify(1) == "0x" + "00" * 31 + "01"
        assert hashify("0x01") == hashify(1)
        assert hashify(b"\x01") == hashify(1)
        assert hashify("0x" + "42" * 32) == "0x" + "42" * 32

    def test_hashify_too_long(self):
        """Test that values longer than 32 bytes are rejected."""
        with pytest.raises(ValidationError):
            hashify("0x" + "42" * 33)

    def test_normalize_defaults(self):
        """Test default receiver, timestamp and app data normalization."""
        order = make_order(
            sell_token=SELL_TOKEN.lower(),
            valid_to=datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc),
        )
        normalized = normalize_order(order)

        assert normalized.sell_token == SELL_TOKEN
        assert normalized.receiver == ZERO_ADDRESS
        assert normalized.valid_to == 1700000000
        assert normalized.app_data == "0x" + "00" * 32
        assert normalized.sell_token_balance == OrderBalance.ERC20
        assert normalized.buy_token_balance == OrderBalance.ERC20

    def test_normalize_is_idempotent(self):
        """Test that normalizing twice is a no-op."""
        normalized = normalize_order(make_order(app_data=42, receiver=TEST_ADDRESS))
        assert normalize_order(normalized) == normalized

    def test_external_buy_balance_folds_to_erc20(self):
        """Test that EXTERNAL buy token balances normalize to ERC20."""
        order = make_order(buy_token_balance=OrderBalance.EXTERNAL)
        assert normalize_order(order).buy_token_balance == OrderBalance.ERC20

    def test_zero_receiver_rejected(self):
        """Test that an explicit zero address receiver is rejected."""
        with pytest.raises(ValidationError, match="receiver cannot be address"):
            make_order(receiver=ZERO_ADDRESS)

    @pytest.mark.parametrize("receiver", [b"\x00" * 20, "00" * 20])
    def test_zero_receiver_spellings_rejected(self, receiver):
        """Test the zero receiver is rejected as raw bytes or unprefixed hex."""
        with pytest.raises(ValidationError, match="receiver cannot be address"):
            make_order(receiver=receiver)

    def test_zero_receiver_set_after_construction(self):
        """Test a receiver changed to the zero address fails normalization."""
        order = make_order()
        order.receiver = b"\x00" * 20

        with pytest.raises(ValidationError, match="receiver cannot be address"):
            normalize_order(order)

    def test_normalized_order_keeps_zero_receiver(self):
        """Test normalized orders use the zero receiver for the owner."""
        normalized = normalize_order(make_order())
        assert normalized.receiver == ZERO_ADDRESS
        assert normalize_order(normalized) == normalized


class TestHashing:
    """Tests for EIP-712 order hashing."""

    def test_order_type_hash(self):
        """Test the order type hash matches the settlement contract."""
        assert ORDER_TYPE_HASH.hex() == (
            "d5a25ba2e97094ad7d83dc28a6572da797d6b3e7fc6663bd93efb789fc17e489"
        )

    def test_hash_matches_eth_account(self):
        """Test the digest matches eth_account's EIP-712 encoding."""
        order = make_order(receiver=TEST_ADDRESS, app_data=7)
        message = encode_typed_data(
            domain_data=dict(TEST_DOMAIN),
            message_types=ORDER_TYPES,
            message_data=order_typed_data(order),
        )

        assert message.header == domain_separator(TEST_DOMAIN)
        assert message.body == order_struct_hash(order)
        expected = keccak(b"\x19" + message.version + message.header + message.body)
        assert hash_order(TEST_DOMAIN, order) == "0x" + expected.hex()

    def test_hash_normalized_order(self):
        """Test hashing an order and its normalized form gives the same digest."""
        order = make_order(valid_to=datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc))
        assert hash_order(TEST_DOMAIN, order) == hash_order(TEST_DOMAIN, normalize_order(order))

    def test_hash_ignores_explicit_defaults(self):
        """Test that spelling out default values does not change the digest."""
        implicit = make_order()
        explicit = make_order(
            sell_token_balance=OrderBalance.ERC20,
            buy_token_balance=OrderBalance.EXTERNAL,
            app_data="0x",
        )
        assert hash_order(TEST_DOMAIN, implicit) == hash_order(TEST_DOMAIN, explicit)

    def test_hash_changes_with_fields(self):
        """Test that changing order fields changes the digest."""
        base = hash_order(TEST_DOMAIN, make_order())
        assert hash_order(TEST_DOMAIN, make_order(sell_amount=1001)) != base
        assert hash_order(TEST_DOMAIN, make_order(kind=OrderKind.BUY)) != base
        assert hash_order(TEST_DOMAIN, make_order(receiver=TEST_ADDRESS)) != base
        assert (
            hash_order(TEST_DOMAIN, make_order(sell_token_balance=OrderBalance.INTERNAL))
            != base
        )

    def test_hash_depends_on_domain(self):
        """Test that the same order hashes differently on another chain."""
        order = make_order()
        other_domain = domain(100, "0x" + "cc" * 20)
        assert hash_order(TEST_DOMAIN, order) != hash_order(other_domain, order)

    def test_hash_order_cancellation(self):
        """Test cancellation digests are deterministic and bound to the UID."""
        uid_1 = "0x" + "11" * 56
        uid_2 = "0x" + "22" * 56

        assert hash_order_cancellation(TEST_DOMAIN, uid_1) == hash_order_cancellation(
            TEST_DOMAIN, uid_1
        )
        assert hash_order_cancellation(TEST_DOMAIN, uid_1) != hash_order_cancellation(
            TEST_DOMAIN, uid_2
        )

    def test_hash_order_cancellation_layout(self):
        """Test the cancellation digest hashes the UID under the cancellation type."""
        uid = bytes.fromhex("11" * 56)
        struct_hash = keccak(encode(["bytes32", "bytes32"], [CANCELLATION_TYPE_HASH, keccak(uid)]))
        expected = keccak(b"\x19\x01" + domain_separator(TEST_DOMAIN) + struct_hash)

        assert hash_order_cancellation(TEST_DOMAIN, uid) == "0x" + expected.hex()


class TestOrderUid:
    """Tests for order UID packing."""

    def test_pack_order_uid_params(self):
        """Test the packed layout of an order UID."""
        uid = pack_order_uid_params(
            OrderUidParams(
                order_digest="0x" + "42" * 32,
                owner="0x" + "01" * 20,
                valid_to=0xFFFFFFFF,
            )
        )
        assert uid == "0x" + "42" * 32 + "01" * 20 + "ff" * 4

    def test_round_trip(self):
        """Test that extracting a packed UID returns the packed parameters."""
        params = OrderUidParams(
            order_digest="0x" + "42" * 32,
            owner=TEST_ADDRESS,
            valid_to=1700000000,
        )
        assert extract_order_uid_params(pack_order_uid_params(params)) == params

    def test_extract_checksums_owner(self):
        """Test that the extracted owner is checksummed."""
        uid = "0x" + "00" * 32 + TEST_ADDRESS[2:].lower() + "00" * 4
        assert extract_order_uid_params(uid).owner == TEST_ADDRESS

    @pytest.mark.parametrize("length", [0, 55, 57])
    def test_extract_invalid_length(self, length):
        """Test that UIDs that are not 56 bytes are rejected."""
        with pytest.raises(ValidationError, match="invalid order UID length"):
            extract_order_uid_params("0x" + "11" * length)

    def test_compute_order_uid(self):
        """Test that the computed UID embeds digest, owner and expiry."""
        order = make_order()
        uid = compute_order_uid(TEST_DOMAIN, order, TEST_ADDRESS)

        assert len(bytes.fromhex(uid[2:])) == ORDER_UID_LENGTH
        params = extract_order_uid_params(uid)
        assert params.order_digest == hash_order(TEST_DOMAIN, order)
        assert params.owner == TEST_ADDRESS
        assert params.valid_to == 1700000000
