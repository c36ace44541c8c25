"""Order hashing and unique identifiers.

Orders are hashed with EIP-712 so the settlement contract can recompute the
exact same digest on-chain. The order UID packs that digest together with
the owner and expiry:

    orderDigest (32 bytes) || owner (20 bytes) || validTo (4 bytes)
"""

from datetime import datetime
from typing import Any, Dict, Mapping, Tuple, Union

from eth_abi.packed import encode_packed
from eth_account.messages import encode_typed_data
from eth_utils import keccak, to_checksum_address

from .errors import ValidationError
from .types import (
    CANCELLATION_TYPES,
    ORDER_TYPES,
    HashLike,
    NormalizedOrder,
    Order,
    OrderBalance,
    OrderKind,
    OrderUidParams,
    Timestamp,
)
from .utils import (
    UINT32_MAX,
    ZERO_ADDRESS,
    BytesLike,
    check_uint,
    to_byte_string,
    to_checksum,
    to_hex_string,
)

# The byte length of an order UID
ORDER_UID_LENGTH = 56


def timestamp(t: Timestamp) -> int:
    """Normalize a timestamp value to a Unix timestamp.

    Args:
        t: Unix timestamp in seconds, or a timezone aware datetime

    Returns:
        Number of whole seconds since the Unix epoch

    Raises:
        ValidationError: If the datetime is naive or the timestamp does not
            fit in a uint32
    """
    if isinstance(t, datetime):
        if t.tzinfo is None or t.utcoffset() is None:
            raise ValidationError(f"Invalid timestamp: naive datetime {t.isoformat()}")
        t = int(t.timestamp())
    if isinstance(t, bool) or not isinstance(t, int) or not 0 <= t <= UINT32_MAX:
        raise ValidationError(f"Invalid timestamp: {t!r}")
    return t


def hashify(h: HashLike) -> str:
    """Normalize a hash-like value to a 32-byte hash.

    Integers are encoded big-endian, byte strings are left-padded with zeros.

    Args:
        h: An integer, raw bytes or a hex string

    Returns:
        32-byte hash hex string
    """
    if isinstance(h, int) and not isinstance(h, bool):
        return "0x" + check_uint(h, 256, "hash").to_bytes(32, "big").hex()
    data = to_byte_string(h, "hash")
    if len(data) > 32:
        raise ValidationError(f"Invalid hash: {len(data)} bytes is longer than 32")
    return to_hex_string(data.rjust(32, b"\x00"))


def normalize_order(order: Union[Order, NormalizedOrder]) -> NormalizedOrder:
    """Normalize an order for hashing, signing and encoding.

    Normalizing an already normalized order returns an equal value.

    Args:
        order: The order to normalize

    Returns:
        The normalized order

    Raises:
        ValidationError: If a field is invalid, or an `Order` names the zero
            address as its receiver
    """
    if isinstance(order, NormalizedOrder):
        receiver = to_checksum(order.receiver, "receiver")
    elif order.receiver is None:
        receiver = ZERO_ADDRESS
    else:
        receiver = to_checksum(order.receiver, "receiver")
        if receiver == ZERO_ADDRESS:
            raise ValidationError("receiver cannot be address(0)")

    buy_token_balance = OrderBalance(order.buy_token_balance)
    if buy_token_balance == OrderBalance.EXTERNAL:
        buy_token_balance = OrderBalance.ERC20

    return NormalizedOrder(
        sell_token=to_checksum(order.sell_token, "sell_token"),
        buy_token=to_checksum(order.buy_token, "buy_token"),
        receiver=receiver,
        sell_amount=check_uint(order.sell_amount, 256, "sell_amount"),
        buy_amount=check_uint(order.buy_amount, 256, "buy_amount"),
        valid_to=timestamp(order.valid_to),
        app_data=hashify(order.app_data),
        fee_amount=check_uint(order.fee_amount, 256, "fee_amount"),
        kind=OrderKind(order.kind),
        partially_fillable=bool(order.partially_fillable),
        sell_token_balance=OrderBalance(order.sell_token_balance),
        buy_token_balance=buy_token_balance,
    )


def order_typed_data(order: Union[Order, NormalizedOrder]) -> Dict[str, Any]:
    """Build the EIP-712 `Order` message for an order."""
    o = normalize_order(order)
    return {
        "sellToken": o.sell_token,
        "buyToken": o.buy_token,
        "receiver": o.receiver,
        "sellAmount": o.sell_amount,
        "buyAmount": o.buy_amount,
        "validTo": o.valid_to,
        "appData": to_byte_string(o.app_data),
        "feeAmount": o.fee_amount,
        "kind": o.kind.value,
        "partiallyFillable": o.partially_fillable,
        "sellTokenBalance": o.sell_token_balance.value,
        "buyTokenBalance": o.buy_token_balance.value,
    }


def _signable(domain: Mapping[str, Any], types: Dict[str, Any], message: Dict[str, Any]):
    return encode_typed_data(domain_data=dict(domain), message_types=types, message_data=message)


def domain_separator(domain: Mapping[str, Any]) -> bytes:
    """Compute the EIP-712 domain separator hash.

    Only the fields present in the domain take part in the hash.
    """
    # The header only depends on the domain; any message of a known type will do.
    return bytes(_signable(domain, CANCELLATION_TYPES, {"orderUid": b""}).header)


def order_struct_hash(order: Union[Order, NormalizedOrder]) -> bytes:
    """Compute the EIP-712 struct hash of an order."""
    return bytes(_signable({}, ORDER_TYPES, order_typed_data(order)).body)


def order_signing_hashes(
    domain: Mapping[str, Any], order: Union[Order, NormalizedOrder]
) -> Tuple[bytes, bytes]:
    """Return the `(domainSeparator, structHash)` pair for an order."""
    message = _signable(domain, ORDER_TYPES, order_typed_data(order))
    return bytes(message.header), bytes(message.body)


def _typed_data_digest(domain_hash: bytes, struct_hash: bytes) -> str:
    return to_hex_string(keccak(b"\x19\x01" + domain_hash + struct_hash))


def hash_order(domain: Mapping[str, Any], order: Union[Order, NormalizedOrder]) -> str:
    """Compute the 32-byte EIP-712 signing digest for an order.

    Args:
        domain: The EIP-712 domain (see `signing.domain`)
        order: The order to hash

    Returns:
        bytes32 hex string digest
    """
    return _typed_data_digest(*order_signing_hashes(domain, order))


def hash_order_cancellation(domain: Mapping[str, Any], order_uid: BytesLike) -> str:
    """Compute the 32-byte EIP-712 signing digest for an order cancellation.

    Args:
        domain: The EIP-712 domain
        order_uid: The UID of the order to cancel

    Returns:
        bytes32 hex string digest
    """
    message = _signable(
        domain, CANCELLATION_TYPES, {"orderUid": to_byte_string(order_uid, "order_uid")}
    )
    return _typed_data_digest(bytes(message.header), bytes(message.body))


def pack_order_uid_params(params: OrderUidParams) -> str:
    """Pack the order UID parameters into a 56-byte order UID.

    Args:
        params: Order digest, owner and expiry

    Returns:
        Order UID hex string

    Raises:
        ValidationError: If the digest is not 32 bytes or the owner is invalid
    """
    digest = to_byte_string(params.order_digest, "order_digest")
    if len(digest) != 32:
        raise ValidationError(f"Invalid order_digest: expected 32 bytes, got {len(digest)}")

    packed = encode_packed(
        ["bytes32", "address", "uint32"],
        [digest, to_checksum(params.owner, "owner"), timestamp(params.valid_to)],
    )
    return to_hex_string(packed)


def extract_order_uid_params(order_uid: BytesLike) -> OrderUidParams:
    """Extract the order UID parameters from an order UID.

    Args:
        order_uid: 56-byte order UID

    Returns:
        The unpacked order UID parameters

    Raises:
        ValidationError: If the UID is not exactly 56 bytes long
    """
    data = to_byte_string(order_uid, "order_uid")
    if len(data) != ORDER_UID_LENGTH:
        raise ValidationError("invalid order UID length")

    return OrderUidParams(
        order_digest=to_hex_string(data[0:32]),
        owner=to_checksum_address(data[32:52]),
        valid_to=int.from_bytes(data[52:56], "big"),
    )


def compute_order_uid(
    domain: Mapping[str, Any], order: Union[Order, NormalizedOrder], owner: str
) -> str:
    """Compute the order UID for an order signed by the given owner."""
    return pack_order_uid_params(
        OrderUidParams(
            order_digest=hash_order(domain, order),
            owner=owner,
            valid_to=order.valid_to,
        )
    )
