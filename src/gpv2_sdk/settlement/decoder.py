"""Settlement Decoding.

Reads packed settlement bytes back into trade records, orders, signatures
and interactions, for inspecting settlements and debugging solvers.
"""

from typing import List, Sequence, Tuple

from eth_utils import to_checksum_address

from .encoder import TRADE_HEADER_LENGTH, decode_trade_flags
from .errors import ValidationError
from .order import ORDER_UID_LENGTH
from .signing import ECDSA_SIGNATURE_LENGTH
from .types import (
    EcdsaSignature,
    Eip1271Signature,
    Eip1271SignatureData,
    Interaction,
    NormalizedOrder,
    PreSignSignature,
    Signature,
    SigningScheme,
    Trade,
)
from .utils import BytesLike, to_byte_string, to_hex_string


class _Reader:
    """Cursor over packed bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def read(self, length: int, what: str) -> bytes:
        end = self.offset + length
        if end > len(self.data):
            raise ValidationError(f"truncated {what} at byte {self.offset}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def uint(self, size: int, what: str) -> int:
        return int.from_bytes(self.read(size, what), "big")

    def address(self, what: str) -> str:
        return to_checksum_address(self.read(20, what))


def _read_signature(reader: _Reader, scheme: SigningScheme) -> bytes:
    if scheme in (SigningScheme.EIP712, SigningScheme.ETHSIGN):
        return reader.read(ECDSA_SIGNATURE_LENGTH, "ECDSA signature")
    if scheme == SigningScheme.PRESIGN:
        return reader.read(20, "pre-signature owner")
    header = reader.read(24, "EIP-1271 signature")
    length = int.from_bytes(header[20:], "big")
    return header + reader.read(length, "EIP-1271 signature")


def decode_trades(encoded_trades: BytesLike) -> List[Trade]:
    """Decode packed trades.

    Raises:
        ValidationError: If the bytes are truncated or contain invalid flags
    """
    reader = _Reader(to_byte_string(encoded_trades, "encoded_trades"))
    trades = []
    while not reader.at_end():
        if len(reader.data) - reader.offset < TRADE_HEADER_LENGTH:
            raise ValidationError(f"truncated trade at byte {reader.offset}")
        sell_token_index = reader.uint(1, "sell token index")
        buy_token_index = reader.uint(1, "buy token index")
        receiver = reader.address("receiver")
        sell_amount = reader.uint(32, "sell amount")
        buy_amount = reader.uint(32, "buy amount")
        valid_to = reader.uint(4, "valid to")
        app_data = to_hex_string(reader.read(32, "app data"))
        fee_amount = reader.uint(32, "fee amount")
        flags = reader.uint(1, "flags")
        executed_amount = reader.uint(32, "executed amount")
        scheme = decode_trade_flags(flags).signing_scheme

        trades.append(
            Trade(
                sell_token_index=sell_token_index,
                buy_token_index=buy_token_index,
                receiver=receiver,
                sell_amount=sell_amount,
                buy_amount=buy_amount,
                valid_to=valid_to,
                app_data=app_data,
                fee_amount=fee_amount,
                flags=flags,
                executed_amount=executed_amount,
                signature=to_hex_string(_read_signature(reader, scheme)),
            )
        )
    return trades


def decode_order(trade: Trade, tokens: Sequence[str]) -> NormalizedOrder:
    """Rebuild the order of a decoded trade.

    Args:
        trade: A decoded trade
        tokens: The settlement token list the trade indices refer to

    Raises:
        ValidationError: If a token index is out of range
    """
    if max(trade.sell_token_index, trade.buy_token_index) >= len(tokens):
        raise ValidationError("token index out of range")

    flags = decode_trade_flags(trade.flags)
    return NormalizedOrder(
        sell_token=to_checksum_address(tokens[trade.sell_token_index]),
        buy_token=to_checksum_address(tokens[trade.buy_token_index]),
        receiver=trade.receiver,
        sell_amount=trade.sell_amount,
        buy_amount=trade.buy_amount,
        valid_to=trade.valid_to,
        app_data=trade.app_data,
        fee_amount=trade.fee_amount,
        kind=flags.kind,
        partially_fillable=flags.partially_fillable,
        sell_token_balance=flags.sell_token_balance,
        buy_token_balance=flags.buy_token_balance,
    )


def decode_signature(trade: Trade) -> Signature:
    """Rebuild the signature of a decoded trade."""
    scheme = decode_trade_flags(trade.flags).signing_scheme
    data = to_byte_string(trade.signature)
    if scheme in (SigningScheme.EIP712, SigningScheme.ETHSIGN):
        return EcdsaSignature(scheme=scheme, data=trade.signature)
    if scheme == SigningScheme.PRESIGN:
        return PreSignSignature(data=to_checksum_address(data))
    return Eip1271Signature(
        data=Eip1271SignatureData(
            verifier=to_checksum_address(data[:20]),
            signature=data[24:],
        )
    )


def decode_interactions(encoded_interactions: BytesLike) -> List[Interaction]:
    """Decode the packed interactions of a single stage.

    Raises:
        ValidationError: If the bytes are truncated
    """
    reader = _Reader(to_byte_string(encoded_interactions, "encoded_interactions"))
    interactions = []
    while not reader.at_end():
        target = reader.address("interaction target")
        value = reader.uint(32, "interaction value")
        length = reader.uint(4, "interaction call data length")
        call_data = reader.read(length, "interaction call data")
        interactions.append(Interaction(target=target, call_data=call_data, value=value))
    return interactions


def decode_order_refunds(encoded_order_refunds: BytesLike) -> List[str]:
    """Split packed order refunds into order UIDs.

    Raises:
        ValidationError: If the length is not a multiple of the UID length
    """
    data = to_byte_string(encoded_order_refunds, "encoded_order_refunds")
    if len(data) % ORDER_UID_LENGTH:
        raise ValidationError("invalid order refunds length")
    return [
        to_hex_string(data[i:i + ORDER_UID_LENGTH])
        for i in range(0, len(data), ORDER_UID_LENGTH)
    ]


def decode_settlement(
    tokens: Sequence[str], encoded_trades: BytesLike
) -> List[Tuple[NormalizedOrder, Signature, int]]:
    """Decode trades into `(order, signature, executed_amount)` tuples."""
    return [
        (decode_order(trade, tokens), decode_signature(trade), trade.executed_amount)
        for trade in decode_trades(encoded_trades)
    ]
