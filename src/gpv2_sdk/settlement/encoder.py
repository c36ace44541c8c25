"""Settlement Encoding.

Builds the calldata for a settlement contract `settle` call:

    settle(
        address[] tokens,
        uint256[] clearingPrices,
        bytes encodedTrades,
        bytes[3] encodedInteractions,
        bytes encodedOrderRefunds,
    )

Each trade is packed as a fixed width record followed by its signature:

    uint8   sellTokenIndex
    uint8   buyTokenIndex
    address receiver
    uint256 sellAmount
    uint256 buyAmount
    uint32  validTo
    bytes32 appData
    uint256 feeAmount
    uint8   flags
    uint256 executedAmount
    bytes   signature (65 bytes ECDSA, 20 bytes pre-sign owner,
                       verifier || uint32 length || data for EIP-1271)

Interactions are packed as `address target || uint256 value || uint32
length || callData`, and order refunds as raw 56-byte order UIDs.
"""

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_utils import keccak

from .config import SettlementConfig, resolve_settlement_config
from .errors import MissingDataError, ValidationError
from .order import ORDER_UID_LENGTH, normalize_order
from .signing import OrderSigner, encode_signature_data, sign_order
from .types import (
    EncodedSettlement,
    Interaction,
    InteractionStage,
    NormalizedOrder,
    Order,
    OrderBalance,
    OrderKind,
    Signature,
    SigningScheme,
    Trade,
    TradeFlags,
)
from .utils import BytesLike, check_uint, to_byte_string, to_checksum, to_hex_string

logger = logging.getLogger(__name__)

# Token indices are encoded as uint8
MAX_TOKENS = 256

TRADE_HEADER_TYPES = [
    "uint8",
    "uint8",
    "address",
    "uint256",
    "uint256",
    "uint32",
    "bytes32",
    "uint256",
    "uint8",
    "uint256",
]

# Byte length of the fixed width part of a packed trade
TRADE_HEADER_LENGTH = 1 + 1 + 20 + 32 + 32 + 4 + 32 + 32 + 1 + 32

SETTLE_SIGNATURE = "settle(address[],uint256[],bytes,bytes[3],bytes)"
SETTLE_SELECTOR = keccak(text=SETTLE_SIGNATURE)[:4]

# Flag bit offsets
KIND_OFFSET = 0
PARTIALLY_FILLABLE_OFFSET = 1
SELL_TOKEN_BALANCE_OFFSET = 2
BUY_TOKEN_BALANCE_OFFSET = 4
SIGNING_SCHEME_OFFSET = 5

_KIND_FLAGS = {OrderKind.SELL: 0b0, OrderKind.BUY: 0b1}
_SELL_TOKEN_BALANCE_FLAGS = {
    OrderBalance.ERC20: 0b00,
    OrderBalance.EXTERNAL: 0b10,
    OrderBalance.INTERNAL: 0b11,
}
_BUY_TOKEN_BALANCE_FLAGS = {OrderBalance.ERC20: 0b0, OrderBalance.INTERNAL: 0b1}


def encode_order_flags(order: Union[Order, NormalizedOrder]) -> int:
    """Encode the order flags (kind, partial fill, balances) as a bitfield."""
    o = normalize_order(order)
    return (
        _KIND_FLAGS[o.kind] << KIND_OFFSET
        | int(o.partially_fillable) << PARTIALLY_FILLABLE_OFFSET
        | _SELL_TOKEN_BALANCE_FLAGS[o.sell_token_balance] << SELL_TOKEN_BALANCE_OFFSET
        | _BUY_TOKEN_BALANCE_FLAGS[o.buy_token_balance] << BUY_TOKEN_BALANCE_OFFSET
    )


def encode_signing_scheme(scheme: SigningScheme) -> int:
    """Encode the signing scheme as a bitfield."""
    return SigningScheme(scheme).value << SIGNING_SCHEME_OFFSET


def encode_trade_flags(order: Union[Order, NormalizedOrder], scheme: SigningScheme) -> int:
    """Encode the full trade flags bitfield."""
    return encode_order_flags(order) | encode_signing_scheme(scheme)


def decode_trade_flags(flags: int) -> TradeFlags:
    """Decode a trade flags bitfield.

    Raises:
        ValidationError: If unused high bits are set
    """
    if not 0 <= flags < 1 << 7:
        raise ValidationError(f"invalid trade flags: {flags:#x}")

    sell_bits = (flags >> SELL_TOKEN_BALANCE_OFFSET) & 0b11
    # 0b01 is read as ERC20 by the settlement contract
    sell_token_balance = {
        0b00: OrderBalance.ERC20,
        0b01: OrderBalance.ERC20,
        0b10: OrderBalance.EXTERNAL,
        0b11: OrderBalance.INTERNAL,
    }[sell_bits]

    return TradeFlags(
        kind=OrderKind.BUY if flags >> KIND_OFFSET & 1 else OrderKind.SELL,
        partially_fillable=bool(flags >> PARTIALLY_FILLABLE_OFFSET & 1),
        sell_token_balance=sell_token_balance,
        buy_token_balance=(
            OrderBalance.INTERNAL if flags >> BUY_TOKEN_BALANCE_OFFSET & 1 else OrderBalance.ERC20
        ),
        signing_scheme=SigningScheme(flags >> SIGNING_SCHEME_OFFSET & 0b11),
    )


def encode_interaction(interaction: Interaction) -> bytes:
    """Pack an interaction as `target || value || uint32 length || callData`."""
    call_data = to_byte_string(interaction.call_data, "call_data")
    return encode_packed(
        ["address", "uint256", "uint32"],
        [
            to_checksum(interaction.target, "target"),
            check_uint(interaction.value, 256, "value"),
            len(call_data),
        ],
    ) + call_data


class TokenRegistry:
    """Insertion ordered set of token addresses.

    Addresses are checksummed before lookup so that differently cased
    spellings of the same address share one index. Indices never change once
    assigned.
    """

    def __init__(self) -> None:
        self._tokens: List[str] = []
        self._indices: Dict[str, int] = {}

    def index(self, token: str) -> int:
        """Return the index of a token, adding it if it was not seen before.

        Raises:
            ValidationError: If the address is invalid or the registry is full
        """
        address = to_checksum(token, "token")
        index = self._indices.get(address)
        if index is None:
            if len(self._tokens) >= MAX_TOKENS:
                raise ValidationError(f"too many tokens: at most {MAX_TOKENS} per settlement")
            index = len(self._tokens)
            self._tokens.append(address)
            self._indices[address] = index
            logger.debug("Registered token %s at index %d", address, index)
        return index

    def index_all(self, *tokens: str) -> List[int]:
        """Return the indices of several tokens, adding all of them or none.

        Raises:
            ValidationError: If an address is invalid or the new tokens do
                not fit in the registry
        """
        addresses = [to_checksum(token, "token") for token in tokens]
        new = {address for address in addresses if address not in self._indices}
        if len(self._tokens) + len(new) > MAX_TOKENS:
            raise ValidationError(f"too many tokens: at most {MAX_TOKENS} per settlement")
        return [self.index(address) for address in addresses]

    @property
    def tokens(self) -> List[str]:
        return list(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._tokens))

    def __contains__(self, token: Any) -> bool:
        try:
            return to_checksum(token, "token") in self._indices
        except ValidationError:
            return False


class SettlementEncoder:
    """Builder for the calldata of a single settlement.

    Keeps track of the tokens referenced by encoded trades so that trades can
    refer to tokens (and their clearing prices) by index.

    An encoder must only be written to by one task at a time; the encoded
    settlement can be read any number of times.

    Example:
        ```python
        encoder = SettlementEncoder(domain(1, SETTLEMENT_CONTRACT_MAINNET))
        await encoder.sign_encode_trade(order, signer, SigningScheme.EIP712)
        encoder.encode_interaction(Interaction(target=pool, call_data=swap))
        settlement = encoder.encoded_settlement({sell_token: 1, buy_token: 1})
        ```
    """

    def __init__(self, domain: Mapping[str, Any]):
        """Initialize the encoder.

        Args:
            domain: EIP-712 domain used for signing orders
        """
        self.domain = dict(domain)
        self._registry = TokenRegistry()
        self._trades: List[Trade] = []
        self._encoded_trades = bytearray()
        self._interactions: Dict[InteractionStage, bytearray] = {
            stage: bytearray() for stage in InteractionStage
        }
        self._order_refunds = bytearray()

    @classmethod
    def from_config(cls, config: Optional[SettlementConfig] = None) -> "SettlementEncoder":
        """Create an encoder for the configured settlement contract."""
        return cls(resolve_settlement_config(config).domain())

    @property
    def tokens(self) -> List[str]:
        """Token addresses referenced by the encoded trades, in index order."""
        return self._registry.tokens

    @property
    def trades(self) -> List[Trade]:
        """The encoded trades."""
        return list(self._trades)

    @property
    def encoded_trades(self) -> str:
        return to_hex_string(self._encoded_trades)

    @property
    def encoded_interactions(self) -> List[str]:
        """Packed interactions for the PRE, INTRA and POST stages."""
        return [to_hex_string(self._interactions[stage]) for stage in InteractionStage]

    @property
    def encoded_order_refunds(self) -> str:
        return to_hex_string(self._order_refunds)

    def clearing_prices(self, prices: Mapping[str, int]) -> List[int]:
        """Project a token to price map onto the settlement tokens.

        Args:
            prices: Clearing price per token address; extra entries are ignored

        Returns:
            Clearing prices in token index order

        Raises:
            MissingDataError: If a settlement token has no price
            ValidationError: If two spellings of one token have different prices
        """
        normalized: Dict[str, int] = {}
        for token, price in prices.items():
            address = to_checksum(token, "token")
            if address in normalized and normalized[address] != price:
                raise ValidationError(f"conflicting prices for token {address}")
            normalized[address] = price
        result = []
        for token in self._registry:
            price = normalized.get(token)
            if price is None:
                raise MissingDataError(f"missing price for token {token}")
            result.append(check_uint(price, 256, f"price for token {token}"))
        return result

    def encode_trade(
        self,
        order: Union[Order, NormalizedOrder],
        signature: Signature,
        executed_amount: Optional[int] = None,
    ) -> None:
        """Encode a trade for a signed order and append it to the settlement.

        Tokens the encoder has not seen yet are added to the token list.

        Args:
            order: The order being traded
            signature: The order signature
            executed_amount: Amount executed for partially fillable orders
                (sell amount for sell orders, buy amount for buy orders);
                ignored for fill-or-kill orders

        Raises:
            ValidationError: If the trade cannot be encoded
        """
        if order.partially_fillable and executed_amount is None:
            raise ValidationError("missing executed amount for partially fillable trade")

        o = normalize_order(order)
        signature_data = encode_signature_data(signature)
        flags = encode_trade_flags(o, signature.scheme)
        executed = check_uint(executed_amount or 0, 256, "executed_amount")
        sell_token_index, buy_token_index = self._registry.index_all(o.sell_token, o.buy_token)

        trade = Trade(
            sell_token_index=sell_token_index,
            buy_token_index=buy_token_index,
            receiver=o.receiver,
            sell_amount=o.sell_amount,
            buy_amount=o.buy_amount,
            valid_to=o.valid_to,
            app_data=o.app_data,
            fee_amount=o.fee_amount,
            flags=flags,
            executed_amount=executed,
            signature=to_hex_string(signature_data),
        )
        self._encoded_trades += pack_trade(trade)
        self._trades.append(trade)
        logger.debug(
            "Encoded trade %d (%s -> %s, flags=%#04x)",
            len(self._trades) - 1,
            o.sell_token,
            o.buy_token,
            flags,
        )

    async def sign_encode_trade(
        self,
        order: Union[Order, NormalizedOrder],
        signer: OrderSigner,
        scheme: SigningScheme,
        executed_amount: Optional[int] = None,
    ) -> None:
        """Sign an order and encode a trade for it.

        The encoder is left untouched if signing fails or is cancelled.
        """
        signature = await sign_order(self.domain, order, signer, scheme)
        self.encode_trade(order, signature, executed_amount)

    def encode_interaction(
        self,
        interaction: Interaction,
        stage: InteractionStage = InteractionStage.INTRA,
    ) -> None:
        """Append an interaction to the given stage.

        Args:
            interaction: The interaction to encode
            stage: The stage the interaction is executed in (default: INTRA)
        """
        stage = InteractionStage(stage)
        self._interactions[stage] += encode_interaction(interaction)
        logger.debug("Encoded %s interaction with %s", stage.name, interaction.target)

    def encode_order_refunds(self, *order_uids: BytesLike) -> None:
        """Append order UIDs whose storage is freed for a gas refund.

        Raises:
            ValidationError: If any UID is not exactly 56 bytes
        """
        uids = [to_byte_string(uid, "order_uid") for uid in order_uids]
        if not all(len(uid) == ORDER_UID_LENGTH for uid in uids):
            raise ValidationError("one or more invalid order UIDs")

        for uid in uids:
            self._order_refunds += uid
        logger.debug("Encoded %d order refunds", len(uids))

    def encoded_settlement(self, prices: Mapping[str, int]) -> EncodedSettlement:
        """Return the arguments for the settlement contract `settle` call.

        Raises:
            MissingDataError: If a settlement token has no clearing price
        """
        return EncodedSettlement(
            tokens=self.tokens,
            clearing_prices=self.clearing_prices(prices),
            trades=self.encoded_trades,
            interactions=self.encoded_interactions,
            order_refunds=self.encoded_order_refunds,
        )

    def settlement_calldata(self, prices: Mapping[str, int]) -> str:
        """ABI encode a complete `settle` call (selector included)."""
        settlement = self.encoded_settlement(prices)
        arguments = encode(
            ["address[]", "uint256[]", "bytes", "bytes[3]", "bytes"],
            [
                settlement.tokens,
                settlement.clearing_prices,
                to_byte_string(settlement.trades),
                [to_byte_string(stage) for stage in settlement.interactions],
                to_byte_string(settlement.order_refunds),
            ],
        )
        return to_hex_string(SETTLE_SELECTOR + arguments)


def pack_trade(trade: Trade) -> bytes:
    """Pack a trade record into its settlement byte representation."""
    return encode_packed(
        TRADE_HEADER_TYPES,
        [
            trade.sell_token_index,
            trade.buy_token_index,
            trade.receiver,
            trade.sell_amount,
            trade.buy_amount,
            trade.valid_to,
            to_byte_string(trade.app_data),
            trade.fee_amount,
            trade.flags,
            trade.executed_amount,
        ],
    ) + to_byte_string(trade.signature)
