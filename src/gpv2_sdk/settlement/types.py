"""Settlement Types.

Orders, signatures, interactions and encoded trade records exchanged with
the settlement contract.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import List, NamedTuple, Optional, TypedDict, Union

from eth_utils import keccak

from .errors import ValidationError
from .utils import ZERO_ADDRESS, BytesLike, to_checksum


class OrderKind(str, Enum):
    """Order kind."""

    SELL = "sell"
    """Sell amount is exact, buy amount is a limit."""

    BUY = "buy"
    """Buy amount is exact, sell amount is a limit."""


class OrderBalance(str, Enum):
    """Where a trader's token balance is taken from or paid to."""

    ERC20 = "erc20"
    """Regular ERC20 token balance."""

    EXTERNAL = "external"
    """ERC20 balance spent through Vault allowances (sell side only)."""

    INTERNAL = "internal"
    """Vault internal balance."""


class SigningScheme(IntEnum):
    """The signing scheme used to authorize an order."""

    EIP712 = 0
    """EIP-712 typed data signature."""

    ETHSIGN = 1
    """Message signed with the `eth_sign` RPC call."""

    EIP1271 = 2
    """Smart contract signature as defined in EIP-1271."""

    PRESIGN = 3
    """Order approved with an on-chain pre-signature."""


ECDSA_SCHEMES = (SigningScheme.EIP712, SigningScheme.ETHSIGN)


class InteractionStage(IntEnum):
    """The stage an interaction is executed in."""

    PRE = 0
    """Before any token is transferred (e.g. EIP-2612 `permit` calls)."""

    INTRA = 1
    """After sell amounts are transferred in and before buy amounts go out."""

    POST = 2
    """After all trading has completed."""


Timestamp = Union[int, datetime]
HashLike = Union[bytes, str, int]


def _is_zero_address(value: Union[str, bytes]) -> bool:
    try:
        return to_checksum(value, "receiver") == ZERO_ADDRESS
    except ValidationError:
        return False


class EIP712Domain(TypedDict, total=False):
    """EIP-712 domain separator."""

    name: str
    version: str
    chainId: int
    verifyingContract: str


@dataclass
class Order:
    """A trading order, as provided by the trader."""

    sell_token: str
    """Address of the token being sold."""

    buy_token: str
    """Address of the token being bought."""

    sell_amount: int
    """Exact sell amount for fill-or-kill sell orders, a limit otherwise."""

    buy_amount: int
    """Minimum buy amount for sell orders, exact for fill-or-kill buy orders."""

    valid_to: Timestamp
    """Unix timestamp (or datetime) this order is valid until."""

    app_data: HashLike
    """Application specific 32-byte hash (an int is left-padded)."""

    fee_amount: int
    """Fee paid to the protocol, in sell token."""

    kind: OrderKind
    """The order kind."""

    partially_fillable: bool
    """Whether the order may be filled partially."""

    receiver: Optional[str] = None
    """Address receiving the proceeds. Defaults to the order owner."""

    sell_token_balance: OrderBalance = OrderBalance.ERC20
    """Balance the sell amount is taken from."""

    buy_token_balance: OrderBalance = OrderBalance.ERC20
    """Balance the buy amount is paid to."""

    def __post_init__(self) -> None:
        if self.receiver is not None and _is_zero_address(self.receiver):
            raise ValidationError("receiver cannot be address(0)")


@dataclass(frozen=True)
class NormalizedOrder:
    """An order with every field in its canonical, hashable form.

    `receiver` is the zero address when the proceeds go to the owner.
    """

    sell_token: str
    buy_token: str
    receiver: str
    sell_amount: int
    buy_amount: int
    valid_to: int
    app_data: str
    fee_amount: int
    kind: OrderKind
    partially_fillable: bool
    sell_token_balance: OrderBalance
    buy_token_balance: OrderBalance


@dataclass(frozen=True)
class OrderUidParams:
    """Parameters packed into an order UID."""

    order_digest: str
    """The EIP-712 order digest (32 bytes)."""

    owner: str
    """The owner of the order."""

    valid_to: Timestamp
    """The timestamp the order is valid until."""


@dataclass(frozen=True)
class EcdsaSignature:
    """ECDSA signature (EIP-712 or eth_sign) of an order."""

    scheme: SigningScheme
    data: str
    """65 byte `r || s || v` signature hex string."""

    def __post_init__(self) -> None:
        if self.scheme not in ECDSA_SCHEMES:
            raise ValidationError(f"{self.scheme!r} is not an ECDSA scheme")


@dataclass(frozen=True)
class Eip1271SignatureData:
    """EIP-1271 signature data."""

    verifier: str
    """The contract verifying the signature (the order owner)."""

    signature: BytesLike
    """Arbitrary bytes passed to `isValidSignature`."""


@dataclass(frozen=True)
class Eip1271Signature:
    """EIP-1271 smart contract signature of an order."""

    data: Eip1271SignatureData
    scheme: SigningScheme = field(default=SigningScheme.EIP1271, init=False)


@dataclass(frozen=True)
class PreSignSignature:
    """Marker for an order approved with an on-chain pre-signature."""

    data: str
    """The address of the order owner."""

    scheme: SigningScheme = field(default=SigningScheme.PRESIGN, init=False)


Signature = Union[EcdsaSignature, Eip1271Signature, PreSignSignature]


@dataclass(frozen=True)
class TradeFlags:
    """Decoded trade flags bitfield."""

    kind: OrderKind
    partially_fillable: bool
    sell_token_balance: OrderBalance
    buy_token_balance: OrderBalance
    signing_scheme: SigningScheme


@dataclass(frozen=True)
class Trade:
    """A trade as packed into the settlement `encodedTrades` bytes."""

    sell_token_index: int
    buy_token_index: int
    receiver: str
    sell_amount: int
    buy_amount: int
    valid_to: int
    app_data: str
    fee_amount: int
    flags: int
    executed_amount: int
    signature: str
    """Scheme specific signature bytes as a hex string."""


@dataclass(frozen=True)
class Interaction:
    """An arbitrary contract call executed as part of a settlement."""

    target: str
    """Address of the contract to call."""

    call_data: BytesLike = b""
    """Call data for the contract call."""

    value: int = 0
    """Wei forwarded with the call."""


class EncodedSettlement(NamedTuple):
    """Arguments to the settlement contract `settle` function."""

    tokens: List[str]
    clearing_prices: List[int]
    trades: str
    interactions: List[str]
    order_refunds: str


# EIP-712 types for orders
ORDER_TYPE_FIELDS = [
    {"name": "sellToken", "type": "address"},
    {"name": "buyToken", "type": "address"},
    {"name": "receiver", "type": "address"},
    {"name": "sellAmount", "type": "uint256"},
    {"name": "buyAmount", "type": "uint256"},
    {"name": "validTo", "type": "uint32"},
    {"name": "appData", "type": "bytes32"},
    {"name": "feeAmount", "type": "uint256"},
    {"name": "kind", "type": "string"},
    {"name": "partiallyFillable", "type": "bool"},
    {"name": "sellTokenBalance", "type": "string"},
    {"name": "buyTokenBalance", "type": "string"},
]

CANCELLATION_TYPE_FIELDS = [
    {"name": "orderUid", "type": "bytes"},
]

ORDER_TYPES = {"Order": ORDER_TYPE_FIELDS}
CANCELLATION_TYPES = {"OrderCancellation": CANCELLATION_TYPE_FIELDS}


def _type_hash(name: str, fields: List[dict]) -> bytes:
    members = ",".join(f"{f['type']} {f['name']}" for f in fields)
    return keccak(text=f"{name}({members})")


ORDER_TYPE_HASH = _type_hash("Order", ORDER_TYPE_FIELDS)
CANCELLATION_TYPE_HASH = _type_hash("OrderCancellation", CANCELLATION_TYPE_FIELDS)
