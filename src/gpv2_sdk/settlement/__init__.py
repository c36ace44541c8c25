"""Settlement Module.

This module provides the off-chain encoding for batch auction settlements.

Key components:
- Order hashing (EIP-712) and order UIDs
- Order signing (EIP-712, eth_sign, EIP-1271 and pre-signatures)
- Settlement encoding (token interning, packed trades and interactions)

Example usage:
    ```python
    from gpv2_sdk.settlement import (
        AccountSigner,
        Order,
        OrderKind,
        SettlementEncoder,
        SigningScheme,
        domain,
        SETTLEMENT_CONTRACT_MAINNET,
    )

    encoder = SettlementEncoder(domain(1, SETTLEMENT_CONTRACT_MAINNET))

    order = Order(
        sell_token="0x...",
        buy_token="0x...",
        sell_amount=1000,
        buy_amount=900,
        valid_to=1700000000,
        app_data=0,
        fee_amount=10,
        kind=OrderKind.SELL,
        partially_fillable=False,
    )

    # Sign with a local key and encode the trade
    signer = AccountSigner.from_key("0x...")
    await encoder.sign_encode_trade(order, signer, SigningScheme.EIP712)

    # Arguments for the settlement contract `settle` call
    settlement = encoder.encoded_settlement({order.sell_token: 1, order.buy_token: 1})
    ```
"""

from .types import (
    Order,
    NormalizedOrder,
    OrderKind,
    OrderBalance,
    OrderUidParams,
    SigningScheme,
    EcdsaSignature,
    Eip1271Signature,
    Eip1271SignatureData,
    PreSignSignature,
    Signature,
    Interaction,
    InteractionStage,
    Trade,
    TradeFlags,
    EncodedSettlement,
    EIP712Domain,
    ORDER_TYPE_FIELDS,
    ORDER_TYPE_HASH,
    CANCELLATION_TYPE_FIELDS,
)
from .errors import (
    SettlementError,
    ValidationError,
    UnsupportedOperationError,
    MissingDataError,
)
from .order import (
    ORDER_UID_LENGTH,
    timestamp,
    hashify,
    normalize_order,
    hash_order,
    hash_order_cancellation,
    compute_order_uid,
    pack_order_uid_params,
    extract_order_uid_params,
)
from .signing import (
    domain,
    sign_order,
    sign_order_with_key,
    eip1271_message,
    validate_signature_length,
    encode_eip1271_signature_data,
    recover_order_signer,
    verify_order_signature,
    AccountSigner,
    TypedDataSigner,
    MessageSigner,
    EIP1271_MAGICVALUE,
    PRE_SIGNED,
)
from .encoder import (
    TokenRegistry,
    SettlementEncoder,
    encode_order_flags,
    encode_signing_scheme,
    encode_trade_flags,
    decode_trade_flags,
)
from .decoder import (
    decode_trades,
    decode_order,
    decode_signature,
    decode_interactions,
    decode_order_refunds,
)
from .config import (
    SettlementConfig,
    ResolvedSettlementConfig,
    resolve_settlement_config,
)
from .utils import (
    ZERO_ADDRESS,
    BUY_ETH_ADDRESS,
    SETTLEMENT_CONTRACT_MAINNET,
)

__all__ = [
    # Types
    "Order",
    "NormalizedOrder",
    "OrderKind",
    "OrderBalance",
    "OrderUidParams",
    "SigningScheme",
    "EcdsaSignature",
    "Eip1271Signature",
    "Eip1271SignatureData",
    "PreSignSignature",
    "Signature",
    "Interaction",
    "InteractionStage",
    "Trade",
    "TradeFlags",
    "EncodedSettlement",
    "EIP712Domain",
    "ORDER_TYPE_FIELDS",
    "ORDER_TYPE_HASH",
    "CANCELLATION_TYPE_FIELDS",
    # Errors
    "SettlementError",
    "ValidationError",
    "UnsupportedOperationError",
    "MissingDataError",
    # Orders
    "ORDER_UID_LENGTH",
    "timestamp",
    "hashify",
    "normalize_order",
    "hash_order",
    "hash_order_cancellation",
    "compute_order_uid",
    "pack_order_uid_params",
    "extract_order_uid_params",
    # Signing
    "domain",
    "sign_order",
    "sign_order_with_key",
    "eip1271_message",
    "validate_signature_length",
    "encode_eip1271_signature_data",
    "recover_order_signer",
    "verify_order_signature",
    "AccountSigner",
    "TypedDataSigner",
    "MessageSigner",
    "EIP1271_MAGICVALUE",
    "PRE_SIGNED",
    # Encoding
    "TokenRegistry",
    "SettlementEncoder",
    "encode_order_flags",
    "encode_signing_scheme",
    "encode_trade_flags",
    "decode_trade_flags",
    # Decoding
    "decode_trades",
    "decode_order",
    "decode_signature",
    "decode_interactions",
    "decode_order_refunds",
    # Config
    "SettlementConfig",
    "ResolvedSettlementConfig",
    "resolve_settlement_config",
    # Utils
    "ZERO_ADDRESS",
    "BUY_ETH_ADDRESS",
    "SETTLEMENT_CONTRACT_MAINNET",
]
