"""Sign and Settle Example.

This example demonstrates signing an order with a local key and building
the calldata for a settlement containing that order and an AMM interaction.

Prerequisites:
1. pip install gpv2-settlement-sdk[examples]
2. Set TRADER_PRIVATE_KEY (and optionally CHAIN_ID / SETTLEMENT_ADDRESS)

Usage:
    python sign_and_settle.py
"""

import asyncio
import os
import time
from dotenv import load_dotenv

load_dotenv()

WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
UNISWAP_PAIR = "0xB4e16d0168e52d35CaCD2c6185b44281Ec28C9Dc"


async def main():
    # Import here to show what's needed
    from gpv2_sdk import (
        AccountSigner,
        Interaction,
        Order,
        OrderKind,
        SettlementEncoder,
        SigningScheme,
        compute_order_uid,
    )

    private_key = os.environ.get("TRADER_PRIVATE_KEY")
    if not private_key:
        print("Missing required environment variable: TRADER_PRIVATE_KEY")
        return

    config = {}
    if os.environ.get("CHAIN_ID"):
        config["chain_id"] = int(os.environ["CHAIN_ID"])
    if os.environ.get("SETTLEMENT_ADDRESS"):
        config["settlement_address"] = os.environ["SETTLEMENT_ADDRESS"]

    print("=" * 60)
    print("  SIGN AND SETTLE")
    print("=" * 60)

    encoder = SettlementEncoder.from_config(config)
    signer = AccountSigner.from_key(private_key)
    owner = await signer.get_address()
    print(f"\n[1] Trader: {owner}")

    order = Order(
        sell_token=WETH,
        buy_token=USDC,
        sell_amount=10**18,  # 1 WETH
        buy_amount=1_800 * 10**6,  # at least 1800 USDC
        valid_to=int(time.time()) + 1800,
        app_data=0,
        fee_amount=10**15,
        kind=OrderKind.SELL,
        partially_fillable=False,
    )
    print(f"\n[2] Order UID: {compute_order_uid(encoder.domain, order, owner)}")

    await encoder.sign_encode_trade(order, signer, SigningScheme.EIP712)
    encoder.encode_interaction(Interaction(target=UNISWAP_PAIR, call_data="0x"))
    print("\n[3] Trade and interaction encoded")

    settlement = encoder.encoded_settlement({WETH: 1_850 * 10**6, USDC: 10**18})
    print("\n[4] Settlement:")
    print(f"    Tokens: {settlement.tokens}")
    print(f"    Prices: {settlement.clearing_prices}")
    print(f"    Trades: {settlement.trades[:42]}...")
    print(f"    Calldata: {len(encoder.settlement_calldata({WETH: 1_850 * 10**6, USDC: 10**18}))} chars")


if __name__ == "__main__":
    asyncio.run(main())
