"""Settlement configuration.

Configuration is given as a `SettlementConfig` dictionary of optional keys
and resolved once into a `ResolvedSettlementConfig` with every default
applied.
"""

from dataclasses import dataclass
from typing import Optional, TypedDict

from .signing import domain
from .types import EIP712Domain
from .utils import DEFAULT_CHAIN_ID, SETTLEMENT_CONTRACT_MAINNET, check_uint, to_checksum


class SettlementConfig(TypedDict, total=False):
    """Settlement configuration."""

    chain_id: int
    """Chain ID. Default: 1 (Ethereum mainnet)"""

    settlement_address: str
    """Settlement contract address. Default: mainnet settlement contract"""


@dataclass(frozen=True)
class ResolvedSettlementConfig:
    """Resolved settlement configuration with all defaults applied."""

    chain_id: int
    settlement_address: str

    def domain(self) -> EIP712Domain:
        """EIP-712 domain of the configured settlement contract."""
        return domain(self.chain_id, self.settlement_address)


def resolve_settlement_config(
    config: Optional[SettlementConfig] = None,
) -> ResolvedSettlementConfig:
    """Apply defaults to a settlement configuration.

    Raises:
        ValidationError: If the chain ID or settlement address is invalid
    """
    config = config or {}
    return ResolvedSettlementConfig(
        chain_id=check_uint(config.get("chain_id", DEFAULT_CHAIN_ID), 256, "chain_id"),
        settlement_address=to_checksum(
            config.get("settlement_address", SETTLEMENT_CONTRACT_MAINNET),
            "settlement_address",
        ),
    )
