"""
Token / Liquidity Resolver

Turns a freshly created contract address into a TokenCandidate and, on
demand, its LiquidityInfo. Liquidity is usually absent seconds after a
deploy, so every failure here degrades to "no liquidity".
"""
import logging
from typing import Optional, Tuple

from web3 import Web3

from config import MIN_TOKEN_DECIMALS, MAX_TOKEN_DECIMALS
from models import (
    ZERO_ADDRESS, ChainScope, CreationEvent, DeployerInfo,
    LiquidityInfo, TokenCandidate,
)

logger = logging.getLogger(__name__)

NATIVE_DECIMALS = 18


def _is_zero_address(address: Optional[str]) -> bool:
    return not address or address.lower() == ZERO_ADDRESS


class TokenResolver:
    """Chain-scoped resolver: every address it uses comes from its own scope."""

    def __init__(self, adapter, scope: ChainScope):
        self.adapter = adapter
        self.scope = scope

    async def resolve_candidate(self, address: str) -> Optional[TokenCandidate]:
        """
        Metadata for a created contract, or None when it is not a usable token
        (no symbol from either source, or decimals outside the sanity bounds).
        """
        metadata = await self.adapter.get_token_metadata(address)
        if not metadata:
            return None

        symbol = (metadata.get('symbol') or '').strip()
        if not symbol:
            return None

        decimals = metadata.get('decimals')
        try:
            decimals = int(decimals)
        except (TypeError, ValueError):
            return None
        if not MIN_TOKEN_DECIMALS <= decimals <= MAX_TOKEN_DECIMALS:
            logger.debug(f"{self.scope.prefix} {address} rejected: decimals={decimals}")
            return None

        return TokenCandidate(
            contract_address=address,
            chain=self.scope.name,
            symbol=symbol,
            name=(metadata.get('name') or symbol).strip(),
            decimals=decimals,
        )

    async def find_pair(self, token_address: str) -> Optional[Tuple[str, str]]:
        """
        Probe the chain's factories in priority order.

        Returns:
            (factory_label, pair_address) of the first non-zero pair, or None
        """
        for label, factory in self.scope.factories:
            try:
                pair = await self.adapter.get_pair(factory, token_address, self.scope.wrapped_native)
            except Exception as e:
                logger.debug(f"{self.scope.prefix} getPair failed on {label}: {e}")
                continue
            if not _is_zero_address(pair):
                return label, pair
        return None

    async def get_liquidity(self, candidate: TokenCandidate) -> LiquidityInfo:
        """Pair, native reserve, price and market cap; empty LiquidityInfo when there is no pool."""
        try:
            found = await self.find_pair(candidate.contract_address)
            if not found:
                return LiquidityInfo()
            factory_label, pair_address = found

            reserves = await self.adapter.get_pair_reserves(pair_address)
            if not reserves:
                return LiquidityInfo(pair_address=pair_address, factory=factory_label)

            if reserves['token0'].lower() == self.scope.wrapped_native.lower():
                native_raw, token_raw = reserves['reserve0'], reserves['reserve1']
            else:
                native_raw, token_raw = reserves['reserve1'], reserves['reserve0']

            native_reserve = native_raw / 10 ** NATIVE_DECIMALS
            token_reserve = token_raw / 10 ** candidate.decimals
            price = native_reserve / token_reserve if token_reserve > 0 else None

            return LiquidityInfo(
                pair_address=pair_address,
                native_reserve=native_reserve,
                price_native=price,
                market_cap_native=2 * native_reserve,
                factory=factory_label,
            )
        except Exception as e:
            logger.warning(f"{self.scope.prefix} Liquidity lookup failed for {candidate.symbol}: {e}")
            return LiquidityInfo()

    async def get_native_balance(self, address: str) -> float:
        """Native balance, 0 when it cannot be read."""
        try:
            return await self.adapter.get_native_balance(address)
        except Exception as e:
            logger.debug(f"{self.scope.prefix} Balance lookup failed for {address}: {e}")
            return 0.0

    async def resolve_deployer(self, event: CreationEvent) -> DeployerInfo:
        """Deployer and its balance; zero address / zero balance when unknown."""
        deployer = event.deployer
        if not deployer:
            try:
                deployer = await self.adapter.get_deployer(event.tx_hash)
            except Exception as e:
                logger.debug(f"{self.scope.prefix} Deployer lookup failed for {event.tx_hash}: {e}")
                deployer = None
        if not deployer:
            return DeployerInfo()

        deployer = Web3.to_checksum_address(deployer)
        return DeployerInfo(address=deployer, native_balance=await self.get_native_balance(deployer))
