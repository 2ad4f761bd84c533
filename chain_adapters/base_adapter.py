"""
Chain adapter base interface for multi-chain support
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Optional

from models import ChainScope, CreationEvent


class ChainDataError(Exception):
    """Recoverable provider failure (block or address is skipped, never fatal)."""


class ChainAdapter(ABC):
    """Base interface for all blockchain adapters"""

    def __init__(self, scope: ChainScope):
        self.scope = scope
        self.chain_name = scope.name
        self.last_block = 0

    @abstractmethod
    def connect(self) -> bool:
        """Connect to the blockchain and verify connectivity"""
        pass

    @abstractmethod
    async def get_latest_block(self) -> Optional[int]:
        """Latest block number, or None if the provider is unreachable"""
        pass

    @abstractmethod
    async def get_block_creations(self, block_number: int) -> List[CreationEvent]:
        """
        Contract creations of a block, in block order.
        Raises ChainDataError when the block itself cannot be fetched.
        """
        pass

    @abstractmethod
    async def has_code(self, address: str) -> bool:
        """True once bytecode is deployed at the address"""
        pass

    @abstractmethod
    async def get_native_balance(self, address: str) -> float:
        """Native asset balance in whole units (ETH, BNB, ...)"""
        pass

    @abstractmethod
    async def get_token_metadata(self, token_address: str) -> Optional[Dict]:
        """
        Fetch token name, symbol, decimals.
        Returns: {'name': str, 'symbol': str, 'decimals': int} or None
        """
        pass

    @abstractmethod
    async def get_deployer(self, tx_hash: str) -> Optional[str]:
        """Sender of the creating transaction"""
        pass

    @abstractmethod
    async def get_pair(self, factory_address: str, token_a: str, token_b: str) -> Optional[str]:
        """Raw factory.getPair result (may be the zero address), None on error"""
        pass

    @abstractmethod
    async def get_pair_reserves(self, pair_address: str) -> Optional[Dict]:
        """
        Returns: {'token0': str, 'reserve0': int, 'reserve1': int} or None
        """
        pass

    def get_chain_prefix(self) -> str:
        """Return chain prefix for logs and alerts"""
        return f"[{self.chain_name.upper()}]"
