"""
Shared data model for the contract-launch watcher.

All records are immutable snapshots passed between the chain gateway,
the resolver, the subscription registry and the block scanner.
"""
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class ChainScope:
    """
    One supported network plus the fixed addresses and endpoints used on it.
    Every chain-scoped lookup and link must come from the same scope.
    """
    name: str
    chain_id: int
    native_symbol: str
    wrapped_native: str
    factories: Tuple[Tuple[str, str], ...]   # (label, address) in probe order
    rpc_url: str = ""
    explorer_url: str = ""
    dexscreener_slug: str = ""
    aliases: Tuple[str, ...] = ()

    @property
    def prefix(self) -> str:
        return f"[{self.name.upper()}]"

    def address_link(self, address: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/address/{address}"

    def dexscreener_link(self, address: str) -> str:
        return f"https://dexscreener.com/{self.dexscreener_slug or self.name}/{address}"


@dataclass(frozen=True)
class CreationEvent:
    """A contract created by a transaction in a block."""
    tx_hash: str
    contract_address: str
    deployer: Optional[str] = None


@dataclass(frozen=True)
class TokenCandidate:
    contract_address: str
    chain: str
    symbol: str
    name: str
    decimals: int


@dataclass(frozen=True)
class LiquidityInfo:
    pair_address: Optional[str] = None
    native_reserve: float = 0.0
    price_native: Optional[float] = None
    market_cap_native: Optional[float] = None
    factory: Optional[str] = None

    @property
    def has_pair(self) -> bool:
        return self.pair_address is not None


@dataclass(frozen=True)
class VerificationInfo:
    verified: bool = False
    contract_name: Optional[str] = None
    source_code: Optional[str] = None


@dataclass(frozen=True)
class DeployerInfo:
    address: str = ZERO_ADDRESS
    native_balance: float = 0.0


@dataclass(frozen=True)
class SubscriberScope:
    """Chat plus thread; thread_id None is the chat's default thread."""
    chat_id: int
    thread_id: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.chat_id}:{self.thread_id if self.thread_id is not None else 'default'}"


def normalize_ticker(ticker: Optional[str]) -> Optional[str]:
    """Trim and uppercase; empty input means no ticker."""
    if ticker is None:
        return None
    cleaned = ticker.strip().upper()
    return cleaned or None


@dataclass(frozen=True)
class Subscription:
    eth_threshold: float
    chain: str
    ticker: Optional[str] = field(default=None)

    def __post_init__(self):
        if not math.isfinite(self.eth_threshold) or self.eth_threshold < 0:
            raise ValueError("threshold must be >= 0")
        object.__setattr__(self, 'ticker', normalize_ticker(self.ticker))
        object.__setattr__(self, 'chain', self.chain.lower())
        object.__setattr__(self, 'eth_threshold', float(self.eth_threshold))

    @property
    def is_ticker_filter(self) -> bool:
        return self.ticker is not None

    def describe(self, native_symbol: str = "ETH") -> str:
        if self.ticker:
            return f"{self.ticker} on {self.chain}"
        return f">= {self.eth_threshold:g} {native_symbol} on {self.chain}"
