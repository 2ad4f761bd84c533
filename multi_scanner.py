"""
Multi-chain scanner orchestrator
One adapter, resolver, block scanner and block feed per chain scope.
Chains run independently; only the seen-contract set and the
subscription registry are shared.
"""
import asyncio
import logging
from typing import Dict, Optional

from chain_adapters import get_adapter_for_chain
from block_scanner import BlockScanner
from modules.block_listener import BlockFeed
from models import ChainScope
from token_resolver import TokenResolver

logger = logging.getLogger(__name__)


class MultiChainScanner:
    """Orchestrates scanning across multiple chains"""

    def __init__(self, scopes: Dict[str, ChainScope], seen, registry, notifier, explorer,
                 pattern_scanner, rpc_timeout: float = 10.0, poll_interval: float = 4.0,
                 max_catchup_blocks: int = 20, adapter_factory=None):
        """
        Args:
            scopes: {chain_name: ChainScope}
            seen: Shared SeenContracts
            registry: Shared SubscriptionRegistry
            notifier: TelegramNotifier
            explorer: ExplorerClient
            pattern_scanner: PatternScanner
            adapter_factory: Override adapter construction (tests)
        """
        self.scopes = scopes
        self.adapters = {}
        self.scanners: Dict[str, BlockScanner] = {}
        self.block_feeds: Dict[str, BlockFeed] = {}
        self.skipped_chains = {}
        self.is_running = False

        adapter_factory = adapter_factory or (lambda scope: get_adapter_for_chain(scope, rpc_timeout))

        logger.info(f"🔗 Initializing multi-chain scanner: {', '.join(c.upper() for c in scopes)}")

        for chain_name, scope in scopes.items():
            adapter = adapter_factory(scope)

            if adapter is None:
                logger.warning(f"{scope.prefix} No adapter available for this chain")
                self.skipped_chains[chain_name] = "No adapter implementation"
                continue

            if not adapter.connect():
                logger.warning(f"{scope.prefix} Skipped due to connection failure")
                self.skipped_chains[chain_name] = "Connection failure"
                continue

            self.adapters[chain_name] = adapter
            self.scanners[chain_name] = BlockScanner(
                scope=scope,
                adapter=adapter,
                resolver=TokenResolver(adapter, scope),
                seen=seen,
                registry=registry,
                notifier=notifier,
                explorer=explorer,
                pattern_scanner=pattern_scanner,
            )
            feed = BlockFeed(chain_name, adapter, poll_interval=poll_interval,
                             max_catchup_blocks=max_catchup_blocks)
            feed.subscribe(self.scanners[chain_name].on_new_block)
            self.block_feeds[chain_name] = feed

    def start(self):
        for feed in self.block_feeds.values():
            feed.start()
        self.is_running = True

    async def stop(self):
        self.is_running = False
        for feed in self.block_feeds.values():
            feed.stop()
        # Block handlers may still be queueing work on the scanners
        await asyncio.gather(*(feed.drain() for feed in self.block_feeds.values()),
                             return_exceptions=True)
        await asyncio.gather(*(scanner.drain() for scanner in self.scanners.values()),
                             return_exceptions=True)

    def get_scanner(self, chain_name: str) -> Optional[BlockScanner]:
        return self.scanners.get(chain_name)

    def get_stats(self) -> Dict[str, Dict]:
        return {chain: dict(scanner.stats) for chain, scanner in self.scanners.items()}
