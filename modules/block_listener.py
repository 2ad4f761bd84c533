import asyncio
import inspect
import logging
from typing import Dict, List, Callable, Any, Set

logger = logging.getLogger(__name__)


class SharedBlockCache:
    """
    Global cache for latest block numbers to prevent duplicate RPC calls.
    Accessible by all modules to read latest block without fetching.
    """
    _cache: Dict[str, int] = {}

    @classmethod
    def update(cls, chain: str, block_number: int):
        cls._cache[chain] = block_number

    @classmethod
    def get(cls, chain: str) -> int:
        return cls._cache.get(chain, 0)

    @classmethod
    def snapshot(cls) -> Dict[str, int]:
        return dict(cls._cache)


class BlockFeed:
    """
    Block listener for one chain.
    Polls the latest block number and notifies subscribers once per new block,
    in ascending order, including blocks that arrived between two polls.
    """

    def __init__(self, chain: str, adapter, poll_interval: float = 4.0, max_catchup_blocks: int = 20):
        self.chain = chain
        self.adapter = adapter
        self.poll_interval = poll_interval
        self.max_catchup_blocks = max(1, max_catchup_blocks)
        self.latest_block = 0
        self.subscribers: List[Callable[[int], Any]] = []
        self.is_running = False
        self._task = None
        self._callback_tasks: Set[asyncio.Task] = set()

    @property
    def prefix(self) -> str:
        return f"[{self.chain.upper()}]"

    def subscribe(self, callback: Callable[[int], Any]):
        """
        Subscribe to new block events.
        Callback signature: async def callback(block_number: int)
        """
        if callback not in self.subscribers:
            self.subscribers.append(callback)
            logger.info(f"{self.prefix} New subscriber registered for block feed")

    def start(self):
        if not self.is_running:
            self.is_running = True
            self._task = asyncio.create_task(self._poll_loop(), name=f"block-feed-{self.chain}")
            logger.info(f"{self.prefix} Block feed started (interval: {self.poll_interval}s)")

    def stop(self):
        self.is_running = False
        if self._task:
            self._task.cancel()

    async def drain(self):
        """Wait for subscriber tasks already started for emitted blocks."""
        while True:
            pending = [t for t in self._callback_tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _notify(self, block_number: int):
        for callback in self.subscribers:
            try:
                if inspect.iscoroutinefunction(callback):
                    task = asyncio.create_task(callback(block_number), name=f"block-{self.chain}-{block_number}")
                    self._callback_tasks.add(task)
                    task.add_done_callback(self._on_callback_done)
                else:
                    callback(block_number)
            except Exception as cb_e:
                logger.error(f"{self.prefix} Subscriber error: {cb_e}")

    def _on_callback_done(self, task: asyncio.Task):
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"{self.prefix} Block handler failed: {task.exception()}")

    async def poll_once(self):
        """One poll: emit every block after the last one seen (capped catch-up window)."""
        new_block = await self.adapter.get_latest_block()
        if not new_block:
            return

        if self.latest_block == 0:
            # Baseline only; nothing is emitted for history
            self.latest_block = new_block
            SharedBlockCache.update(self.chain, new_block)
            logger.info(f"{self.prefix} Initial block: {new_block}")
            return

        if new_block <= self.latest_block:
            return

        first = max(self.latest_block + 1, new_block - self.max_catchup_blocks + 1)
        if first > self.latest_block + 1:
            logger.warning(f"{self.prefix} Fell behind - dropping blocks {self.latest_block + 1}..{first - 1}")

        self.latest_block = new_block
        SharedBlockCache.update(self.chain, new_block)

        for block_number in range(first, new_block + 1):
            self._notify(block_number)

    async def _poll_loop(self):
        while self.is_running:
            try:
                await self.poll_once()
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"{self.prefix} Block poll error: {e}")
                await asyncio.sleep(5)  # Backoff
