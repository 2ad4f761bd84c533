"""
Block Scanner / Matching Engine

Per block of one chain:
1. Fetch contract creations (failed block = logged and skipped)
2. Drop addresses already seen (process-wide, permanent)
3. Skip addresses without bytecode yet
4. Resolve the token (no symbol / bad decimals = silently dropped)
5. Start the verification lookup in the background
6. Resolve deployer + balance (best effort)
7. Match every subscriber filter for this chain:
   - ticker filters: immediate alert, then a detached enrichment follow-up
   - threshold filters: contract balance or LP reserve >= threshold

Every unit of work is isolated: one failing candidate, filter or
enrichment never suppresses the others.
"""
import asyncio
import logging
from typing import Dict, Optional, Set, Tuple

from chain_adapters import ChainDataError
from models import (
    ChainScope, CreationEvent, DeployerInfo, LiquidityInfo,
    SubscriberScope, Subscription, TokenCandidate, VerificationInfo,
    normalize_ticker,
)
from telegram_notifier import format_enrichment, format_immediate_alert, format_threshold_alert

logger = logging.getLogger(__name__)


class CandidateContext:
    """
    Lookups shared by every filter checked against one candidate.
    Liquidity and contract balance are computed lazily, at most once.
    """

    def __init__(self, candidate: TokenCandidate, deployer: DeployerInfo,
                 verification_task: asyncio.Task, resolver):
        self.candidate = candidate
        self.deployer = deployer
        self.verification_task = verification_task
        self._resolver = resolver
        self._liquidity_task: Optional[asyncio.Task] = None
        self._balance_task: Optional[asyncio.Task] = None

    def verification_if_ready(self) -> Optional[VerificationInfo]:
        task = self.verification_task
        if task.done() and not task.cancelled() and task.exception() is None:
            return task.result()
        return None

    async def liquidity(self) -> LiquidityInfo:
        if self._liquidity_task is None:
            self._liquidity_task = asyncio.ensure_future(self._resolver.get_liquidity(self.candidate))
        return await asyncio.shield(self._liquidity_task)

    async def contract_balance(self) -> float:
        if self._balance_task is None:
            self._balance_task = asyncio.ensure_future(
                self._resolver.get_native_balance(self.candidate.contract_address))
        return await asyncio.shield(self._balance_task)

    async def threshold_inputs(self) -> Tuple[float, LiquidityInfo]:
        balance, liquidity = await asyncio.gather(self.contract_balance(), self.liquidity())
        return balance, liquidity


class BlockScanner:
    """Single logical worker for one chain scope."""

    def __init__(self, scope: ChainScope, adapter, resolver, seen, registry,
                 notifier, explorer, pattern_scanner):
        self.scope = scope
        self.adapter = adapter
        self.resolver = resolver
        self.seen = seen
        self.registry = registry
        self.notifier = notifier
        self.explorer = explorer
        self.pattern_scanner = pattern_scanner

        # Strong refs to detached tasks (verification, enrichment)
        self._background: Set[asyncio.Task] = set()

        self.stats: Dict[str, int] = {
            'blocks_scanned': 0,
            'blocks_failed': 0,
            'creations': 0,
            'candidates': 0,
            'alerts_sent': 0,
            'enrichments_sent': 0,
            'errors': 0,
        }

    @property
    def prefix(self) -> str:
        return self.scope.prefix

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self):
        """Wait for detached tasks (used at shutdown and in tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def on_new_block(self, block_number: int):
        """Block-feed callback."""
        try:
            creations = await self.adapter.get_block_creations(block_number)
        except ChainDataError as e:
            self.stats['blocks_failed'] += 1
            logger.warning(f"{self.prefix} Skipping block {block_number}: {e}")
            return

        self.stats['blocks_scanned'] += 1
        if creations:
            logger.info(f"{self.prefix} Block {block_number}: {len(creations)} contract creation(s)")

        for event in creations:
            try:
                await self.process_creation(event)
            except Exception as e:
                self.stats['errors'] += 1
                logger.error(f"{self.prefix} Error processing {event.contract_address}: {e}", exc_info=True)

    async def process_creation(self, event: CreationEvent):
        address = event.contract_address
        if not self.seen.mark_if_new(address):
            return
        self.stats['creations'] += 1

        if not await self.adapter.has_code(address):
            logger.debug(f"{self.prefix} {address} has no code yet - skipped")
            return

        candidate = await self.resolver.resolve_candidate(address)
        if candidate is None:
            return
        self.stats['candidates'] += 1
        logger.info(f"{self.prefix} New token {candidate.symbol} ({candidate.name}) at {address}")

        verification_task = self._spawn(self._verify(candidate), name=f"verify-{address}")
        deployer = await self.resolver.resolve_deployer(event)

        ctx = CandidateContext(candidate, deployer, verification_task, self.resolver)
        await self.match_candidate(ctx)

    async def _verify(self, candidate: TokenCandidate) -> VerificationInfo:
        try:
            return await self.explorer.get_verified_source(candidate.contract_address, self.scope)
        except Exception as e:
            logger.warning(f"{self.prefix} Verification lookup failed for {candidate.symbol}: {e}")
            return VerificationInfo()

    async def match_candidate(self, ctx: CandidateContext):
        """
        Ticker filters are dispatched first so no immediate alert waits on
        the liquidity lookups of threshold filters.
        """
        symbol = normalize_ticker(ctx.candidate.symbol)
        threshold_matches = []

        for scope, subscriptions in self.registry.all_scopes():
            for subscription in subscriptions:
                if subscription.chain != ctx.candidate.chain:
                    continue
                if subscription.is_ticker_filter:
                    if subscription.ticker == symbol:
                        await self._dispatch(self._send_immediate, scope, subscription, ctx)
                else:
                    threshold_matches.append((scope, subscription))

        for scope, subscription in threshold_matches:
            await self._dispatch(self._check_threshold, scope, subscription, ctx)

    async def _dispatch(self, handler, scope: SubscriberScope, subscription: Subscription,
                        ctx: CandidateContext):
        try:
            await handler(scope, subscription, ctx)
        except Exception as e:
            self.stats['errors'] += 1
            logger.error(f"{self.prefix} Filter {subscription.describe()} for {scope.key} failed: {e}")

    async def _send_immediate(self, scope: SubscriberScope, subscription: Subscription,
                              ctx: CandidateContext):
        text = format_immediate_alert(ctx.candidate, self.scope, ctx.deployer, ctx.verification_if_ready())
        if await self.notifier.send(scope, text, link_preview=False):
            self.stats['alerts_sent'] += 1
            logger.info(f"{self.prefix} Ticker alert {ctx.candidate.symbol} -> {scope.key}")

        self._spawn(self._send_enrichment(scope, ctx),
                    name=f"enrich-{ctx.candidate.contract_address}-{scope.key}")

    async def _send_enrichment(self, scope: SubscriberScope, ctx: CandidateContext):
        """Detached follow-up; failures are logged and never retried."""
        try:
            liquidity = await ctx.liquidity()
            verification = await ctx.verification_task
            risk_labels = self.pattern_scanner.scan(verification.source_code) if verification.verified else []
            text = format_enrichment(ctx.candidate, self.scope, liquidity, verification, risk_labels)
            if await self.notifier.send(scope, text, link_preview=False):
                self.stats['enrichments_sent'] += 1
        except Exception as e:
            self.stats['errors'] += 1
            logger.error(f"{self.prefix} Enrichment for {ctx.candidate.symbol} -> {scope.key} failed: {e}")

    async def _check_threshold(self, scope: SubscriberScope, subscription: Subscription,
                               ctx: CandidateContext):
        balance, liquidity = await ctx.threshold_inputs()
        threshold = subscription.eth_threshold
        if balance < threshold and liquidity.native_reserve < threshold:
            return

        text = format_threshold_alert(ctx.candidate, self.scope, ctx.deployer, subscription,
                                      balance, liquidity, ctx.verification_if_ready())
        if await self.notifier.send(scope, text, link_preview=False):
            self.stats['alerts_sent'] += 1
            logger.info(f"{self.prefix} Threshold alert {ctx.candidate.symbol} -> {scope.key}")
