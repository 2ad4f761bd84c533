import asyncio
import unittest
from unittest.mock import AsyncMock

from block_scanner import BlockScanner
from chain_adapters import ChainDataError
from deduplicator import SeenContracts
from models import CreationEvent, SubscriberScope, VerificationInfo
from pattern_scanner import PatternScanner
from subscriptions import SubscriptionRegistry
from testing_fakes import FACTORY_A, WETH, FakeAdapter, eth_scope, make_address
from token_resolver import TokenResolver

TOKEN = make_address(0xbeef)
PAIR = make_address(0xfeed)
DEPLOYER = make_address(0xdead)
CHAT = SubscriberScope(chat_id=-1001, thread_id=5)
OTHER_CHAT = SubscriberScope(chat_id=-1002)


def creation(address=TOKEN):
    return CreationEvent(tx_hash="0x" + "ab" * 32, contract_address=address, deployer=DEPLOYER)


class TestBlockScanner(unittest.IsolatedAsyncioTestCase):

    def build(self, adapter, patterns=None, verification=None):
        self.scope = eth_scope()
        self.adapter = adapter
        self.registry = SubscriptionRegistry()
        self.seen = SeenContracts()
        self.notifier = AsyncMock()
        self.notifier.send.return_value = True
        self.explorer = AsyncMock()
        self.explorer.get_verified_source.return_value = verification or VerificationInfo()
        self.scanner = BlockScanner(
            scope=self.scope,
            adapter=adapter,
            resolver=TokenResolver(adapter, self.scope),
            seen=self.seen,
            registry=self.registry,
            notifier=self.notifier,
            explorer=self.explorer,
            pattern_scanner=PatternScanner(patterns or []),
        )

    def sent_texts(self):
        return [call.args[1] for call in self.notifier.send.call_args_list]

    def sent_scopes(self):
        return [call.args[0] for call in self.notifier.send.call_args_list]

    async def test_zero_threshold_alerts_on_any_token(self):
        print("\nTesting threshold 0 filter...")
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
        ))
        self.registry.add_filter(CHAT, 0, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        texts = self.sent_texts()
        self.assertEqual(len(texts), 1)
        self.assertIn("GEM", texts[0])
        self.assertIn("No LP", texts[0])
        self.assertEqual(self.sent_scopes(), [CHAT])
        self.assertEqual(self.scanner.stats['alerts_sent'], 1)

    async def test_threshold_not_met_sends_nothing(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
            pairs={FACTORY_A: PAIR},
            reserves={PAIR: {'token0': WETH, 'reserve0': 2 * 10 ** 18, 'reserve1': 1000 * 10 ** 18}},
        ))
        self.registry.add_filter(CHAT, 5, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.notifier.send.assert_not_awaited()

    async def test_threshold_met_by_lp_reserve_inclusive(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
            pairs={FACTORY_A: PAIR},
            reserves={PAIR: {'token0': WETH, 'reserve0': 2 * 10 ** 18, 'reserve1': 1000 * 10 ** 18}},
        ))
        self.registry.add_filter(CHAT, 2, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        texts = self.sent_texts()
        self.assertEqual(len(texts), 1)
        self.assertIn(PAIR, texts[0])

    async def test_threshold_met_by_contract_balance(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
            balances={TOKEN: 6.0},
        ))
        self.registry.add_filter(CHAT, 5, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.assertEqual(len(self.sent_texts()), 1)

    async def test_ticker_match_sends_immediate_then_enrichment(self):
        print("\nTesting ticker filter with a failing threshold filter in the same thread...")
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'PONK', 'name': 'Ponk', 'decimals': 18}},
        ))
        self.registry.add_filter(CHAT, 0, 'PONK', 'ethereum')
        self.registry.add_filter(CHAT, 10, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        texts = self.sent_texts()
        print(f"Sent: {[t.splitlines()[0] for t in texts]}")
        self.assertEqual(len(texts), 2)
        self.assertIn("New Token Detected", texts[0])
        self.assertIn("Liquidity details follow shortly", texts[0])
        self.assertIn("Update for PONK", texts[1])
        self.assertIn("No LP yet", texts[1])
        self.assertEqual(self.scanner.stats['alerts_sent'], 1)
        self.assertEqual(self.scanner.stats['enrichments_sent'], 1)

    async def test_ticker_match_is_case_insensitive(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'ponk', 'name': 'Ponk', 'decimals': 9}},
        ))
        self.registry.add_filter(CHAT, 0, 'PONK', 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.assertEqual(len(self.sent_texts()), 2)

    async def test_immediate_alert_does_not_wait_for_verification(self):
        gate = asyncio.Event()

        async def slow_lookup(address, scope):
            await gate.wait()
            return VerificationInfo(verified=True, contract_name='Ponk',
                                    source_code='function setMaxWallet(uint256 amount) external onlyOwner {}')

        self.build(
            FakeAdapter(
                blocks={100: [creation()]},
                metadata={TOKEN: {'symbol': 'PONK', 'name': 'Ponk', 'decimals': 18}},
            ),
            patterns=[{'label': 'Max wallet limit', 'pattern': r'maxWallet'}],
        )
        self.explorer.get_verified_source.side_effect = slow_lookup
        self.registry.add_filter(CHAT, 0, 'PONK', 'ethereum')

        await self.scanner.on_new_block(100)
        self.assertEqual(len(self.sent_texts()), 1)
        self.assertIn("Checking", self.sent_texts()[0])

        gate.set()
        await self.scanner.drain()

        enrichment = self.sent_texts()[1]
        self.assertIn("Verified (Ponk)", enrichment)
        self.assertIn("Max wallet limit", enrichment)

    async def test_filters_on_other_chains_are_ignored(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
        ))
        self.registry.add_filter(CHAT, 0, None, 'base')
        self.registry.add_filter(CHAT, 0, 'GEM', 'base')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.notifier.send.assert_not_awaited()

    async def test_contract_is_processed_once_across_blocks(self):
        adapter = FakeAdapter(
            blocks={100: [creation()], 101: [creation(TOKEN.upper().replace('0X', '0x'))]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
        )
        self.build(adapter)
        self.registry.add_filter(CHAT, 0, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.on_new_block(101)
        await self.scanner.drain()

        self.assertEqual(len(adapter.metadata_calls), 1)
        self.assertEqual(len(self.sent_texts()), 1)

    async def test_failed_block_is_skipped(self):
        self.build(FakeAdapter(
            blocks={100: ChainDataError("provider down"), 101: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
        ))
        self.registry.add_filter(CHAT, 0, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.on_new_block(101)
        await self.scanner.drain()

        self.assertEqual(self.scanner.stats['blocks_failed'], 1)
        self.assertEqual(self.scanner.stats['blocks_scanned'], 1)
        self.assertEqual(len(self.sent_texts()), 1)

    async def test_address_without_code_is_skipped(self):
        adapter = FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
            no_code=[TOKEN],
        )
        self.build(adapter)
        self.registry.add_filter(CHAT, 0, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.assertEqual(adapter.metadata_calls, [])
        self.notifier.send.assert_not_awaited()

    async def test_unusable_token_is_dropped(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'ODD', 'name': 'Odd', 'decimals': 2}},
        ))
        self.registry.add_filter(CHAT, 0, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.notifier.send.assert_not_awaited()
        self.assertEqual(self.scanner.stats['candidates'], 0)

    async def test_failing_send_does_not_block_other_scopes(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
        ))
        self.registry.add_filter(CHAT, 0, None, 'ethereum')
        self.registry.add_filter(OTHER_CHAT, 0, None, 'ethereum')

        async def flaky_send(scope, text, link_preview=False):
            if scope == CHAT:
                raise RuntimeError("chat not found")
            return True

        self.notifier.send.side_effect = flaky_send

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.assertEqual(self.sent_scopes(), [CHAT, OTHER_CHAT])
        self.assertEqual(self.scanner.stats['alerts_sent'], 1)
        self.assertEqual(self.scanner.stats['errors'], 1)

    async def test_failed_enrichment_keeps_immediate_alert(self):
        self.build(FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'PONK', 'name': 'Ponk', 'decimals': 18}},
        ))
        self.registry.add_filter(CHAT, 0, 'PONK', 'ethereum')

        async def send(scope, text, link_preview=False):
            if text.startswith("📊"):
                raise RuntimeError("flood control")
            return True

        self.notifier.send.side_effect = send

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        self.assertEqual(self.scanner.stats['alerts_sent'], 1)
        self.assertEqual(self.scanner.stats['enrichments_sent'], 0)
        self.assertEqual(self.scanner.stats['errors'], 1)

    async def test_threshold_lookups_are_shared_between_filters(self):
        adapter = FakeAdapter(
            blocks={100: [creation()]},
            metadata={TOKEN: {'symbol': 'GEM', 'name': 'Gem', 'decimals': 18}},
        )
        self.build(adapter)
        self.registry.add_filter(CHAT, 1, None, 'ethereum')
        self.registry.add_filter(OTHER_CHAT, 2, None, 'ethereum')

        await self.scanner.on_new_block(100)
        await self.scanner.drain()

        token_balance_calls = [a for a in adapter.balance_calls if a.lower() == TOKEN.lower()]
        self.assertEqual(len(token_balance_calls), 1)
        self.assertEqual(len(adapter.pair_calls), 2)
        self.notifier.send.assert_not_awaited()


if __name__ == '__main__':
    unittest.main()
