import unittest
import threading

from deduplicator import SeenContracts
from models import SubscriberScope, Subscription
from subscriptions import SubscriptionRegistry


class TestSubscriptionRegistry(unittest.TestCase):

    def setUp(self):
        self.registry = SubscriptionRegistry()
        self.scope = SubscriberScope(chat_id=-100123, thread_id=7)

    def test_add_returns_scope_size(self):
        self.assertEqual(self.registry.add_filter(self.scope, 0.5, None, 'ethereum'), 1)
        self.assertEqual(self.registry.add_filter(self.scope, 0, 'PONK', 'ethereum'), 2)
        # Value-equal duplicate does not grow the set
        self.assertEqual(self.registry.add_filter(self.scope, 0.5, None, 'ethereum'), 2)

    def test_list_is_insertion_ordered_and_unique(self):
        self.registry.add_filter(self.scope, 3, None, 'ethereum')
        self.registry.add_filter(self.scope, 0, 'gem', 'ethereum')
        self.registry.add_filter(self.scope, 1, None, 'base')
        self.registry.add_filter(self.scope, 0, ' GEM ', 'ethereum')

        filters = self.registry.list(self.scope)
        self.assertEqual(filters, [
            Subscription(eth_threshold=3, chain='ethereum'),
            Subscription(eth_threshold=0, chain='ethereum', ticker='GEM'),
            Subscription(eth_threshold=1, chain='base'),
        ])

    def test_remove_exact_match_only(self):
        self.registry.add_filter(self.scope, 0, 'PONK', 'ethereum')
        self.registry.add_filter(self.scope, 0, None, 'ethereum')

        self.assertFalse(self.registry.remove_filter(self.scope, 0, 'PONK', 'base'))
        self.assertFalse(self.registry.remove_filter(self.scope, 1, 'PONK', 'ethereum'))
        self.assertTrue(self.registry.remove_filter(self.scope, 0, 'ponk', 'ethereum'))

        self.assertEqual(self.registry.list(self.scope), [Subscription(eth_threshold=0, chain='ethereum')])
        self.assertFalse(self.registry.remove_filter(self.scope, 0, 'PONK', 'ethereum'))

    def test_empty_ticker_never_equals_a_literal_ticker(self):
        self.registry.add_filter(self.scope, 0, '', 'ethereum')
        self.assertEqual(self.registry.list(self.scope)[0].ticker, None)
        self.assertFalse(self.registry.remove_filter(self.scope, 0, 'NONE', 'ethereum'))
        self.assertTrue(self.registry.remove_filter(self.scope, 0, None, 'ethereum'))

    def test_scopes_are_isolated_by_thread(self):
        default_thread = SubscriberScope(chat_id=-100123)
        self.registry.add_filter(self.scope, 0, 'PONK', 'ethereum')
        self.assertEqual(self.registry.list(default_thread), [])
        self.assertEqual(default_thread.key, "-100123:default")

    def test_all_scopes_is_a_snapshot(self):
        other = SubscriberScope(chat_id=42)
        self.registry.add_filter(self.scope, 0, 'PONK', 'ethereum')
        self.registry.add_filter(other, 2, None, 'ethereum')

        snapshot = self.registry.all_scopes()
        self.registry.remove_filter(other, 2, None, 'ethereum')

        self.assertEqual(len(snapshot), 2)
        self.assertEqual(dict(snapshot)[other], (Subscription(eth_threshold=2, chain='ethereum'),))
        self.assertEqual(self.registry.scope_count(), 1)

    def test_negative_threshold_rejected(self):
        with self.assertRaises(ValueError):
            self.registry.add_filter(self.scope, -1, None, 'ethereum')
        self.assertFalse(self.registry.remove_filter(self.scope, -1, None, 'ethereum'))


class TestSeenContracts(unittest.TestCase):

    def test_address_is_processed_once(self):
        seen = SeenContracts()
        address = "0xAbCdEf0000000000000000000000000000000001"
        self.assertTrue(seen.mark_if_new(address))
        self.assertFalse(seen.mark_if_new(address.lower()))
        self.assertFalse(seen.mark_if_new(address.upper().replace('0X', '0x')))
        self.assertEqual(seen.get_stats(), {'added': 1, 'duplicates': 2, 'size': 1})

    def test_concurrent_insert_is_atomic(self):
        seen = SeenContracts()
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(seen.mark_if_new("0x0000000000000000000000000000000000000abc"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results.count(True), 1)
        self.assertEqual(len(seen), 1)


if __name__ == '__main__':
    unittest.main()
