import asyncio
import unittest
from unittest.mock import AsyncMock, patch

import aiohttp

from explorer_client import ExplorerClient
from models import VerificationInfo
from pattern_scanner import PatternScanner
from testing_fakes import eth_scope, make_address

TOKEN = make_address(0xbeef)
SOURCE = """
contract Ponk {
    uint256 public maxWalletAmount;
    bool public tradingEnabled;
    function blacklistAddress(address a) external onlyOwner {}
    function setMaxWallet(uint256 amount) external onlyOwner {}
}
"""


class TestExplorerClient(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.client = ExplorerClient("https://api.etherscan.io/v2/api", "key", max_attempts=3, retry_delay=0)

    async def test_first_non_empty_source_wins(self):
        fetch = AsyncMock(side_effect=[
            {'SourceCode': '', 'ContractName': ''},
            {'SourceCode': SOURCE, 'ContractName': 'Ponk'},
            {'SourceCode': 'never fetched'},
        ])
        with patch.object(self.client, '_fetch_source', fetch):
            result = await self.client.get_verified_source(TOKEN, eth_scope())

        self.assertTrue(result.verified)
        self.assertEqual(result.contract_name, 'Ponk')
        self.assertEqual(result.source_code, SOURCE)
        self.assertEqual(fetch.await_count, 2)

    async def test_unverified_after_all_attempts(self):
        fetch = AsyncMock(return_value={'SourceCode': '', 'ContractName': ''})
        with patch.object(self.client, '_fetch_source', fetch):
            result = await self.client.get_verified_source(TOKEN, eth_scope())

        self.assertEqual(result, VerificationInfo())
        self.assertEqual(fetch.await_count, 3)

    async def test_transport_errors_are_retried(self):
        fetch = AsyncMock(side_effect=[
            aiohttp.ClientError("connection reset"),
            asyncio.TimeoutError(),
            {'SourceCode': SOURCE, 'ContractName': 'Ponk'},
        ])
        with patch.object(self.client, '_fetch_source', fetch):
            result = await self.client.get_verified_source(TOKEN, eth_scope())

        self.assertTrue(result.verified)
        self.assertEqual(fetch.await_count, 3)

    async def test_delay_between_attempts(self):
        client = ExplorerClient("https://api.etherscan.io/v2/api", "key", max_attempts=2, retry_delay=5)
        with patch.object(client, '_fetch_source', AsyncMock(return_value=None)), \
                patch('explorer_client.asyncio.sleep', new=AsyncMock()) as sleep:
            result = await client.get_verified_source(TOKEN, eth_scope())

        self.assertFalse(result.verified)
        sleep.assert_awaited_once_with(5)


class TestPatternScanner(unittest.TestCase):

    def setUp(self):
        self.scanner = PatternScanner([
            {'label': 'Blacklist', 'pattern': r'blacklist'},
            {'label': 'Max wallet limit', 'pattern': r'maxWallet'},
            {'label': 'Mint function', 'pattern': r'function\s+mint\s*\('},
            {'label': 'Max wallet limit', 'pattern': r'_maxWalletSize'},
            {'label': 'Trading toggle', 'pattern': r'tradingEnabled|enableTrading'},
        ])

    def test_labels_in_list_order(self):
        print("\nTesting risk pattern scan...")
        labels = self.scanner.scan(SOURCE)
        print(f"Labels: {labels}")
        self.assertEqual(labels, ['Blacklist', 'Max wallet limit', 'Trading toggle'])

    def test_empty_source(self):
        self.assertEqual(self.scanner.scan(''), [])
        self.assertEqual(self.scanner.scan(None), [])

    def test_clean_source(self):
        self.assertEqual(self.scanner.scan("contract Plain { uint256 x; }"), [])
        self.assertEqual(len(self.scanner), 5)


if __name__ == '__main__':
    unittest.main()
