"""
EVM chain adapter shared by Ethereum, Base and BSC style networks
"""
import time
import asyncio
import logging
import requests
from web3 import Web3
from functools import wraps
from typing import List, Dict, Optional

from models import ChainScope, CreationEvent
from .base_adapter import ChainAdapter, ChainDataError

logger = logging.getLogger(__name__)


# Minimal ABIs
FACTORY_ABI = [
    {"constant": True, "inputs": [
        {"name": "tokenA", "type": "address"},
        {"name": "tokenB", "type": "address"}
    ], "name": "getPair", "outputs": [{"name": "pair", "type": "address"}], "type": "function"}
]

ERC20_ABI = [
    {"constant": True, "inputs": [], "name": "name", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "type": "function"}
]

PAIR_ABI = [
    {"constant": True, "inputs": [], "name": "getReserves", "outputs": [
        {"name": "reserve0", "type": "uint112"},
        {"name": "reserve1", "type": "uint112"},
        {"name": "blockTimestampLast", "type": "uint32"}
    ], "type": "function"},
    {"constant": True, "inputs": [], "name": "token0", "outputs": [{"name": "", "type": "address"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "token1", "outputs": [{"name": "", "type": "address"}], "type": "function"}
]


def retry_with_backoff(max_retries=3, base_delay=1):
    """Decorator to retry functions with exponential backoff on network errors"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (ConnectionError, requests.exceptions.ConnectionError,
                        requests.exceptions.Timeout, requests.exceptions.RequestException,
                        OSError) as e:
                    if attempt == max_retries - 1:
                        logger.warning(f"Max retries reached for {func.__name__}: {e}")
                        return None
                    delay = base_delay * (2 ** attempt)
                    logger.debug(f"Network error in {func.__name__}, retrying in {delay}s...")
                    time.sleep(delay)
            return None
        return wrapper
    return decorator


class EVMAdapter(ChainAdapter):
    """Shared EVM chain adapter for Ethereum-compatible chains"""

    def __init__(self, scope: ChainScope, rpc_timeout: float = 10.0, w3: Web3 = None):
        super().__init__(scope)
        self.w3 = w3
        self.rpc_timeout = rpc_timeout

    def connect(self) -> bool:
        """Connect to EVM chain via RPC"""
        try:
            if self.w3 is None:
                self.w3 = Web3(Web3.HTTPProvider(self.scope.rpc_url, request_kwargs={'timeout': self.rpc_timeout}))

            if not self.w3.is_connected():
                logger.error(f"{self.get_chain_prefix()} Could not connect to RPC")
                return False

            start_time = time.time()
            self.last_block = self.w3.eth.block_number
            connection_time = time.time() - start_time

            if connection_time > 5:
                logger.warning(f"{self.get_chain_prefix()} Slow RPC response ({connection_time:.1f}s)")

            logger.info(f"{self.get_chain_prefix()} Connected! Block: {self.last_block}")
            return True
        except Exception as e:
            logger.error(f"{self.get_chain_prefix()} Connection error: {e}")
            return False

    async def _run_with_timeout(self, func, *args, timeout=None):
        """Run blocking call in thread with timeout; None on failure"""
        timeout = timeout or self.rpc_timeout
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"{self.get_chain_prefix()} RPC Timeout ({timeout}s) in {getattr(func, '__name__', func)}")
            return None
        except Exception as e:
            logger.debug(f"{self.get_chain_prefix()} RPC Error in {getattr(func, '__name__', func)}: {e}")
            return None

    @retry_with_backoff(max_retries=3, base_delay=1)
    def _get_current_block(self):
        """Get current block number with retry logic"""
        return self.w3.eth.block_number

    def _get_block_data(self, block_number):
        """Get block with full transaction objects. No retry: a failed block is skipped"""
        return self.w3.eth.get_block(block_number, full_transactions=True)

    def _get_receipt(self, tx_hash):
        return self.w3.eth.get_transaction_receipt(tx_hash)

    async def get_latest_block(self) -> Optional[int]:
        block = await self._run_with_timeout(self._get_current_block)
        if block:
            self.last_block = block
        return block

    async def get_block_creations(self, block_number: int) -> List[CreationEvent]:
        """Contract-creation transactions (empty `to`) with their receipt contract address"""
        try:
            block = await asyncio.wait_for(
                asyncio.to_thread(self._get_block_data, block_number),
                timeout=self.rpc_timeout * 2
            )
        except asyncio.TimeoutError as e:
            raise ChainDataError(f"timeout fetching block {block_number}") from e
        except Exception as e:
            raise ChainDataError(f"error fetching block {block_number}: {e}") from e

        if block is None:
            raise ChainDataError(f"block {block_number} unavailable")

        creations = []
        for tx in block.get('transactions', []):
            if isinstance(tx, (bytes, str)) or tx.get('to') is not None:
                continue

            tx_hash = Web3.to_hex(tx['hash'])
            receipt = await self._run_with_timeout(self._get_receipt, tx['hash'])
            if not receipt:
                logger.warning(f"{self.get_chain_prefix()} No receipt for creation tx {tx_hash}")
                continue
            if receipt.get('status') == 0 or not receipt.get('contractAddress'):
                continue

            creations.append(CreationEvent(
                tx_hash=tx_hash,
                contract_address=Web3.to_checksum_address(receipt['contractAddress']),
                deployer=tx.get('from'),
            ))

        return creations

    async def has_code(self, address: str) -> bool:
        code = await self._run_with_timeout(self.w3.eth.get_code, Web3.to_checksum_address(address))
        return bool(code)

    async def get_native_balance(self, address: str) -> float:
        wei = await self._run_with_timeout(self.w3.eth.get_balance, Web3.to_checksum_address(address))
        if wei is None:
            raise ChainDataError(f"balance unavailable for {address}")
        return float(Web3.from_wei(wei, 'ether'))

    async def get_deployer(self, tx_hash: str) -> Optional[str]:
        tx = await self._run_with_timeout(self.w3.eth.get_transaction, tx_hash)
        return tx.get('from') if tx else None

    def _get_indexed_metadata(self, token_address: str) -> Optional[Dict]:
        """Indexing-service metadata (alchemy_getTokenMetadata on the same provider)"""
        response = self.w3.provider.make_request("alchemy_getTokenMetadata", [token_address])
        result = response.get('result') if response else None
        if not result:
            return None
        return {
            'name': result.get('name') or '',
            'symbol': result.get('symbol') or '',
            'decimals': result.get('decimals'),
        }

    def _get_onchain_metadata(self, token_address: str) -> Optional[Dict]:
        """Direct ERC-20 calls for name, symbol, decimals"""
        token_address = Web3.to_checksum_address(token_address)
        token_contract = self.w3.eth.contract(address=token_address, abi=ERC20_ABI)

        symbol = token_contract.functions.symbol().call()
        decimals = token_contract.functions.decimals().call()
        try:
            name = token_contract.functions.name().call()
        except Exception:
            name = symbol

        return {'name': name, 'symbol': symbol, 'decimals': decimals}

    def _get_onchain_decimals(self, token_address: str) -> Optional[int]:
        token_contract = self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        return token_contract.functions.decimals().call()

    async def get_token_metadata(self, token_address: str) -> Optional[Dict]:
        """
        Layered lookup for a just-deployed token: the indexing service first,
        then direct contract calls. The first source with a non-empty symbol wins.
        """
        indexed = await self._run_with_timeout(self._get_indexed_metadata, token_address)
        if indexed and (indexed.get('symbol') or '').strip():
            if indexed.get('decimals') is None:
                indexed['decimals'] = await self._run_with_timeout(self._get_onchain_decimals, token_address)
            return indexed

        onchain = await self._run_with_timeout(self._get_onchain_metadata, token_address)
        if onchain and (onchain.get('symbol') or '').strip():
            return onchain

        return None

    def _get_pair(self, factory_address: str, token_a: str, token_b: str) -> str:
        factory = self.w3.eth.contract(address=Web3.to_checksum_address(factory_address), abi=FACTORY_ABI)
        return factory.functions.getPair(
            Web3.to_checksum_address(token_a),
            Web3.to_checksum_address(token_b)
        ).call()

    async def get_pair(self, factory_address: str, token_a: str, token_b: str) -> Optional[str]:
        return await self._run_with_timeout(self._get_pair, factory_address, token_a, token_b)

    def _get_pair_reserves(self, pair_address: str) -> Dict:
        pair_contract = self.w3.eth.contract(address=Web3.to_checksum_address(pair_address), abi=PAIR_ABI)
        token0 = pair_contract.functions.token0().call()
        reserves = pair_contract.functions.getReserves().call()
        return {'token0': token0, 'reserve0': reserves[0], 'reserve1': reserves[1]}

    async def get_pair_reserves(self, pair_address: str) -> Optional[Dict]:
        return await self._run_with_timeout(self._get_pair_reserves, pair_address)
