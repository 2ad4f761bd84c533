"""
Block Explorer API Client
Fetches verified contract source from an Etherscan-compatible endpoint
(Etherscan V2 multichain API, selected by chain id).

Never blocks an alert: callers schedule lookups as background tasks and
read the result only when they need it.
"""

import asyncio
import logging
import aiohttp
from typing import Dict, Optional

from models import ChainScope, VerificationInfo

logger = logging.getLogger(__name__)


class ExplorerClient:
    """
    Source-verification lookups with bounded retry.

    Up to `max_attempts` calls separated by a fixed delay; the first attempt
    returning non-empty SourceCode wins.
    """

    def __init__(self, api_url: str, api_key: str = "", max_attempts: int = 3,
                 retry_delay: float = 5.0, request_timeout: float = 10.0):
        self.api_url = api_url
        self.api_key = api_key
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.request_timeout = request_timeout
        self.session: Optional[aiohttp.ClientSession] = None

        if not self.api_key:
            logger.warning("ETHERSCAN_API_KEY not set - verification lookups may be rate limited")

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()

    async def close(self):
        """Close aiohttp session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def _fetch_source(self, address: str, scope: ChainScope) -> Optional[Dict]:
        """
        One getsourcecode call.

        Returns:
            result[0] object ({SourceCode, ABI, ContractName, ...}) or None
        """
        await self._ensure_session()
        params = {
            'chainid': scope.chain_id,
            'module': 'contract',
            'action': 'getsourcecode',
            'address': address,
        }
        if self.api_key:
            params['apikey'] = self.api_key

        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        async with self.session.get(self.api_url, params=params, timeout=timeout) as response:
            if response.status != 200:
                logger.debug(f"[EXPLORER] HTTP {response.status} for {address}")
                return None
            data = await response.json(content_type=None)

        result = data.get('result') if isinstance(data, dict) else None
        if isinstance(result, list) and result and isinstance(result[0], dict):
            return result[0]
        return None

    async def get_verified_source(self, address: str, scope: ChainScope) -> VerificationInfo:
        """Verified source for a contract; VerificationInfo(verified=False) after exhausting retries."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                entry = await self._fetch_source(address, scope)
                source = (entry or {}).get('SourceCode') or ''
                if source.strip():
                    logger.info(f"{scope.prefix} Verified source found for {address} (attempt {attempt})")
                    return VerificationInfo(
                        verified=True,
                        contract_name=entry.get('ContractName') or None,
                        source_code=source,
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.debug(f"{scope.prefix} Explorer attempt {attempt} failed for {address}: {e}")

            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay)

        logger.info(f"{scope.prefix} No verified source for {address} after {self.max_attempts} attempts")
        return VerificationInfo()
