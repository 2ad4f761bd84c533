"""
In-memory stand-ins for the chain gateway used by the unit tests.
"""
from models import ZERO_ADDRESS, ChainScope

WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
FACTORY_A = "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"
FACTORY_B = "0xC0AEe478e3658e2610c5F7A4A2E1777cE9e4f2Ac"


def make_address(n: int) -> str:
    return "0x" + f"{n:040x}"


def eth_scope(**overrides) -> ChainScope:
    values = dict(
        name='ethereum',
        chain_id=1,
        native_symbol='ETH',
        wrapped_native=WETH,
        factories=(('uniswap_v2', FACTORY_A), ('sushiswap', FACTORY_B)),
        rpc_url='http://localhost:8545',
        explorer_url='https://etherscan.io',
        dexscreener_slug='ethereum',
        aliases=('eth',),
    )
    values.update(overrides)
    return ChainScope(**values)


def base_scope() -> ChainScope:
    return eth_scope(
        name='base', chain_id=8453,
        wrapped_native="0x4200000000000000000000000000000000000006",
        factories=(('uniswap_v2', "0x8909Dc15e40173Ff4699343b6eB8132c65e18eC6"),),
        explorer_url='https://basescan.org', dexscreener_slug='base', aliases=(),
    )


class FakeAdapter:
    """
    Chain gateway double. Keys of every table are lowercase addresses
    (pairs are keyed by factory address).
    """

    def __init__(self, blocks=None, metadata=None, pairs=None, reserves=None,
                 balances=None, no_code=None, latest_blocks=None):
        self.blocks = blocks or {}
        self.metadata = {k.lower(): v for k, v in (metadata or {}).items()}
        self.pairs = {k.lower(): v for k, v in (pairs or {}).items()}
        self.reserves = {k.lower(): v for k, v in (reserves or {}).items()}
        self.balances = {k.lower(): v for k, v in (balances or {}).items()}
        self.no_code = {a.lower() for a in (no_code or [])}
        self.latest_blocks = list(latest_blocks or [])
        self.metadata_calls = []
        self.pair_calls = []
        self.balance_calls = []

    def connect(self):
        return True

    async def get_latest_block(self):
        return self.latest_blocks.pop(0) if self.latest_blocks else None

    async def get_block_creations(self, block_number):
        value = self.blocks.get(block_number, [])
        if isinstance(value, Exception):
            raise value
        return value

    async def has_code(self, address):
        return address.lower() not in self.no_code

    async def get_token_metadata(self, address):
        self.metadata_calls.append(address)
        return self.metadata.get(address.lower())

    async def get_native_balance(self, address):
        self.balance_calls.append(address)
        value = self.balances.get(address.lower(), 0.0)
        if isinstance(value, Exception):
            raise value
        return value

    async def get_deployer(self, tx_hash):
        return None

    async def get_pair(self, factory_address, token_a, token_b):
        self.pair_calls.append(factory_address)
        value = self.pairs.get(factory_address.lower(), ZERO_ADDRESS)
        if isinstance(value, Exception):
            raise value
        return value

    async def get_pair_reserves(self, pair_address):
        return self.reserves.get(pair_address.lower())
