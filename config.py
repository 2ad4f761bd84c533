import os
import re
import logging
import yaml
from pathlib import Path
from typing import Dict, List, Optional
from dotenv import load_dotenv

from models import ChainScope

load_dotenv()
logger = logging.getLogger(__name__)

# Telegram configuration
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "").strip().strip('"').strip("'")
TELEGRAM_POLL_INTERVAL = float(os.getenv("TELEGRAM_POLL_INTERVAL", "2.0"))

# Block explorer (Etherscan V2 multichain endpoint, selected by chainid)
ETHERSCAN_API_URL = os.getenv("ETHERSCAN_API_URL", "https://api.etherscan.io/v2/api")
ETHERSCAN_API_KEY = os.getenv("ETHERSCAN_API_KEY", "")
VERIFY_MAX_ATTEMPTS = int(os.getenv("VERIFY_MAX_ATTEMPTS", "3"))
VERIFY_RETRY_DELAY_SECONDS = float(os.getenv("VERIFY_RETRY_DELAY_SECONDS", "5"))

# RPC behaviour
RPC_TIMEOUT_SECONDS = float(os.getenv("RPC_TIMEOUT_SECONDS", "10"))
BLOCK_POLL_INTERVAL = float(os.getenv("BLOCK_POLL_INTERVAL", "4"))
MAX_CATCHUP_BLOCKS = int(os.getenv("MAX_CATCHUP_BLOCKS", "20"))

# Token sanity bounds
MIN_TOKEN_DECIMALS = 6
MAX_TOKEN_DECIMALS = 18

# Health server
HEALTH_PORT = int(os.getenv("HEALTH_PORT", os.getenv("PORT", "3000")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Multi-chain configuration
CHAINS_CONFIG_PATH = Path(__file__).parent / "chains.yaml"
PATTERNS_CONFIG_PATH = Path(__file__).parent / "patterns.yaml"

_ENV_REF = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env(value):
    """Expand ${VAR} references inside string values of the chain config."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.getenv(m.group(1), ""), value)
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    return value


def load_chain_configs(path: Path = CHAINS_CONFIG_PATH) -> Dict:
    """Load chain configurations from chains.yaml"""
    path = Path(path)
    if path.exists():
        with open(path, 'r') as f:
            return _expand_env(yaml.safe_load(f) or {"chains": {}})
    logger.warning(f"Chain config not found: {path}")
    return {"chains": {}}


def get_enabled_chains(configs: Optional[Dict] = None) -> List[str]:
    """Return list of enabled chain names"""
    configs = configs if configs is not None else load_chain_configs()
    return [name for name, config in configs.get('chains', {}).items()
            if config.get('enabled', False)]


def build_chain_scopes(configs: Dict, only: Optional[List[str]] = None) -> Dict[str, ChainScope]:
    """
    Turn chains.yaml entries into ChainScope records.

    Args:
        configs: Parsed chains.yaml
        only: Restrict to these chain names (default: every enabled chain)

    Returns:
        {chain_name: ChainScope}, in config order
    """
    wanted = [c.lower() for c in only] if only else get_enabled_chains(configs)
    scopes = {}

    for name, cfg in configs.get('chains', {}).items():
        name = name.lower()
        if name not in wanted:
            continue

        factories = cfg.get('factories') or []
        missing = [key for key in ('wrapped_native', 'rpc_url') if not cfg.get(key)]
        if not factories:
            missing.append('factories')
        if missing:
            logger.warning(f"[{name.upper()}] Skipped - missing {', '.join(missing)}")
            continue

        scopes[name] = ChainScope(
            name=name,
            chain_id=int(cfg.get('chain_id', 1)),
            native_symbol=cfg.get('native_symbol', 'ETH'),
            wrapped_native=cfg['wrapped_native'],
            factories=tuple((f['name'], f['address']) for f in factories),
            rpc_url=cfg['rpc_url'],
            explorer_url=cfg.get('explorer_url', ''),
            dexscreener_slug=cfg.get('dexscreener_slug', name),
            aliases=tuple(a.lower() for a in cfg.get('aliases', [])),
        )

    return scopes


def resolve_chain_name(text: str, scopes: Dict[str, ChainScope]) -> Optional[str]:
    """Map a chain name or alias (any case) to a configured chain name."""
    wanted = (text or "").strip().lower()
    for name, scope in scopes.items():
        if wanted == name or wanted in scope.aliases:
            return name
    return None


def load_patterns(path: Path = PATTERNS_CONFIG_PATH) -> List[Dict[str, str]]:
    """
    Load the ordered {label, pattern} list used to scan verified source.
    Invalid regular expressions are dropped.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Pattern file not found: {path}")
        return []

    with open(path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    patterns = []
    for entry in raw.get('patterns', []):
        label = entry.get('label')
        pattern = entry.get('pattern')
        if not label or not pattern:
            continue
        try:
            re.compile(pattern)
        except re.error as e:
            logger.warning(f"Dropping pattern '{label}': {e}")
            continue
        patterns.append({'label': label, 'pattern': pattern})

    return patterns
