"""
Telegram Notifier
Sends alerts to a chat + thread (forum topic) and builds the alert texts:
- Immediate alert (ticker match, no liquidity wait)
- Threshold alert (balance / LP reserve met)
- Enrichment follow-up (liquidity, price, verification, risk patterns)
"""
import logging
from typing import List, Optional

from telegram import Bot, LinkPreviewOptions
from telegram.error import TelegramError

from models import (
    ChainScope, DeployerInfo, LiquidityInfo, SubscriberScope,
    Subscription, TokenCandidate, VerificationInfo,
)

logger = logging.getLogger(__name__)


def escape_md(text) -> str:
    """Escape Markdown-sensitive characters in token-controlled text."""
    text = str(text)
    for ch in ('_', '*', '`', '['):
        text = text.replace(ch, '\\' + ch)
    return text


def _format_native(amount: Optional[float], symbol: str) -> str:
    if amount is None:
        return "N/A"
    return f"{amount:,.4f} {symbol}"


def _format_price(price: Optional[float], symbol: str) -> str:
    if price is None:
        return "N/A"
    return f"{price:.10f}".rstrip('0').rstrip('.') + f" {symbol}"


def _format_verification(verification: Optional[VerificationInfo]) -> str:
    if verification is None:
        return "⏳ Checking..."
    if verification.verified:
        name = f" ({escape_md(verification.contract_name)})" if verification.contract_name else ""
        return f"✅ Verified{name}"
    return "❌ Not verified"


def _token_header(title: str, candidate: TokenCandidate, scope: ChainScope) -> str:
    ca = candidate.contract_address
    return f"""{title} {scope.prefix}

*Token:* {escape_md(candidate.symbol)} ({escape_md(candidate.name)})
📬 `{ca}`
🔗 [Explorer]({scope.address_link(ca)}) | [Dexscreener]({scope.dexscreener_link(ca)})"""


def _deployer_lines(deployer: DeployerInfo, scope: ChainScope) -> str:
    return (f"👤 *Deployer:* [{deployer.address}]({scope.address_link(deployer.address)})\n"
            f"💰 *Deployer balance:* {_format_native(deployer.native_balance, scope.native_symbol)}")


def format_immediate_alert(candidate: TokenCandidate, scope: ChainScope, deployer: DeployerInfo,
                           verification: Optional[VerificationInfo] = None) -> str:
    """First message on a ticker match: no liquidity data yet."""
    return f"""{_token_header("🚨 *New Token Detected!*", candidate, scope)}

{_deployer_lines(deployer, scope)}
📜 *Contract:* {_format_verification(verification)}

_Liquidity details follow shortly._"""


def format_threshold_alert(candidate: TokenCandidate, scope: ChainScope, deployer: DeployerInfo,
                           subscription: Subscription, token_balance: float,
                           liquidity: LiquidityInfo,
                           verification: Optional[VerificationInfo] = None) -> str:
    """Alert for a filter whose native threshold was met."""
    lp_line = (f"💧 *LP:* `{liquidity.pair_address}` ({_format_native(liquidity.native_reserve, scope.native_symbol)})"
               if liquidity.has_pair else "💧 No LP")
    return f"""{_token_header("🚨 *New Token Detected!*", candidate, scope)}

🎯 *Filter:* {escape_md(subscription.describe(scope.native_symbol))}
🏦 *Contract balance:* {_format_native(token_balance, scope.native_symbol)}
{lp_line}

{_deployer_lines(deployer, scope)}
📜 *Contract:* {_format_verification(verification)}"""


def format_enrichment(candidate: TokenCandidate, scope: ChainScope, liquidity: LiquidityInfo,
                      verification: Optional[VerificationInfo], risk_labels: List[str]) -> str:
    """Follow-up sent after an immediate alert."""
    native = scope.native_symbol
    if liquidity.has_pair:
        market = (f"💧 *LP:* `{liquidity.pair_address}` via {escape_md(liquidity.factory or 'dex')}\n"
                  f"• Reserve: {_format_native(liquidity.native_reserve, native)}\n"
                  f"• Price: {_format_price(liquidity.price_native, native)}\n"
                  f"• Market cap: {_format_native(liquidity.market_cap_native, native)}")
    else:
        market = "💧 No LP yet"

    if verification is not None and verification.verified:
        risks = "\n".join(f"• {escape_md(label)}" for label in risk_labels) if risk_labels else "• None found ✅"
        risk_section = f"\n\n🔍 *Risk markers:*\n{risks}"
    else:
        risk_section = ""

    return f"""📊 *Update for {escape_md(candidate.symbol)}* {scope.prefix}
📬 `{candidate.contract_address}`

{market}
📜 *Contract:* {_format_verification(verification)}{risk_section}"""


class TelegramNotifier:
    """Sends Markdown messages scoped to a chat and optional thread."""

    def __init__(self, bot_token: str, bot: Bot = None):
        self.bot_token = bot_token
        self.enabled = bool(bot_token) or bot is not None

        if bot is not None:
            self.bot = bot
        elif self.enabled:
            self.bot = Bot(token=self.bot_token)
        else:
            self.bot = None
            logger.warning("TELEGRAM_BOT_TOKEN missing - alerts will only be logged")

    async def start(self):
        if self.bot is not None:
            await self.bot.initialize()

    async def shutdown(self):
        if self.bot is not None:
            await self.bot.shutdown()

    async def send(self, scope: SubscriberScope, text: str, link_preview: bool = False) -> bool:
        """Send a message to the scope's chat/thread. Returns False on failure."""
        if not self.enabled:
            logger.info(f"[Telegram disabled] {scope.key}: {text[:80]!r}")
            return False

        kwargs = {}
        if scope.thread_id is not None:
            kwargs['message_thread_id'] = scope.thread_id

        try:
            await self.bot.send_message(
                chat_id=scope.chat_id,
                text=text,
                parse_mode='Markdown',
                link_preview_options=LinkPreviewOptions(is_disabled=not link_preview),
                **kwargs
            )
            return True
        except TelegramError as e:
            logger.error(f"Telegram send error for {scope.key}: {e}")
            return False
