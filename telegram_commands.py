"""
Telegram Command Handler
Turns /start, /stop and /list messages into Subscription Registry calls.

    /start <threshold|TICKER|ALL> [chain]   add a filter
    /stop  <threshold|TICKER|ALL> [chain]   remove the same filter
    /list                                   show this thread's filters
"""

import asyncio
import math
import aiohttp
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from telegram import BotCommand
from telegram.error import TelegramError

from config import resolve_chain_name
from models import ChainScope, SubscriberScope, normalize_ticker
from telegram_notifier import escape_md

logger = logging.getLogger(__name__)

ALL_KEYWORD = "ALL"

USAGE = (
    "🤖 *Commands*\n"
    "/start <ETH threshold | TICKER | ALL> [chain] - add a filter\n"
    "/stop <ETH threshold | TICKER | ALL> [chain] - remove a filter\n"
    "/list - show active filters\n\n"
    "Examples: `/start 0.5`, `/start PONK`, `/start 2 base`"
)

# Command menu shown by Telegram clients
BOT_COMMANDS = [
    BotCommand("start", "Subscribe to a ticker, an ETH threshold or 'ALL'"),
    BotCommand("stop", "Unsubscribe from a filter"),
    BotCommand("list", "List your current filters"),
    BotCommand("help", "Show usage"),
]


class FilterArgumentError(ValueError):
    """User-supplied filter arguments that cannot form a Subscription."""


@dataclass(frozen=True)
class FilterRequest:
    threshold: float
    ticker: Optional[str]
    chain: str


def _parse_number(token: str) -> Optional[float]:
    try:
        value = float(token)
    except ValueError:
        return None
    return value


def parse_filter_args(args: List[str], scopes: Dict[str, ChainScope]) -> FilterRequest:
    """
    Parse /start and /stop arguments.

    A number is the native threshold, a known chain name or alias selects the
    chain (default: first configured chain), anything else is the ticker. A
    chain name given with no other ticker or threshold is read as the ticker.
    ALL means every new token: threshold 0 without ticker.
    """
    if not args:
        raise FilterArgumentError("missing filter")
    if not scopes:
        raise FilterArgumentError("no chains configured")

    threshold = None
    ticker = None
    chain_tokens = []

    for token in args:
        number = _parse_number(token)
        if number is not None:
            if threshold is not None:
                raise FilterArgumentError("more than one threshold")
            if not math.isfinite(number) or number < 0:
                raise FilterArgumentError("threshold must be a number >= 0")
            threshold = number
            continue

        if resolve_chain_name(token, scopes) is not None:
            chain_tokens.append(token)
            continue

        if ticker is not None:
            raise FilterArgumentError("more than one ticker")
        ticker = normalize_ticker(token)

    # A ticker that is also a chain name/alias (ETH, BASE) is still a ticker
    # when nothing else names the filter
    if ticker is None and threshold is None and chain_tokens:
        ticker = normalize_ticker(chain_tokens.pop(0))
    if len(chain_tokens) > 1:
        raise FilterArgumentError("more than one chain")
    chain = resolve_chain_name(chain_tokens[0], scopes) if chain_tokens else None

    if ticker == ALL_KEYWORD:
        ticker = None
        threshold = 0.0 if threshold is None else threshold

    if threshold is None and ticker is None:
        raise FilterArgumentError("missing filter")

    return FilterRequest(
        threshold=threshold if threshold is not None else 0.0,
        ticker=ticker,
        chain=chain or next(iter(scopes)),
    )


class TelegramCommandHandler:
    """Handle Telegram bot commands for filter management."""

    def __init__(self, bot_token: str, registry, notifier, scopes: Dict[str, ChainScope],
                 poll_interval: float = 2.0):
        """
        Initialize command handler.

        Args:
            bot_token: Telegram bot token
            registry: SubscriptionRegistry to mutate
            notifier: TelegramNotifier used for replies
            scopes: Configured chain scopes
        """
        self.bot_token = bot_token
        self.registry = registry
        self.notifier = notifier
        self.scopes = scopes
        self.enabled = bool(bot_token)

        # Track last update ID to avoid processing duplicates
        self.last_update_id = 0
        self.poll_interval = poll_interval
        self.session: Optional[aiohttp.ClientSession] = None

    async def start_polling(self):
        """Start polling for commands (runs as background task)."""
        if not self.enabled:
            logger.info("Command handler disabled (missing bot token)")
            return

        logger.info("📱 Telegram command handler started")
        await self.register_commands()
        self.session = aiohttp.ClientSession()
        try:
            while True:
                try:
                    await self._poll_updates()
                    await asyncio.sleep(self.poll_interval)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Command polling error: {e}")
                    await asyncio.sleep(5)  # Back off on error
        finally:
            await self.session.close()
            self.session = None

    async def register_commands(self) -> bool:
        """Publish the command menu (setMyCommands). A failure only costs the menu."""
        bot = getattr(self.notifier, 'bot', None)
        if bot is None:
            return False
        try:
            await bot.set_my_commands(BOT_COMMANDS)
            return True
        except TelegramError as e:
            logger.warning(f"Could not register bot commands: {e}")
            return False

    async def _poll_updates(self):
        """Poll Telegram for new messages."""
        url = f"https://api.telegram.org/bot{self.bot_token}/getUpdates"
        params = {
            'offset': self.last_update_id + 1,
            'timeout': 10,
            'allowed_updates': '["message"]'
        }

        try:
            async with self.session.get(url, params=params, timeout=aiohttp.ClientTimeout(total=15)) as resp:
                if resp.status != 200:
                    logger.debug(f"getUpdates HTTP {resp.status}")
                    return
                data = await resp.json()
        except asyncio.TimeoutError:
            return  # Normal timeout, continue polling

        if not data.get('ok'):
            return

        for update in data.get('result', []):
            self.last_update_id = max(self.last_update_id, update['update_id'])
            await self.process_update(update)

    async def process_update(self, update: dict):
        """Process a single update."""
        try:
            message = update.get('message')
            if not message:
                return

            text = (message.get('text') or '').strip()
            if not text.startswith('/'):
                return

            chat_id = message.get('chat', {}).get('id')
            if chat_id is None:
                return
            scope = SubscriberScope(chat_id=chat_id, thread_id=message.get('message_thread_id'))

            parts = text.split()
            command = parts[0].split('@')[0].lower()
            args = parts[1:]

            logger.info(f"📨 Received command: {command} {args} from {scope.key}")

            if command == '/start':
                await self._handle_start(scope, args)
            elif command == '/stop':
                await self._handle_stop(scope, args)
            elif command == '/list':
                await self._handle_list(scope)
            elif command == '/help':
                await self.notifier.send(scope, USAGE)

        except Exception as e:
            logger.error(f"Error processing update: {e}")

    def _describe(self, threshold: float, ticker: Optional[str], chain: str) -> str:
        native = self.scopes[chain].native_symbol if chain in self.scopes else "ETH"
        if ticker:
            return f"*{escape_md(ticker)}* on {chain}"
        return f"*>= {threshold:g} {native}* on {chain}"

    async def _handle_start(self, scope: SubscriberScope, args: List[str]):
        if not args:
            await self.notifier.send(scope, USAGE)
            return
        try:
            request = parse_filter_args(args, self.scopes)
        except FilterArgumentError as e:
            await self.notifier.send(scope, f"⚠️ {e}\n\n{USAGE}")
            return

        count = self.registry.add_filter(scope, request.threshold, request.ticker, request.chain)
        await self.notifier.send(
            scope,
            f"✅ Alerts activated for {self._describe(request.threshold, request.ticker, request.chain)} "
            f"({count} active)"
        )

    async def _handle_stop(self, scope: SubscriberScope, args: List[str]):
        try:
            request = parse_filter_args(args, self.scopes)
        except FilterArgumentError as e:
            await self.notifier.send(scope, f"⚠️ {e}\n\n{USAGE}")
            return

        label = self._describe(request.threshold, request.ticker, request.chain)
        if self.registry.remove_filter(scope, request.threshold, request.ticker, request.chain):
            await self.notifier.send(scope, f"🛑 Unsubscribed from {label}")
        else:
            await self.notifier.send(scope, f"⚠️ No filter for {label} found.")

    async def _handle_list(self, scope: SubscriberScope):
        filters = self.registry.list(scope)
        if not filters:
            await self.notifier.send(scope, "🚫 No active filters.")
            return

        lines = [f"• {self._describe(s.eth_threshold, s.ticker, s.chain)}" for s in filters]
        await self.notifier.send(scope, "🎯 Active filters:\n" + "\n".join(lines))
