import argparse
import asyncio
import logging
from colorama import init, Fore

from config import (
    TELEGRAM_BOT_TOKEN, TELEGRAM_POLL_INTERVAL,
    ETHERSCAN_API_URL, ETHERSCAN_API_KEY, VERIFY_MAX_ATTEMPTS, VERIFY_RETRY_DELAY_SECONDS,
    RPC_TIMEOUT_SECONDS, BLOCK_POLL_INTERVAL, MAX_CATCHUP_BLOCKS, HEALTH_PORT, LOG_LEVEL,
    load_chain_configs, build_chain_scopes, load_patterns,
)
from deduplicator import SeenContracts
from explorer_client import ExplorerClient
from health_server import HealthServer
from multi_scanner import MultiChainScanner
from pattern_scanner import PatternScanner
from subscriptions import SubscriptionRegistry
from telegram_commands import TelegramCommandHandler
from telegram_notifier import TelegramNotifier

init(autoreset=True)
logger = logging.getLogger("main")


async def main():
    parser = argparse.ArgumentParser(description="New token contract watcher with Telegram filters")
    parser.add_argument("--chains", nargs='+', default=None,
                        help="Chains to scan (default: every chain enabled in chains.yaml)")
    parser.add_argument("--no-health", action="store_true", help="Do not start the health-check server")
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Logging level (default: %(default)s)")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    scopes = build_chain_scopes(load_chain_configs(), only=args.chains)
    if not scopes:
        print(f"{Fore.YELLOW}No chains enabled in chains.yaml! Please enable at least one chain.")
        return

    print(f"{Fore.GREEN}🚀 Token Launch Watcher")
    print(f"{Fore.CYAN}📡 Target Chains: {', '.join(c.upper() for c in scopes)}\n")

    patterns = load_patterns()
    pattern_scanner = PatternScanner(patterns)
    logger.info(f"Loaded {len(pattern_scanner)} risk patterns")

    seen = SeenContracts()
    registry = SubscriptionRegistry()
    notifier = TelegramNotifier(TELEGRAM_BOT_TOKEN)
    explorer = ExplorerClient(
        ETHERSCAN_API_URL, ETHERSCAN_API_KEY,
        max_attempts=VERIFY_MAX_ATTEMPTS, retry_delay=VERIFY_RETRY_DELAY_SECONDS,
    )

    scanner = MultiChainScanner(
        scopes, seen, registry, notifier, explorer, pattern_scanner,
        rpc_timeout=RPC_TIMEOUT_SECONDS, poll_interval=BLOCK_POLL_INTERVAL,
        max_catchup_blocks=MAX_CATCHUP_BLOCKS,
    )
    if not scanner.adapters:
        print(f"{Fore.RED}❌ No chains connected! Check configuration and RPC endpoints.")
        await explorer.close()
        return

    await notifier.start()

    commands = TelegramCommandHandler(TELEGRAM_BOT_TOKEN, registry, notifier, scopes,
                                      poll_interval=TELEGRAM_POLL_INTERVAL)
    command_task = asyncio.create_task(commands.start_polling(), name="telegram-commands")

    health = None
    if not args.no_health:
        health = HealthServer(seen, registry, scanner.adapters.keys(), port=HEALTH_PORT)
        await health.start()

    scanner.start()
    print(f"{Fore.GREEN}✅ Monitoring {', '.join(c.upper() for c in scanner.adapters)}")

    try:
        await asyncio.Event().wait()
    finally:
        logger.info("🛑 Shutting down...")
        command_task.cancel()
        await asyncio.gather(command_task, return_exceptions=True)
        await scanner.stop()
        if health:
            await health.stop()
        await explorer.close()
        await notifier.shutdown()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print(f"{Fore.YELLOW}❌ Bot stopped by user.")


if __name__ == "__main__":
    run()
