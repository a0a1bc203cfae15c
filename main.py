import argparse
import asyncio
import json
import logging
import os
import signal
import sys

from Config.config_manager import CentralConfig as Config
from Config.constants_core import SHARED_LOGGER
from Config.exceptions import ConfigError
from Shared_Utils.logging_manager import LoggerManager
from Shared_Utils.runtime_env import running_in_docker
from Shared_Utils.scope_lock import ScopeLockRegistry

from api_server.server import CostBasisApiServer
from cost_basis_engine import CostBasisError, CostBasisEventService, CostBasisMatcher, ReconciliationValidator
from database_manager.database_session_manager import DatabaseSessionManager
from database_manager.event_providers import ChainTransferProvider, ExchangeTradeProvider
from database_manager.link_repository import CostBasisLinkRepository

shutdown_event = asyncio.Event()


def load_config():
    return Config(is_docker=running_in_docker())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FIFO cost basis ledger for chain transfers and exchange trades.")
    parser.add_argument(
        '--verbose',
        action='store_true',
        help="Enable detailed DEBUG logs to console"
    )
    sub = parser.add_subparsers(dest='command', required=True)

    sync = sub.add_parser('sync', help="Link unlinked disposals to acquisitions (FIFO)")
    sync.add_argument('--accounts', nargs='+', help="Addresses / exchange accounts (default: COST_BASIS_ACCOUNTS)")

    sub.add_parser('validate', help="Check persisted links for conservation")

    adjust = sub.add_parser('adjust', help="Set the signed raw-unit value adjustment of a chain transfer")
    adjust.add_argument('--chain-transfer-id', type=int, required=True)
    adjust.add_argument('--adjustment', required=True, help="Signed integer in raw token units")

    serve = sub.add_parser('serve', help="Run the HTTP API")
    serve.add_argument('--host', default=None)
    serve.add_argument('--port', type=int, default=None)
    return parser


class Components:
    """Everything one process needs, wired once."""

    def __init__(self, config, logger_manager):
        self.logger_manager = logger_manager
        shared_logger = logger_manager.get_logger(SHARED_LOGGER)
        self.db = DatabaseSessionManager(config.database_url, logger=shared_logger)
        self.chain_provider = ChainTransferProvider(self.db)
        self.exchange_provider = ExchangeTradeProvider(self.db)
        self.event_service = CostBasisEventService(self.chain_provider, self.exchange_provider)
        self.link_repository = CostBasisLinkRepository(self.db)
        self.matcher = CostBasisMatcher(
            self.event_service, self.link_repository, logger_manager, scope_locks=ScopeLockRegistry()
        )
        self.validator = ReconciliationValidator(self.link_repository, logger_manager)


async def run_sync(config, components, accounts) -> int:
    scope = config.require_accounts(accounts)
    try:
        result = await components.matcher.run(scope)
    except CostBasisError as e:
        print(json.dumps({"success": False, "error": str(e), "kind": type(e).__name__}, indent=2))
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def run_validate(components) -> int:
    result = await components.validator.validate()
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.is_valid else 1


async def run_adjust(components, chain_transfer_id: int, adjustment: str, logger) -> int:
    try:
        transfer = await components.chain_provider.adjust_value(chain_transfer_id, adjustment)
    except (LookupError, ValueError, TypeError) as e:
        logger.error(f"❌ {e}")
        return 1
    logger.info(f"✅ Chain transfer {transfer.id} value_adjustment set to {transfer.value_adjustment}")
    return 0


async def run_server(config, components, host, port, logger) -> int:
    server = CostBasisApiServer(components.matcher, components.validator, config, components.logger_manager)
    await server.start(host or config.api_host, port or config.api_port)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        await shutdown_event.wait()
    finally:
        logger.info("🛑 Shutting down cost basis API")
        await server.stop()
    return 0


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config()
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 2

    log_config = {
        "log_level": logging.DEBUG if args.verbose else config.log_level_num,
        "retention_days": config.log_retention_days,
    }
    logger_manager = LoggerManager(log_config, log_dir=config.log_dir)
    shared_logger = logger_manager.get_logger(SHARED_LOGGER)

    components = Components(config, logger_manager)

    try:
        await components.db.initialize()
        if args.command == 'sync':
            return await run_sync(config, components, args.accounts)
        if args.command == 'validate':
            return await run_validate(components)
        if args.command == 'adjust':
            return await run_adjust(components, args.chain_transfer_id, args.adjustment, shared_logger)
        if args.command == 'serve':
            return await run_server(config, components, args.host, args.port, shared_logger)
        return 2
    except ConfigError as e:
        shared_logger.error(f"❌ Configuration error: {e}")
        return 2
    finally:
        await components.db.disconnect()
        logger_manager.close()


def cli():
    os.environ["PYTHONASYNCIODEBUG"] = "0"
    logger = logging.getLogger("asyncio")
    logger.setLevel(logging.ERROR)
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
