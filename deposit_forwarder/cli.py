"""
Command line entry point

    python -m deposit_forwarder start  [monitor_config.yaml]
    python -m deposit_forwarder status [monitor_config.yaml]
"""

import asyncio
import signal
import sys
from typing import List, Optional

from loguru import logger

from .chain_registry import load_registry, read_config_file
from .errors import ConfigurationFault
from .ledger_client import build_ledger_client
from .settings import MonitorSettings, load_credentials, load_settings
from .status_report import format_status
from .supervisor import MonitorSupervisor, graceful_shutdown

DEFAULT_CONFIG_PATH = "monitor_config.yaml"

USAGE = "Usage: python -m deposit_forwarder [start|status] [config_path]"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[chain]: <16}</cyan> | <level>{message}</level>"
)


def setup_logging(settings: MonitorSettings):
    """stderr sink (plus optional rotating file) with the chain in every line"""
    logger.remove()
    logger.configure(extra={'chain': '-'})
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, format=LOG_FORMAT, rotation=settings.log_rotation)


def build_supervisor(config_path: str) -> MonitorSupervisor:
    """
    Load config and credentials and wire the supervisor

    Raises:
        ConfigurationFault: Anything required for startup is missing or invalid
    """
    config = read_config_file(config_path)
    settings = load_settings(config)
    setup_logging(settings)

    registry = load_registry(config=config)
    credentials = load_credentials()
    client = build_ledger_client(registry, credentials.relayer_key, settings.receipt_timeout)
    return MonitorSupervisor(registry, client, credentials.account_address, settings=settings)


async def run_monitor(supervisor: MonitorSupervisor):
    """Run until SIGINT/SIGTERM, then shut down gracefully"""
    loop = asyncio.get_running_loop()

    def on_signal():
        logger.info("🛑 Received shutdown signal...")
        supervisor.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal)
        except NotImplementedError:
            logger.debug(f"Signal handlers not supported here, {sig.name} ignored")

    try:
        await supervisor.start()
        await supervisor.wait()
    finally:
        await graceful_shutdown(supervisor, timeout=supervisor.settings.shutdown_timeout)


async def print_status(supervisor: MonitorSupervisor):
    try:
        statuses = await supervisor.status()
        print(format_status(statuses, supervisor.registry))
    finally:
        await supervisor.client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    command = args[0] if args else 'start'
    config_path = args[1] if len(args) > 1 else DEFAULT_CONFIG_PATH

    if command not in ('start', 'status'):
        print(USAGE)
        return 2

    try:
        supervisor = build_supervisor(config_path)
        if command == 'start':
            asyncio.run(run_monitor(supervisor))
        else:
            asyncio.run(print_status(supervisor))
    except ConfigurationFault as e:
        logger.error(f"✗ Configuration error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
