"""
Monitor Supervisor

Starts one ChainWatcher task per configured chain, stops them on request and
aggregates a per-chain status snapshot.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

from loguru import logger

from .chain_registry import ChainRegistry
from .checkpoint_store import CheckpointStore
from .detector import TransferDetector
from .forwarder import ForwardExecutor
from .ledger_client import LedgerClient
from .reporter import ForwardReporter
from .settings import MonitorSettings
from .watcher import ChainWatcher, WatcherState


@dataclass
class WatcherStatus:
    """Point-in-time status of one chain, recomputed on every status() call"""
    chain_id: str
    running: bool
    state: str
    last_checked: int
    current_height: Optional[int] = None
    balance: Optional[int] = None
    forwards_confirmed: int = 0
    forwards_rejected: int = 0
    forwards_transient: int = 0
    detection_failures: int = 0
    error: Optional[str] = None


class MonitorSupervisor:
    """
    Run all chain watchers concurrently

    Watchers share nothing mutable except the reporter; each one is the only
    writer of its own checkpoint entry.
    """

    def __init__(
        self,
        registry: ChainRegistry,
        client: LedgerClient,
        account_address: str,
        settings: Optional[MonitorSettings] = None,
        store: Optional[CheckpointStore] = None,
        reporter: Optional[ForwardReporter] = None
    ):
        self.registry = registry
        self.client = client
        self.account_address = account_address
        self.settings = settings or MonitorSettings()
        self.store = store or CheckpointStore()
        self.reporter = reporter or ForwardReporter(registry)

        detector = TransferDetector(client, registry, account_address)
        executor = ForwardExecutor(client, registry, account_address)
        self.watchers: Dict[str, ChainWatcher] = {
            chain.chain_id: ChainWatcher(chain, self.store, detector, executor, self.reporter, self.settings)
            for chain in registry
        }
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def tasks(self) -> List[asyncio.Task]:
        return list(self._tasks.values())

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    async def start(self):
        """
        Seed every checkpoint, then launch one task per chain

        Returns once all watchers are scheduled.

        Raises:
            ConfigurationFault: A chain's endpoint is unreachable; no watcher is started
        """
        if self._tasks:
            logger.warning("Monitor already started")
            return

        logger.info("Listening to transfer events")
        logger.info(f"📍 Monitoring Address: {self.account_address}")
        logger.info(f"Chains: {', '.join(self.registry.chain_ids)}")
        logger.info("=" * 60)

        for watcher in self.watchers.values():
            await watcher.initialize()

        for chain_id, watcher in self.watchers.items():
            task = asyncio.create_task(watcher.run(), name=f"watcher-{chain_id}")
            task.add_done_callback(self._on_watcher_done)
            self._tasks[chain_id] = task

    def _on_watcher_done(self, task: asyncio.Task):
        if task.cancelled():
            logger.warning(f"{task.get_name()} cancelled")
        elif task.exception() is not None:
            logger.opt(exception=task.exception()).error(f"{task.get_name()} crashed")

    def stop(self):
        """Signal every watcher to stop. Safe to call repeatedly."""
        if any(not watcher.stop_requested for watcher in self.watchers.values()):
            logger.info("🛑 Stopping monitoring service...")
        for watcher in self.watchers.values():
            watcher.stop()

    async def wait(self):
        """Wait until every watcher task has finished"""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def status(self) -> List[WatcherStatus]:
        """Query height and balance of every chain; a failing chain only marks its own entry"""
        return list(await asyncio.gather(*(self._chain_status(chain_id) for chain_id in self.registry.chain_ids)))

    async def _chain_status(self, chain_id: str) -> WatcherStatus:
        watcher = self.watchers[chain_id]
        stats = self.reporter.stats(chain_id)
        task = self._tasks.get(chain_id)

        status = WatcherStatus(
            chain_id=chain_id,
            running=task is not None and not task.done() and watcher.state is not WatcherState.STOPPED,
            state=watcher.state.value,
            last_checked=watcher.last_checked,
            forwards_confirmed=stats.forwards_confirmed,
            forwards_rejected=stats.forwards_rejected,
            forwards_transient=stats.forwards_transient,
            detection_failures=stats.detection_failures,
        )

        chain = self.registry.get(chain_id)
        errors = []
        try:
            status.balance = await self.client.read_balance(chain_id, self.account_address, chain.asset_address)
        except Exception as e:
            errors.append(str(e) or type(e).__name__)
        try:
            status.current_height = await self.client.current_height(chain_id)
        except Exception as e:
            errors.append(str(e) or type(e).__name__)

        if errors:
            status.error = '; '.join(errors)
            logger.warning(f"❌ {chain.name}: Error getting status: {status.error}")

        return status


async def graceful_shutdown(supervisor: MonitorSupervisor, timeout: float = 15.0):
    """
    Stop the supervisor and release ledger connections

    Watchers finish their in-flight iteration, including any forward still
    waiting for its receipt; they are never cancelled. `timeout` only paces
    the progress warnings and bounds closing the ledger client.
    """
    logger.info("Starting graceful shutdown...")
    supervisor.stop()

    pending = {task for task in supervisor.tasks if not task.done()}
    while pending:
        done, pending = await asyncio.wait(pending, timeout=timeout if timeout > 0 else None)
        if pending:
            names = ', '.join(sorted(task.get_name() for task in pending))
            logger.warning(f"Waiting for in-flight forwards to finish: {names}")

    try:
        await asyncio.wait_for(supervisor.client.close(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Ledger client close timeout")

    logger.info("✓ Graceful shutdown complete")
