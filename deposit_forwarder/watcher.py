"""
Chain Watcher

Per-chain polling loop:

    INITIALIZING -> RUNNING -> (BACKOFF -> RUNNING ...) -> STOPPED

One iteration reads the chain height, detects transfers in the window
[checkpoint + 1, height], forwards each one in block order and then moves the
checkpoint to `height`. A detection failure leaves the checkpoint where it is
and sleeps the longer backoff interval, so the same window is scanned again.
"""

import asyncio
from enum import Enum

from loguru import logger

from .chain_registry import ChainConfig
from .checkpoint_store import CheckpointStore
from .detector import TransferDetector
from .errors import ConfigurationFault, DetectionFailure
from .forwarder import ForwardExecutor
from .reporter import ForwardReporter
from .settings import MonitorSettings


class WatcherState(Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class ChainWatcher:
    """Owns one chain's checkpoint and loop"""

    def __init__(
        self,
        chain: ChainConfig,
        store: CheckpointStore,
        detector: TransferDetector,
        executor: ForwardExecutor,
        reporter: ForwardReporter,
        settings: MonitorSettings
    ):
        self.chain = chain
        self.chain_id = chain.chain_id
        self.store = store
        self.detector = detector
        self.executor = executor
        self.reporter = reporter
        self.settings = settings

        self.state = WatcherState.INITIALIZING
        self._stop_event = asyncio.Event()

    @property
    def last_checked(self) -> int:
        return self.store.get(self.chain_id)

    @property
    def is_running(self) -> bool:
        return self.state in (WatcherState.RUNNING, WatcherState.BACKOFF)

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    async def initialize(self):
        """
        Seed the checkpoint with the chain's current height

        Raises:
            ConfigurationFault: The configured endpoint cannot be reached
        """
        if self.store.is_initialized(self.chain_id):
            logger.debug(f"{self.chain.name}: checkpoint already seeded at {self.last_checked}")
        else:
            try:
                height = await self.detector.current_height(self.chain_id)
            except DetectionFailure as e:
                raise ConfigurationFault(f"Cannot reach {self.chain.name} at {self.chain.rpc_url}: {e}") from e
            self.store.set(self.chain_id, height)
            logger.info(f"📊 {self.chain.name}: Starting from block {height}")

        self.state = WatcherState.RUNNING

    def stop(self):
        """Request a stop; observed before the next detect/forward cycle"""
        self._stop_event.set()

    async def run(self):
        """Loop until stop() is called"""
        with logger.contextualize(chain=self.chain_id):
            if self.state is WatcherState.INITIALIZING:
                await self.initialize()

            logger.info(f"🔄 Starting monitoring for {self.chain.name}...")
            try:
                while not self._stop_event.is_set():
                    delay = await self.run_iteration()
                    await self._sleep(delay)
            finally:
                self.state = WatcherState.STOPPED
                logger.info(f"🛑 {self.chain.name}: monitoring stopped at block {self.last_checked}")

    async def run_iteration(self) -> float:
        """
        Run a single scan cycle

        Returns:
            Seconds to sleep before the next cycle (poll or backoff interval)
        """
        checkpoint = self.store.get(self.chain_id)

        try:
            height = await self.detector.current_height(self.chain_id)
            if height <= checkpoint:
                self.state = WatcherState.RUNNING
                return self.settings.poll_interval
            events = await self.detector.detect(self.chain_id, checkpoint, height)
        except DetectionFailure as e:
            self.state = WatcherState.BACKOFF
            self.reporter.detection_failed(e)
            return self.settings.backoff_interval

        self.state = WatcherState.RUNNING
        if events:
            logger.info(f"💰 Found {len(events)} transfer(s) to unified address on {self.chain.name}")

        for event in events:
            if self._stop_event.is_set():
                # Window not fully handed over, leave it for the next run
                logger.info(f"{self.chain.name}: stop requested, checkpoint kept at {checkpoint}")
                return 0
            self.reporter.transfer_detected(event)
            outcome = await self.executor.forward(self.chain_id, event)
            self.reporter.forward_outcome(event, outcome)

        self.store.set(self.chain_id, height)
        return self.settings.poll_interval

    async def _sleep(self, delay: float):
        """Sleep `delay` seconds, waking early on stop()"""
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
