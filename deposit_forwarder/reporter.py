"""
Forward Reporter

Operator-facing record of what each watcher detected and forwarded. Failures
are reported here instead of being raised, so one bad chain or one bad
forward never stops the monitor.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from loguru import logger

from .chain_registry import ChainRegistry
from .detector import TransferEvent
from .errors import DetectionFailure
from .forwarder import Confirmed, ForwardOutcome, Rejected, RejectionKind, TransientFailure
from .status_report import format_amount


@dataclass
class ChainStats:
    """Running counters for one chain"""
    transfers_detected: int = 0
    forwards_confirmed: int = 0
    forwards_rejected: int = 0
    forwards_transient: int = 0
    detection_failures: int = 0
    last_outcome: Optional[ForwardOutcome] = None
    last_error: Optional[str] = None
    last_activity: Optional[datetime] = None


class ForwardReporter:
    """
    Collect and log forward outcomes per chain

    All callers run on the same event loop, so the counters need no lock.
    """

    def __init__(self, registry: ChainRegistry):
        self.registry = registry
        self._stats: Dict[str, ChainStats] = {chain_id: ChainStats() for chain_id in registry.chain_ids}

    def stats(self, chain_id: str) -> ChainStats:
        return self._stats.setdefault(chain_id, ChainStats())

    def transfer_detected(self, event: TransferEvent):
        chain = self.registry.get(event.chain_id)
        stats = self.stats(event.chain_id)
        stats.transfers_detected += 1
        stats.last_activity = datetime.now(timezone.utc)

        amount = format_amount(event.amount, chain.asset_decimals)
        logger.info(f"📥 Transfer: {amount} {chain.asset_symbol} from {event.sender} (block {event.block_height})")
        logger.info(f"   🔗 TX: {chain.tx_url(event.tx_id)}")

    def forward_outcome(self, event: TransferEvent, outcome: ForwardOutcome):
        """Record a ForwardOutcome and log the matching operator message"""
        chain = self.registry.get(event.chain_id)
        stats = self.stats(event.chain_id)
        stats.last_outcome = outcome
        stats.last_activity = datetime.now(timezone.utc)

        if isinstance(outcome, Confirmed):
            stats.forwards_confirmed += 1
            logger.success(f"✅ Tokens forwarded on {chain.name}")
            logger.info(f"   🔗 Forward TX: {chain.tx_url(outcome.tx_id)}")
            logger.info(f"   ⛽ Gas used: {outcome.resource_cost:,}")

        elif isinstance(outcome, Rejected):
            stats.forwards_rejected += 1
            stats.last_error = outcome.reason
            if outcome.kind is RejectionKind.NOTHING_TO_FORWARD:
                logger.info(f"💰 Nothing to forward on {chain.name}: balance already swept or zero")
            elif outcome.kind is RejectionKind.UNAUTHORIZED:
                logger.error(
                    f"🔒 Relayer not authorized on {chain.name}. "
                    f"Check relayer address in contract. ({outcome.reason})"
                )
            else:
                logger.error(f"❌ Forward rejected on {chain.name}: {outcome.reason}")

        elif isinstance(outcome, TransientFailure):
            stats.forwards_transient += 1
            stats.last_error = outcome.reason
            logger.warning(
                f"⚠️  Forward failed on {chain.name}: {outcome.reason} "
                f"(will retry on next incoming transfer)"
            )

    def detection_failed(self, error: DetectionFailure):
        stats = self.stats(error.chain_id)
        stats.detection_failures += 1
        stats.last_error = str(error)
        logger.error(f"❌ Error checking transfers: {error}")
