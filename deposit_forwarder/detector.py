"""
Transfer Detector

Finds asset transfers addressed to the unified account in a block window.
"""

from dataclasses import dataclass
from typing import List

from loguru import logger

from .chain_registry import ChainRegistry
from .errors import DetectionFailure
from .ledger_client import LedgerClient


@dataclass(frozen=True)
class TransferEvent:
    """Incoming transfer to the unified account"""
    chain_id: str
    sender: str
    recipient: str
    amount: int           # smallest asset unit
    tx_id: str
    block_height: int
    log_index: int = 0


class TransferDetector:
    """
    Query transfer logs for the unified account

    The detection window for a scan from checkpoint `c` to current height `h`
    is the inclusive range [c + 1, h]. Any ledger error is raised as
    DetectionFailure so the caller can back off and retry the same window.
    """

    def __init__(self, client: LedgerClient, registry: ChainRegistry, account_address: str):
        self.client = client
        self.registry = registry
        self.account_address = account_address

    async def current_height(self, chain_id: str) -> int:
        try:
            return await self.client.current_height(chain_id)
        except Exception as e:
            raise DetectionFailure(chain_id, f"cannot read current height: {e}") from e

    async def detect(self, chain_id: str, from_height: int, to_height: int) -> List[TransferEvent]:
        """
        Transfers to the unified account in blocks (from_height, to_height]

        Args:
            chain_id: Chain identity
            from_height: Last scanned height (checkpoint), exclusive
            to_height: Current chain height, inclusive

        Returns:
            TransferEvents ordered by block height then log index. Empty,
            without any network call, when to_height == from_height.

        Raises:
            ValueError: from_height > to_height
            DetectionFailure: The ledger query failed
        """
        if from_height > to_height:
            raise ValueError(f"Invalid scan range for {chain_id}: {from_height} > {to_height}")
        if to_height == from_height:
            return []

        chain = self.registry.get(chain_id)
        first, last = from_height + 1, to_height

        try:
            logs = await self.client.query_transfer_logs(
                chain_id, chain.asset_address, self.account_address, first, last
            )
        except Exception as e:
            raise DetectionFailure(chain_id, f"transfer log query failed: {e}", first, last) from e

        events = []
        for log in logs:
            # Exact match only: addresses are already canonical
            if log.recipient != self.account_address:
                logger.debug(f"{chain_id}: ignoring transfer to {log.recipient} in {log.tx_id}")
                continue
            if not first <= log.block_height <= last:
                logger.warning(
                    f"{chain_id}: log {log.tx_id} at block {log.block_height} outside window {first}-{last}"
                )
                continue
            events.append(TransferEvent(
                chain_id=chain_id,
                sender=log.sender,
                recipient=log.recipient,
                amount=log.amount,
                tx_id=log.tx_id,
                block_height=log.block_height,
                log_index=log.log_index,
            ))

        events.sort(key=lambda event: (event.block_height, event.log_index))
        return events
