"""
Checkpoint Store

Last fully-scanned block height per chain. Each entry is written only by the
watcher that owns that chain, so no locking is needed.
"""

from typing import Dict, Optional

from loguru import logger

from .errors import CheckpointRegression

# Returned by get() before a chain has been seeded
UNINITIALIZED = -1

MAX_HEIGHT = 2 ** 64 - 1


class CheckpointStore:
    """In-memory checkpoint map, valid for the process lifetime"""

    def __init__(self, initial: Optional[Dict[str, int]] = None):
        self._heights: Dict[str, int] = {}
        for chain_id, height in (initial or {}).items():
            self.set(chain_id, height)

    def get(self, chain_id: str) -> int:
        """Last scanned height, or UNINITIALIZED"""
        return self._heights.get(chain_id, UNINITIALIZED)

    def is_initialized(self, chain_id: str) -> bool:
        return chain_id in self._heights

    def set(self, chain_id: str, height: int):
        """
        Advance a chain's checkpoint

        Args:
            chain_id: Chain identity
            height: New last-scanned height, must not be below the stored one

        Raises:
            ValueError: Height outside the unsigned 64-bit range
            CheckpointRegression: Height below the stored checkpoint
        """
        if not isinstance(height, int) or isinstance(height, bool) or not 0 <= height <= MAX_HEIGHT:
            raise ValueError(f"Invalid block height for {chain_id}: {height!r}")

        stored = self.get(chain_id)
        if height < stored:
            raise CheckpointRegression(chain_id, stored, height)

        if height != stored:
            self._heights[chain_id] = height
            logger.trace(f"Checkpoint {chain_id}: {stored} -> {height}")

    def snapshot(self) -> Dict[str, int]:
        """Copy of all seeded checkpoints"""
        return dict(self._heights)
