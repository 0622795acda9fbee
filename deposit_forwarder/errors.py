"""
Monitor Errors

Failure taxonomy shared by the watcher, detector and forward executor.
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for all deposit forwarder errors"""


class ConfigurationFault(MonitorError):
    """Missing/malformed credentials or config, or unreachable endpoint at startup"""


class DetectionFailure(MonitorError):
    """RPC failure while scanning a chain. The checkpoint is left untouched."""

    def __init__(
        self,
        chain_id: str,
        message: str,
        from_height: Optional[int] = None,
        to_height: Optional[int] = None
    ):
        self.chain_id = chain_id
        self.from_height = from_height
        self.to_height = to_height
        if from_height is not None and to_height is not None:
            message = f"{message} (blocks {from_height}-{to_height})"
        super().__init__(f"{chain_id}: {message}")


class ForwardReverted(MonitorError):
    """The forwarding call was rejected by contract logic before a receipt existed"""

    def __init__(self, message: str):
        self.reason = message
        super().__init__(message)


class CheckpointRegression(MonitorError, ValueError):
    """Attempt to move a checkpoint backwards (programming error)"""

    def __init__(self, chain_id: str, stored: int, requested: int):
        self.chain_id = chain_id
        self.stored = stored
        self.requested = requested
        super().__init__(
            f"Checkpoint for {chain_id} cannot move from {stored} back to {requested}"
        )
