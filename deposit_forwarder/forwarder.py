"""
Forward Executor

Submits one forwarding transaction per detected transfer and waits for it to
be mined. Every result is returned as a ForwardOutcome; nothing is retried
here. A transfer left behind is picked up when a later transfer triggers the
next sweep.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from loguru import logger

from .chain_registry import ChainRegistry
from .detector import TransferEvent
from .errors import ForwardReverted
from .ledger_client import LedgerClient


class RejectionKind(Enum):
    UNAUTHORIZED = "unauthorized"
    NOTHING_TO_FORWARD = "nothing_to_forward"
    REVERTED = "reverted"


@dataclass(frozen=True)
class Confirmed:
    tx_id: str
    block_height: int
    resource_cost: int


@dataclass(frozen=True)
class Rejected:
    kind: RejectionKind
    reason: str
    tx_id: Optional[str] = None


@dataclass(frozen=True)
class TransientFailure:
    reason: str
    tx_id: Optional[str] = None


ForwardOutcome = Union[Confirmed, Rejected, TransientFailure]

# Substrings of contract errors that signal a terminal condition
REJECTION_MARKERS = {
    'UnauthorizedRelayer': RejectionKind.UNAUTHORIZED,
    'InvalidAmount': RejectionKind.NOTHING_TO_FORWARD,
}


def classify_revert(message: str) -> RejectionKind:
    for marker, kind in REJECTION_MARKERS.items():
        if marker in message:
            return kind
    return RejectionKind.REVERTED


class ForwardExecutor:
    """Sweep the unified account's balance after an incoming transfer"""

    def __init__(self, client: LedgerClient, registry: ChainRegistry, account_address: str):
        self.client = client
        self.registry = registry
        self.account_address = account_address

    async def forward(self, chain_id: str, event: TransferEvent) -> ForwardOutcome:
        """
        Submit exactly one forward transaction and wait for its receipt

        Args:
            chain_id: Chain identity
            event: The transfer that triggered the forward

        Returns:
            Confirmed, Rejected (terminal) or TransientFailure (RPC error)
        """
        chain = self.registry.get(chain_id)
        logger.info(f"🚀 Initiating forward on {chain.name} (trigger {event.tx_id})")

        try:
            tx_id = await self.client.submit_forward_transaction(chain_id, self.account_address)
        except ForwardReverted as e:
            return Rejected(kind=classify_revert(e.reason), reason=e.reason)
        except Exception as e:
            return TransientFailure(reason=f"submit failed: {e}")

        logger.info(f"⏳ Forward transaction sent: {tx_id}")

        try:
            receipt = await self.client.await_receipt(chain_id, tx_id)
        except Exception as e:
            return TransientFailure(reason=f"receipt not obtained: {e}", tx_id=tx_id)

        if receipt.success:
            return Confirmed(
                tx_id=tx_id,
                block_height=receipt.block_height,
                resource_cost=receipt.resource_cost,
            )
        return Rejected(
            kind=RejectionKind.REVERTED,
            reason=f"transaction failed in block {receipt.block_height}",
            tx_id=tx_id,
        )
