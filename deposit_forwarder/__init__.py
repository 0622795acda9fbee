"""
Unified Deposit Forwarder

Watches several EVM chains for asset transfers into one unified account and
sweeps every received amount onward with a relayer-signed forward call.

Components:
- chain_registry: Monitored chains (RPC, asset contract, explorer)
- checkpoint_store: Last scanned block per chain
- detector: Transfer detection for a block window
- forwarder: Forward transaction + confirmation, outcome classification
- watcher: Per-chain poll/backoff state machine
- supervisor: Runs all watchers concurrently, status snapshot
- ledger_client: web3.py access to the chains
- reporter / status_report: Operator-facing reporting

Loop per chain:
1. Read current block height
2. Detect transfers in [checkpoint + 1, height]
3. Forward each transfer in block order
4. Advance checkpoint to height
5. Sleep (poll interval, or backoff interval after a detection failure)
"""

from .chain_registry import (
    ChainConfig,
    ChainRegistry,
    load_registry,
)
from .checkpoint_store import (
    CheckpointStore,
    UNINITIALIZED,
)
from .detector import (
    TransferDetector,
    TransferEvent,
)
from .errors import (
    CheckpointRegression,
    ConfigurationFault,
    DetectionFailure,
    ForwardReverted,
    MonitorError,
)
from .forwarder import (
    Confirmed,
    ForwardExecutor,
    ForwardOutcome,
    Rejected,
    RejectionKind,
    TransientFailure,
)
from .ledger_client import (
    LedgerClient,
    RawTransferLog,
    TransactionReceipt,
    Web3LedgerClient,
)
from .reporter import ForwardReporter
from .settings import (
    Credentials,
    MonitorSettings,
    load_credentials,
    load_settings,
)
from .supervisor import (
    MonitorSupervisor,
    WatcherStatus,
    graceful_shutdown,
)
from .watcher import (
    ChainWatcher,
    WatcherState,
)

__all__ = [
    # Configuration
    'ChainConfig',
    'ChainRegistry',
    'load_registry',
    'MonitorSettings',
    'Credentials',
    'load_settings',
    'load_credentials',

    # Engine
    'CheckpointStore',
    'UNINITIALIZED',
    'TransferDetector',
    'TransferEvent',
    'ForwardExecutor',
    'ForwardOutcome',
    'Confirmed',
    'Rejected',
    'RejectionKind',
    'TransientFailure',
    'ChainWatcher',
    'WatcherState',
    'MonitorSupervisor',
    'WatcherStatus',
    'graceful_shutdown',
    'ForwardReporter',

    # Ledger access
    'LedgerClient',
    'RawTransferLog',
    'TransactionReceipt',
    'Web3LedgerClient',

    # Errors
    'MonitorError',
    'ConfigurationFault',
    'DetectionFailure',
    'ForwardReverted',
    'CheckpointRegression',
]

__version__ = '1.0.0'
