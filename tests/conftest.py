"""
Pytest fixtures for the deposit forwarder. The ledger is an in-memory fake
scripted per chain, so no RPC endpoint is needed.
"""

from typing import Dict, List, Optional

import pytest

from deposit_forwarder.chain_registry import ChainConfig, ChainRegistry
from deposit_forwarder.checkpoint_store import CheckpointStore
from deposit_forwarder.detector import TransferDetector
from deposit_forwarder.forwarder import ForwardExecutor
from deposit_forwarder.ledger_client import LedgerClient, RawTransferLog, TransactionReceipt
from deposit_forwarder.reporter import ForwardReporter
from deposit_forwarder.settings import MonitorSettings
from deposit_forwarder.watcher import ChainWatcher

ACCOUNT = "0x5B38Da6a701c568545dCfcdB03FcB875f56beddC"
SENDER_A = "0xAb8483F64d9C6d1EcF9b849Ae677dD3315835cb2"
SENDER_B = "0x4B20993Bc481177ec7E8f571ceCaE8A9e22C02db"
OTHER = "0x78731D3Ca6b7E34aC0F824c42a7cC18A495cabaB"


class FakeLedgerClient(LedgerClient):
    """
    Scripted LedgerClient

    - heights[chain]: current block height (default 0)
    - logs[chain]: RawTransferLog list served by query_transfer_logs
    - failures[(method, chain)]: exceptions raised, one per call, before succeeding
    - submit_script[chain]: tx ids or exceptions returned by successive submits
    - receipts[tx_id]: receipt or exception for await_receipt (default: success)
    """

    def __init__(self, server_side_filter: bool = True):
        self.server_side_filter = server_side_filter
        self.heights: Dict[str, int] = {}
        self.logs: Dict[str, List[RawTransferLog]] = {}
        self.balances: Dict[str, int] = {}
        self.failures: Dict[tuple, List[Exception]] = {}
        self.submit_script: Dict[str, list] = {}
        self.receipts: Dict[str, object] = {}
        self.calls: List[tuple] = []
        self.closed = False
        self._tx_counter = 0

    def fail(self, method: str, chain_id: str, *errors: Exception):
        self.failures.setdefault((method, chain_id), []).extend(errors)

    def _maybe_fail(self, method: str, chain_id: str):
        queue = self.failures.get((method, chain_id))
        if queue:
            raise queue.pop(0)

    def calls_to(self, method: str, chain_id: Optional[str] = None) -> List[tuple]:
        return [c for c in self.calls if c[0] == method and (chain_id is None or c[1] == chain_id)]

    async def current_height(self, chain_id):
        self.calls.append(('current_height', chain_id))
        self._maybe_fail('current_height', chain_id)
        return self.heights.get(chain_id, 0)

    async def query_transfer_logs(self, chain_id, asset_address, destination_address, from_height, to_height):
        self.calls.append(('query_transfer_logs', chain_id, from_height, to_height))
        self._maybe_fail('query_transfer_logs', chain_id)
        return [
            log for log in self.logs.get(chain_id, [])
            if from_height <= log.block_height <= to_height
            and (not self.server_side_filter or log.recipient == destination_address)
        ]

    async def submit_forward_transaction(self, chain_id, account_address):
        self.calls.append(('submit_forward_transaction', chain_id, account_address))
        self._maybe_fail('submit_forward_transaction', chain_id)
        script = self.submit_script.get(chain_id)
        if script:
            result = script.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        self._tx_counter += 1
        return f"0xforward{self._tx_counter}"

    async def await_receipt(self, chain_id, tx_id):
        self.calls.append(('await_receipt', chain_id, tx_id))
        result = self.receipts.get(tx_id)
        if isinstance(result, Exception):
            raise result
        if result is None:
            return TransactionReceipt(tx_id=tx_id, success=True, block_height=self.heights.get(chain_id, 0) + 1,
                                      resource_cost=52000)
        return result

    async def read_balance(self, chain_id, account_address, asset_address):
        self.calls.append(('read_balance', chain_id))
        self._maybe_fail('read_balance', chain_id)
        return self.balances.get(chain_id, 0)

    async def close(self):
        self.closed = True


def make_log(block_height: int, amount: int = 2_500_000, sender: str = SENDER_A,
             recipient: str = ACCOUNT, log_index: int = 0) -> RawTransferLog:
    return RawTransferLog(
        sender=sender,
        recipient=recipient,
        amount=amount,
        tx_id=f"0xdeposit{block_height}{log_index}",
        block_height=block_height,
        log_index=log_index,
    )


@pytest.fixture
def registry():
    return ChainRegistry([
        ChainConfig(
            chain_id='alpha',
            name='Alpha Testnet',
            rpc_url='http://alpha.invalid',
            asset_address='0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238',
            explorer_url='https://alpha.explorer',
        ),
        ChainConfig(
            chain_id='beta',
            name='Beta Testnet',
            rpc_url='http://beta.invalid',
            asset_address='0x036CbD53842c5426634e7929541eC2318f3dCF7e',
            explorer_url='https://beta.explorer',
        ),
    ])


@pytest.fixture
def client():
    return FakeLedgerClient()


@pytest.fixture
def settings():
    return MonitorSettings(poll_interval=0, backoff_interval=0, receipt_timeout=1, shutdown_timeout=1)


@pytest.fixture
def store():
    return CheckpointStore()


@pytest.fixture
def reporter(registry):
    return ForwardReporter(registry)


@pytest.fixture
def make_watcher(registry, client, store, reporter, settings):
    def _make(chain_id: str = 'alpha', executor: Optional[ForwardExecutor] = None) -> ChainWatcher:
        return ChainWatcher(
            chain=registry.get(chain_id),
            store=store,
            detector=TransferDetector(client, registry, ACCOUNT),
            executor=executor or ForwardExecutor(client, registry, ACCOUNT),
            reporter=reporter,
            settings=settings,
        )
    return _make
