"""
Tests for the per-chain watcher loop: idle cycles, checkpoint advancement,
backoff on detection failure and stop handling.
"""

import asyncio

import pytest

from conftest import ACCOUNT, SENDER_A, SENDER_B, make_log
from deposit_forwarder.detector import TransferDetector
from deposit_forwarder.errors import ConfigurationFault, ForwardReverted
from deposit_forwarder.forwarder import Confirmed, ForwardExecutor, Rejected, RejectionKind
from deposit_forwarder.settings import MonitorSettings
from deposit_forwarder.watcher import ChainWatcher, WatcherState


class RecordingExecutor(ForwardExecutor):
    """ForwardExecutor that remembers the order of the events it was given"""

    def __init__(self, *args, on_forward=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.forwarded = []
        self.outcomes = []
        self.on_forward = on_forward

    async def forward(self, chain_id, event):
        self.forwarded.append(event)
        if self.on_forward:
            self.on_forward(event)
        outcome = await super().forward(chain_id, event)
        self.outcomes.append(outcome)
        return outcome


@pytest.mark.asyncio
async def test_initialize_seeds_checkpoint_with_current_height(make_watcher, client, store):
    client.heights['alpha'] = 100
    watcher = make_watcher()

    await watcher.initialize()

    assert store.get('alpha') == 100
    assert watcher.state is WatcherState.RUNNING


@pytest.mark.asyncio
async def test_initialize_unreachable_endpoint(make_watcher, client, store):
    client.fail('current_height', 'alpha', ConnectionError("refused"))
    watcher = make_watcher()

    with pytest.raises(ConfigurationFault):
        await watcher.initialize()
    assert not store.is_initialized('alpha')


@pytest.mark.asyncio
async def test_idle_iteration_makes_no_detection_or_forward(make_watcher, client, store, settings):
    client.heights['alpha'] = 100
    store.set('alpha', 100)
    watcher = make_watcher()

    delay = await watcher.run_iteration()

    assert delay == settings.poll_interval
    assert client.calls_to('query_transfer_logs') == []
    assert client.calls_to('submit_forward_transaction') == []
    assert store.get('alpha') == 100


@pytest.mark.asyncio
async def test_new_blocks_with_one_transfer(registry, make_watcher, client, store, reporter):
    store.set('alpha', 100)
    client.heights['alpha'] = 105
    client.logs['alpha'] = [make_log(103, amount=2_500_000, sender=SENDER_A)]
    executor = RecordingExecutor(client, registry, ACCOUNT)
    watcher = make_watcher(executor=executor)

    await watcher.run_iteration()

    assert client.calls_to('query_transfer_logs') == [('query_transfer_logs', 'alpha', 101, 105)]
    assert [(e.sender, e.amount) for e in executor.forwarded] == [(SENDER_A, 2_500_000)]
    assert isinstance(executor.outcomes[0], Confirmed)
    assert store.get('alpha') == 105
    assert reporter.stats('alpha').forwards_confirmed == 1
    assert reporter.stats('alpha').transfers_detected == 1


@pytest.mark.asyncio
async def test_detection_failure_retries_the_same_window(make_watcher, client, store, reporter, settings):
    store.set('alpha', 100)
    client.heights['alpha'] = 105
    client.fail('query_transfer_logs', 'alpha', ConnectionError("503 Service Unavailable"))
    watcher = make_watcher()

    delay = await watcher.run_iteration()

    assert delay == settings.backoff_interval
    assert watcher.state is WatcherState.BACKOFF
    assert store.get('alpha') == 100
    assert reporter.stats('alpha').detection_failures == 1

    await watcher.run_iteration()

    assert client.calls_to('query_transfer_logs') == [
        ('query_transfer_logs', 'alpha', 101, 105),
        ('query_transfer_logs', 'alpha', 101, 105),
    ]
    assert watcher.state is WatcherState.RUNNING
    assert store.get('alpha') == 105


@pytest.mark.asyncio
async def test_height_read_failure_backs_off(make_watcher, client, store, settings):
    store.set('alpha', 100)
    client.fail('current_height', 'alpha', TimeoutError("timeout"))
    watcher = make_watcher()

    assert await watcher.run_iteration() == settings.backoff_interval
    assert watcher.state is WatcherState.BACKOFF
    assert store.get('alpha') == 100


@pytest.mark.asyncio
async def test_two_transfers_two_forwards_second_rejected(registry, make_watcher, client, store, reporter):
    store.set('alpha', 100)
    client.heights['alpha'] = 110
    client.logs['alpha'] = [make_log(104, sender=SENDER_A), make_log(107, sender=SENDER_B)]
    client.submit_script['alpha'] = ['0xsweep', ForwardReverted("InvalidAmount: execution reverted")]
    executor = RecordingExecutor(client, registry, ACCOUNT)
    watcher = make_watcher(executor=executor)

    await watcher.run_iteration()

    assert len(client.calls_to('submit_forward_transaction')) == 2
    assert isinstance(executor.outcomes[0], Confirmed)
    assert executor.outcomes[1] == Rejected(RejectionKind.NOTHING_TO_FORWARD, "InvalidAmount: execution reverted")
    assert store.get('alpha') == 110
    assert reporter.stats('alpha').forwards_rejected == 1


@pytest.mark.asyncio
async def test_zero_balance_rejection_still_advances(make_watcher, client, store, reporter):
    store.set('alpha', 100)
    client.heights['alpha'] = 101
    client.logs['alpha'] = [make_log(101)]
    client.submit_script['alpha'] = [ForwardReverted("InvalidAmount")]
    watcher = make_watcher()

    await watcher.run_iteration()

    assert store.get('alpha') == 101
    assert len(client.calls_to('submit_forward_transaction')) == 1
    assert isinstance(reporter.stats('alpha').last_outcome, Rejected)


@pytest.mark.asyncio
async def test_transient_forward_failure_does_not_block(make_watcher, client, store, reporter):
    store.set('alpha', 100)
    client.heights['alpha'] = 103
    client.logs['alpha'] = [make_log(101), make_log(102)]
    client.submit_script['alpha'] = [ConnectionError("reset"), '0xok']
    watcher = make_watcher()

    await watcher.run_iteration()

    assert store.get('alpha') == 103
    stats = reporter.stats('alpha')
    assert stats.forwards_transient == 1
    assert stats.forwards_confirmed == 1


@pytest.mark.asyncio
async def test_forwards_follow_block_order(registry, make_watcher, client, store):
    store.set('alpha', 100)
    client.heights['alpha'] = 110
    client.logs['alpha'] = [make_log(109), make_log(102), make_log(105)]
    executor = RecordingExecutor(client, registry, ACCOUNT)
    watcher = make_watcher(executor=executor)

    await watcher.run_iteration()

    assert [e.block_height for e in executor.forwarded] == [102, 105, 109]


@pytest.mark.asyncio
async def test_checkpoint_never_decreases(make_watcher, client, store):
    store.set('alpha', 100)
    watcher = make_watcher()
    seen = []

    # A lagging node may report a lower height than already scanned
    for height in (105, 103, 105, 112, 90, 112, 120):
        client.heights['alpha'] = height
        await watcher.run_iteration()
        seen.append(store.get('alpha'))

    assert seen == [105, 105, 105, 112, 112, 112, 120]
    assert seen == sorted(seen)


@pytest.mark.asyncio
async def test_stop_mid_window_keeps_checkpoint(registry, make_watcher, client, store):
    store.set('alpha', 100)
    client.heights['alpha'] = 105
    client.logs['alpha'] = [make_log(101), make_log(102), make_log(103)]
    watcher = None

    def stop_after_first(event):
        watcher.stop()

    executor = RecordingExecutor(client, registry, ACCOUNT, on_forward=stop_after_first)
    watcher = make_watcher(executor=executor)

    await watcher.run_iteration()

    # The in-flight forward completes, no new one starts
    assert len(executor.forwarded) == 1
    assert len(executor.outcomes) == 1
    assert store.get('alpha') == 100


@pytest.mark.asyncio
async def test_run_loop_until_stopped(make_watcher, client, store):
    client.heights['alpha'] = 100
    watcher = make_watcher()

    task = asyncio.create_task(watcher.run())
    await asyncio.sleep(0.01)
    assert watcher.is_running

    client.heights['alpha'] = 102
    client.logs['alpha'] = [make_log(102)]
    await asyncio.sleep(0.01)

    watcher.stop()
    await asyncio.wait_for(task, timeout=1)

    assert watcher.state is WatcherState.STOPPED
    assert not watcher.is_running
    assert store.get('alpha') == 102
    assert len(client.calls_to('submit_forward_transaction')) == 1


@pytest.mark.asyncio
async def test_stop_wakes_a_sleeping_watcher(registry, client, store, reporter):
    slow = MonitorSettings(poll_interval=60, backoff_interval=60)
    watcher = ChainWatcher(
        registry.get('alpha'), store,
        TransferDetector(client, registry, ACCOUNT),
        ForwardExecutor(client, registry, ACCOUNT),
        reporter, slow,
    )

    task = asyncio.create_task(watcher.run())
    await asyncio.sleep(0.01)
    watcher.stop()

    await asyncio.wait_for(task, timeout=1)
    assert watcher.state is WatcherState.STOPPED
