"""Tests for the background queue worker."""

import asyncio

import pytest

from mindbox_relay.models import QueueStatus
from mindbox_relay.services.integration import MindboxIntegration
from mindbox_relay.services.queue_service import AGENT_ENTRYPOINT
from mindbox_relay.services.worker import QueueWorker


def test_interval_defaults_to_agent_interval(integration: MindboxIntegration) -> None:
    worker = QueueWorker(integration)

    assert worker.interval_seconds == integration.settings.queue.agent_interval_seconds
    assert QueueWorker(integration, 0).interval_seconds == 0.1


@pytest.mark.asyncio
async def test_run_once_processes_due_rows(
    integration: MindboxIntegration, make_queue_item, store
) -> None:
    item_id = make_queue_item()
    worker = QueueWorker(integration, interval_seconds=60)

    assert await worker.run_once() == AGENT_ENTRYPOINT
    assert worker.ticks == 1
    assert store.get(item_id).status is QueueStatus.SUCCESS


@pytest.mark.asyncio
async def test_start_and_stop(integration: MindboxIntegration, mocker) -> None:
    run_agent = mocker.patch.object(integration, "run_agent", return_value=AGENT_ENTRYPOINT)
    worker = QueueWorker(integration, interval_seconds=0.1)

    await worker.start()
    assert worker.running
    await asyncio.sleep(0.35)
    await worker.stop()

    assert not worker.running
    assert run_agent.call_count >= 2
    assert worker.ticks == run_agent.call_count


@pytest.mark.asyncio
async def test_failing_tick_does_not_stop_the_loop(integration: MindboxIntegration, mocker) -> None:
    outcomes = iter([RuntimeError("boom")])

    def flaky_tick() -> str:
        error = next(outcomes, None)
        if error is not None:
            raise error
        return AGENT_ENTRYPOINT

    run_agent = mocker.patch.object(integration, "run_agent", side_effect=flaky_tick)
    worker = QueueWorker(integration, interval_seconds=0.1)

    await worker.start()
    await asyncio.sleep(0.25)
    await worker.stop()

    assert run_agent.call_count >= 2
    assert worker.ticks == run_agent.call_count - 1


@pytest.mark.asyncio
async def test_stop_without_start_is_a_no_op(integration: MindboxIntegration) -> None:
    worker = QueueWorker(integration)

    await worker.stop()

    assert not worker.running
