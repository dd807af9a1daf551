from __future__ import annotations

from collections.abc import Callable

import pytest
from pytest_mock import MockerFixture

from genqueue.adapters.memory_store import InMemoryOrderedStore
from genqueue.domain.task_queue import Priority, QueueTask, TaskType
from genqueue.services.task_store import TaskStore, task_key
from genqueue.use_cases.queue_manager import QueueManager
from genqueue.workers.pipeline import QueueWorker
from tests.conftest import FakeClock, make_task


def _dequeue_from(
    tasks: dict[Priority, list[QueueTask]],
) -> Callable[[Priority], QueueTask | None]:
    def _dequeue(priority: Priority) -> QueueTask | None:
        pending = tasks.get(priority) or []
        return pending.pop(0) if pending else None

    return _dequeue


def test_worker_completes_tasks_with_handler_result(mocker: MockerFixture) -> None:
    queue = mocker.Mock()
    queue.reclaim_expired_leases.return_value = []
    queue.queue_size.return_value = 0
    task = make_task(task_type=TaskType.USAGE_ANALYTICS)
    queue.dequeue.side_effect = _dequeue_from({Priority.MEDIUM: [task]})
    handler = mocker.Mock(return_value={"rows": 12})

    worker = QueueWorker(
        task_queue=queue, handlers={TaskType.USAGE_ANALYTICS: handler}
    )

    processed = worker.process_available_tasks()

    assert processed == 1
    handler.assert_called_once_with(task)
    queue.complete_task.assert_called_once_with(task.id, {"rows": 12})
    queue.fail_task.assert_not_called()


def test_worker_fails_task_when_handler_raises(mocker: MockerFixture) -> None:
    queue = mocker.Mock()
    queue.reclaim_expired_leases.return_value = []
    queue.queue_size.return_value = 0
    task = make_task(priority=Priority.HIGH)
    queue.dequeue.side_effect = _dequeue_from({Priority.HIGH: [task]})
    handler = mocker.Mock(side_effect=RuntimeError("model offline"))

    worker = QueueWorker(
        task_queue=queue, handlers={TaskType.USAGE_ANALYTICS: handler}
    )

    assert worker.process_available_tasks() == 1

    queue.complete_task.assert_not_called()
    task_id, reason, stack_trace = queue.fail_task.call_args.args
    assert task_id == task.id
    assert reason == "RuntimeError: model offline"
    assert "RuntimeError" in stack_trace


def test_worker_fails_task_without_handler(mocker: MockerFixture) -> None:
    queue = mocker.Mock()
    queue.reclaim_expired_leases.return_value = []
    queue.queue_size.return_value = 0
    task = make_task(task_type=TaskType.CACHE_WARMING)
    queue.dequeue.side_effect = _dequeue_from({Priority.MEDIUM: [task]})

    worker = QueueWorker(task_queue=queue, handlers={})

    worker.process_available_tasks()

    queue.fail_task.assert_called_once_with(
        task.id, "no handler registered for task type cache_warming"
    )


def test_worker_serves_highest_priority_first(mocker: MockerFixture) -> None:
    queue = mocker.Mock()
    queue.reclaim_expired_leases.return_value = []
    queue.queue_size.return_value = 0
    low = make_task(priority=Priority.LOW, task_id="low")
    critical = make_task(priority=Priority.CRITICAL, task_id="critical")
    queue.dequeue.side_effect = _dequeue_from(
        {Priority.LOW: [low], Priority.CRITICAL: [critical]}
    )
    seen: list[str] = []

    worker = QueueWorker(
        task_queue=queue,
        handlers={TaskType.USAGE_ANALYTICS: lambda task: seen.append(task.id)},
    )

    assert worker.process_available_tasks() == 2
    assert seen == ["critical", "low"]


def test_worker_respects_batch_size(mocker: MockerFixture) -> None:
    queue = mocker.Mock()
    queue.reclaim_expired_leases.return_value = []
    queue.queue_size.return_value = 0
    tasks = [make_task() for _ in range(5)]
    queue.dequeue.side_effect = _dequeue_from({Priority.MEDIUM: tasks})

    worker = QueueWorker(
        task_queue=queue,
        handlers={TaskType.USAGE_ANALYTICS: mocker.Mock(return_value=None)},
        batch_size=2,
    )

    assert worker.process_available_tasks() == 2
    assert len(tasks) == 3


def test_worker_only_polls_configured_priorities(mocker: MockerFixture) -> None:
    queue = mocker.Mock()
    queue.reclaim_expired_leases.return_value = []
    queue.queue_size.return_value = 0
    queue.dequeue.return_value = None

    worker = QueueWorker(
        task_queue=queue,
        handlers={},
        priorities=[Priority.LOW, Priority.HIGH],
    )

    assert worker.process_available_tasks() == 0
    assert [call.args[0] for call in queue.dequeue.call_args_list] == [
        Priority.HIGH,
        Priority.LOW,
    ]


def test_worker_skips_pass_while_dependency_circuit_open(
    mocker: MockerFixture,
) -> None:
    queue = mocker.Mock()
    queue.is_circuit_open.return_value = True

    worker = QueueWorker(task_queue=queue, handlers={}, dependency="ai_generation")

    assert worker.process_available_tasks() == 0
    queue.is_circuit_open.assert_called_once_with("ai_generation")
    queue.reclaim_expired_leases.assert_not_called()
    queue.dequeue.assert_not_called()


def test_worker_registers_for_each_priority(mocker: MockerFixture) -> None:
    queue = mocker.Mock()
    worker = QueueWorker(
        task_queue=queue,
        handlers={},
        worker_id="worker-1",
        priorities=[Priority.CRITICAL, Priority.HIGH],
    )

    worker.register()
    worker.unregister()

    assert queue.register_worker.call_count == 2
    queue.register_worker.assert_any_call(Priority.CRITICAL, "worker-1")
    queue.unregister_worker.assert_any_call(Priority.HIGH, "worker-1")


@pytest.mark.parametrize(
    "kwargs", [{"batch_size": 0}, {"priorities": []}]
)
def test_worker_rejects_invalid_configuration(
    mocker: MockerFixture, kwargs: dict[str, object]
) -> None:
    with pytest.raises(ValueError):
        QueueWorker(task_queue=mocker.Mock(), handlers={}, **kwargs)


def test_worker_drives_real_queue_to_completion(
    queue_manager: QueueManager, store: InMemoryOrderedStore, mocker: MockerFixture
) -> None:
    first = queue_manager.enqueue(make_task(priority=Priority.HIGH))
    second = queue_manager.enqueue(make_task(priority=Priority.BACKGROUND))
    handler = mocker.Mock(side_effect=lambda task: {"handled": task.id})

    worker = QueueWorker(
        task_queue=queue_manager, handlers={TaskType.USAGE_ANALYTICS: handler}
    )

    assert worker.process_available_tasks() == 2
    assert worker.process_available_tasks() == 0
    results = TaskStore(store)
    assert results.load_result(first) == {"handled": first}
    assert results.load_result(second) == {"handled": second}


def test_worker_skips_stale_ids_within_one_pass(
    queue_manager: QueueManager, store: InMemoryOrderedStore, mocker: MockerFixture
) -> None:
    stale = queue_manager.enqueue(make_task(priority=Priority.HIGH))
    fresh = queue_manager.enqueue(make_task(priority=Priority.HIGH))
    store.delete(task_key(stale))
    handler = mocker.Mock(return_value=None)

    worker = QueueWorker(
        task_queue=queue_manager, handlers={TaskType.USAGE_ANALYTICS: handler}
    )

    assert worker.process_available_tasks() == 1
    [call] = handler.call_args_list
    assert call.args[0].id == fresh
    assert queue_manager.queue_size(Priority.HIGH) == 0


def test_worker_reclaims_expired_leases(
    queue_manager: QueueManager, clock: FakeClock
) -> None:
    task_id = queue_manager.enqueue(make_task())
    queue_manager.dequeue(Priority.MEDIUM)
    worker = QueueWorker(task_queue=queue_manager, handlers={})

    assert worker.reclaim_expired_leases() == 0
    clock.advance(301)

    assert worker.reclaim_expired_leases() == 1
    requeued = queue_manager.dequeue(Priority.MEDIUM)
    assert requeued is not None and requeued.id == task_id
    assert requeued.retries == 1
