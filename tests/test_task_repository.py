from __future__ import annotations

import queue
import threading
from pathlib import Path

import allure
import pytest

from task_quorum.quorum.models import ResponseSubmission, TaskStatus
from task_quorum.quorum.repository import ResponseInsertStatus, TaskRepository

pytestmark = [
    allure.epic("Task Store"),
    allure.feature("Repository"),
]


def _submission(task_id: int, operator_id: str, response: str = "r") -> ResponseSubmission:
    return ResponseSubmission(
        task_id=task_id,
        operator_id=operator_id,
        response=response,
        signature="sig",
    )


def test_create_task_starts_ready_with_created_event(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="[[1,2],[3,4]]")

    assert task.status is TaskStatus.READY
    assert task.response is None
    assert task.finalized_at_ms is None
    assert task.input == "[[1,2],[3,4]]"

    details = repository.get_task_details(task_id=task.task_id)
    assert details is not None
    assert [event.event_type for event in details.events] == ["created"]
    assert details.events[0].status_to is TaskStatus.READY


def test_task_ids_are_unique_and_increasing(repository: TaskRepository) -> None:
    ids = [repository.create_task(input_payload=str(index)).task_id for index in range(5)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 5


def test_get_task_returns_none_for_unknown_id(repository: TaskRepository) -> None:
    assert repository.get_task(999) is None
    assert repository.get_task_details(task_id=999) is None


def test_dispatch_returns_oldest_unanswered_ready_task(repository: TaskRepository) -> None:
    first = repository.create_task(input_payload="t1")
    second = repository.create_task(input_payload="t2")
    third = repository.create_task(input_payload="t3")

    assert repository.fetch_next_ready_task(operator_id="alice").task_id == first.task_id

    repository.insert_response_if_absent(_submission(first.task_id, "alice"))
    assert repository.fetch_next_ready_task(operator_id="alice").task_id == second.task_id
    # Another operator is unaffected by alice's answers.
    assert repository.fetch_next_ready_task(operator_id="bob").task_id == first.task_id

    assert repository.finalize_task(
        task_id=second.task_id,
        status=TaskStatus.CONSENSUS_NOT_REACHED,
        response=None,
    )
    assert repository.fetch_next_ready_task(operator_id="alice").task_id == third.task_id

    repository.insert_response_if_absent(_submission(third.task_id, "alice"))
    assert repository.fetch_next_ready_task(operator_id="alice") is None


def test_dispatch_does_not_modify_the_task(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="t1")

    repository.fetch_next_ready_task(operator_id="alice")
    repository.fetch_next_ready_task(operator_id="alice")

    assert repository.get_task(task.task_id) == task
    assert repository.count_responses(task.task_id) == 0


def test_insert_response_if_absent_rejects_second_response(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="t1")

    first = repository.insert_response_if_absent(_submission(task.task_id, "alice", "a"))
    second = repository.insert_response_if_absent(_submission(task.task_id, "alice", "b"))

    assert first.status is ResponseInsertStatus.INSERTED
    assert first.response is not None
    assert first.response.response == "a"
    assert second.status is ResponseInsertStatus.DUPLICATE
    assert second.response is None
    responses = repository.list_responses(task.task_id)
    assert [item.response for item in responses] == ["a"]


def test_insert_response_requires_ready_task(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="t1")
    assert repository.finalize_task(task_id=task.task_id, status=TaskStatus.COMPLETED, response="x")

    result = repository.insert_response_if_absent(_submission(task.task_id, "alice"))

    assert result.status is ResponseInsertStatus.TASK_NOT_READY
    assert repository.count_responses(task.task_id) == 0


def test_insert_response_for_unknown_task_is_not_stored(repository: TaskRepository) -> None:
    result = repository.insert_response_if_absent(_submission(404, "alice"))
    assert result.status is ResponseInsertStatus.TASK_NOT_READY


def test_list_responses_keeps_admission_order(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="t1")
    for operator_id in ("carol", "alice", "bob"):
        repository.insert_response_if_absent(_submission(task.task_id, operator_id))

    responses = repository.list_responses(task.task_id)

    assert [item.operator_id for item in responses] == ["carol", "alice", "bob"]
    assert repository.count_responses(task.task_id) == 3


def test_finalize_task_is_guarded_by_ready_status(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="t1")

    assert repository.finalize_task(task_id=task.task_id, status=TaskStatus.COMPLETED, response="a")
    assert not repository.finalize_task(
        task_id=task.task_id,
        status=TaskStatus.CONSENSUS_NOT_REACHED,
        response=None,
    )
    assert not repository.finalize_task(
        task_id=task.task_id,
        status=TaskStatus.COMPLETED,
        response="b",
    )

    stored = repository.get_task(task.task_id)
    assert stored is not None
    assert stored.status is TaskStatus.COMPLETED
    assert stored.response == "a"
    assert stored.finalized_at_ms is not None

    details = repository.get_task_details(task_id=task.task_id)
    assert details is not None
    assert [event.event_type for event in details.events] == ["created", "completed"]


def test_finalize_task_validates_status_and_response(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="t1")

    with pytest.raises(ValueError, match="Unsupported final status"):
        repository.finalize_task(task_id=task.task_id, status=TaskStatus.READY, response=None)
    with pytest.raises(ValueError, match="only for COMPLETED"):
        repository.finalize_task(task_id=task.task_id, status=TaskStatus.COMPLETED, response=None)
    with pytest.raises(ValueError, match="only for COMPLETED"):
        repository.finalize_task(
            task_id=task.task_id,
            status=TaskStatus.CONSENSUS_NOT_REACHED,
            response="a",
        )

    assert repository.get_task(task.task_id).status is TaskStatus.READY


def test_list_tasks_filters_by_status(repository: TaskRepository) -> None:
    ready = repository.create_task(input_payload="t1")
    done = repository.create_task(input_payload="t2")
    repository.finalize_task(task_id=done.task_id, status=TaskStatus.COMPLETED, response="a")

    assert [task.task_id for task in repository.list_tasks()] == [done.task_id, ready.task_id]
    assert [task.task_id for task in repository.list_tasks(status=TaskStatus.READY)] == [
        ready.task_id,
    ]
    assert repository.list_ready_task_ids(limit=10) == [ready.task_id]


def test_get_task_details_includes_admission_events(repository: TaskRepository) -> None:
    task = repository.create_task(input_payload="t1")
    inserted = repository.insert_response_if_absent(_submission(task.task_id, "alice"))
    assert inserted.response is not None

    details = repository.get_task_details(task_id=task.task_id)

    assert details is not None
    assert [response.operator_id for response in details.responses] == ["alice"]
    admitted = details.events[-1]
    assert admitted.event_type == "response_admitted"
    assert admitted.details == {
        "operator_id": "alice",
        "response_id": inserted.response.response_id,
    }


def test_concurrent_inserts_admit_exactly_one_response_per_operator(tmp_path: Path) -> None:
    db_path = tmp_path / "race.db"
    setup = TaskRepository(db_path)
    setup.init_schema()
    task = setup.create_task(input_payload="t1")

    workers = 8
    start_event = threading.Event()
    results: queue.Queue[ResponseInsertStatus] = queue.Queue()

    def worker(index: int) -> None:
        repository = TaskRepository(db_path)
        try:
            start_event.wait(timeout=5)
            outcome = repository.insert_response_if_absent(
                _submission(task.task_id, "alice", f"payload-{index}"),
            )
            results.put(outcome.status)
        finally:
            repository.close()

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    start_event.set()
    for thread in threads:
        thread.join(timeout=10)

    statuses = [results.get_nowait() for _ in range(workers)]
    assert statuses.count(ResponseInsertStatus.INSERTED) == 1
    assert statuses.count(ResponseInsertStatus.DUPLICATE) == workers - 1
    assert setup.count_responses(task.task_id) == 1
    setup.close()
