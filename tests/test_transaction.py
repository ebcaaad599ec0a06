import logging

import pytest

from memory_sync.concurrency.scheduler import map_concurrently
from memory_sync.concurrency.transaction import TransactionExecutor
from memory_sync.exceptions import BatchCancelled, ExtractError
from memory_sync.results import Ok, Err, Unmanaged
from conftest import count_rows, make_photo


def test_ok_commits(db_manager):
    executor = TransactionExecutor(db_manager)

    def block(catalog):
        catalog.insert(make_photo("a.jpg"))
        return Ok("done")

    result = executor.run_isolated("a.jpg", block)
    assert result == Ok("done")
    assert count_rows(db_manager, "photos") == 1


def test_err_rolls_back(db_manager, caplog):
    executor = TransactionExecutor(db_manager)

    def block(catalog):
        catalog.insert(make_photo("a.jpg"))
        return Err(ExtractError("corrupt"))

    with caplog.at_level(logging.WARNING):
        result = executor.run_isolated("a.jpg", block)

    assert isinstance(result, Err)
    assert isinstance(result.error, ExtractError)
    assert count_rows(db_manager, "photos") == 0
    assert "[requestId=a.jpg] Rolled back" in caplog.text


def test_exception_becomes_unmanaged(db_manager, caplog):
    executor = TransactionExecutor(db_manager)

    def block(catalog):
        catalog.insert(make_photo("a.jpg"))
        raise RuntimeError("disk on fire")

    with caplog.at_level(logging.ERROR):
        result = executor.run_isolated("item-7", block)

    assert isinstance(result, Err)
    assert isinstance(result.error, Unmanaged)
    assert result.error.item_id == "item-7"
    assert isinstance(result.error.cause, RuntimeError)
    assert count_rows(db_manager, "photos") == 0

    # One line, tagged with the item id
    lines = [r.getMessage() for r in caplog.records if "[requestId=item-7]" in r.getMessage()]
    assert len(lines) == 1
    assert "\n" not in lines[0]
    assert "disk on fire" in lines[0]


def test_non_result_return_is_unmanaged(db_manager):
    executor = TransactionExecutor(db_manager)
    result = executor.run_isolated("x", lambda catalog: "not a result")
    assert isinstance(result.error, Unmanaged)
    assert isinstance(result.error.cause, TypeError)


def test_cancellation_is_reraised_and_rolled_back(db_manager):
    executor = TransactionExecutor(db_manager)

    def block(catalog):
        catalog.insert(make_photo("a.jpg"))
        raise BatchCancelled()

    with pytest.raises(BatchCancelled):
        executor.run_isolated("a.jpg", block)
    assert count_rows(db_manager, "photos") == 0


def test_items_are_isolated(db_manager):
    executor = TransactionExecutor(db_manager)

    def process(i):
        def block(catalog):
            catalog.insert(make_photo(f"img_{i}.jpg"))
            if i == 3:
                raise RuntimeError("item 3 breaks")
            return Ok(i)
        return executor.run_isolated(f"img_{i}.jpg", block)

    results = map_concurrently(range(1, 6), 3, process)

    assert [r.is_ok for r in results] == [True, True, False, True, True]
    assert isinstance(results[2].error, Unmanaged)
    assert count_rows(db_manager, "photos") == 4
