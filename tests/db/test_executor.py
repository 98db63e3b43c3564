"""Tests for the serialized executor."""

from __future__ import annotations

import threading

import pytest

from dbaccess.db.executor import SerializedExecutor


def test_reentrant_from_the_same_thread() -> None:
    executor = SerializedExecutor()

    with executor.acquire():
        with executor.acquire():
            assert executor.depth == 2
            assert executor.is_held()
        assert executor.depth == 1

    assert executor.depth == 0
    assert not executor.is_held()


def test_other_thread_waits_until_released() -> None:
    executor = SerializedExecutor()
    entered = threading.Event()

    def worker() -> None:
        with executor.acquire():
            entered.set()

    executor.enter()
    thread = threading.Thread(target=worker)
    thread.start()

    assert not entered.wait(0.1)

    executor.leave()
    thread.join(timeout=5)
    assert entered.is_set()


def test_released_when_block_raises() -> None:
    executor = SerializedExecutor()

    with pytest.raises(ValueError):
        with executor.acquire():
            raise ValueError("boom")

    acquired = threading.Event()

    def worker() -> None:
        with executor.acquire():
            acquired.set()

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join(timeout=5)
    assert acquired.is_set()


def test_leave_without_holding_raises() -> None:
    executor = SerializedExecutor(name="test")

    with pytest.raises(RuntimeError, match="test section"):
        executor.leave()


def test_is_held_only_for_owner() -> None:
    executor = SerializedExecutor()
    seen = []

    with executor.acquire():
        thread = threading.Thread(target=lambda: seen.append(executor.is_held()))
        thread.start()
        thread.join(timeout=5)

    assert seen == [False]
