from concurrent.futures import CancelledError, Future

import pytest

from interpres._futures import chain_future, failed_future


def test_chain_success() -> None:
    source: Future[int] = Future()
    result = chain_future(source, lambda x: x * 2)
    assert not result.done()

    results = []
    result.add_done_callback(lambda future: results.append(future.result()))

    source.set_result(21)
    assert result.result(timeout=1) == 42
    assert results == [42]


def test_chain_already_completed() -> None:
    source: Future[int] = Future()
    source.set_result(1)
    assert chain_future(source, str).result(timeout=1) == "1"


def test_chain_failure() -> None:
    source: Future[int] = Future()
    result = chain_future(source, lambda x: x * 2)
    source.set_exception(RuntimeError("reverted"))
    with pytest.raises(RuntimeError, match="reverted"):
        result.result(timeout=1)


def test_chain_transform_failure() -> None:
    def transform(_value: int) -> int:
        raise ValueError("cannot decode")

    source: Future[int] = Future()
    result = chain_future(source, transform)
    source.set_result(1)
    with pytest.raises(ValueError, match="cannot decode"):
        result.result(timeout=1)


def test_source_cancellation() -> None:
    source: Future[int] = Future()
    result = chain_future(source, lambda x: x)
    assert source.cancel()
    assert result.cancelled()
    with pytest.raises(CancelledError):
        result.result(timeout=1)


def test_result_cancellation() -> None:
    source: Future[int] = Future()
    result = chain_future(source, lambda x: x)
    assert result.cancel()
    assert source.cancelled()


def test_result_cancellation_after_source_started() -> None:
    # The source may refuse the cancellation, the result is cancelled regardless
    source: Future[int] = Future()
    assert source.set_running_or_notify_cancel()
    result = chain_future(source, lambda x: x)
    assert result.cancel()
    assert not source.cancelled()

    # The eventual completion of the source is ignored
    source.set_result(1)
    assert result.cancelled()


def test_failed_future() -> None:
    future = failed_future(KeyError("missing"))
    assert future.done()
    with pytest.raises(KeyError, match="missing"):
        future.result()
