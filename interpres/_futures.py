from collections.abc import Callable
from concurrent.futures import Future, InvalidStateError
from typing import Any, TypeVar

_T = TypeVar("_T")
_U = TypeVar("_U")


def _settle(future: "Future[Any]", setter: Callable[[], None]) -> None:
    # The handle may have been cancelled by its owner in the meantime.
    if future.done():
        return
    try:
        setter()
    except InvalidStateError:
        pass


def chain_future(source: "Future[_T]", transform: Callable[[_T], _U]) -> "Future[_U]":
    """
    Returns a handle that completes with ``transform`` applied to the result of ``source``.

    A failure of ``source`` (or of ``transform``) fails the returned handle
    with the same exception, and cancellation of ``source`` cancels it.
    Cancelling the returned handle requests the cancellation of ``source``.
    """
    result: Future[_U] = Future()

    def on_source_done(src: "Future[_T]") -> None:
        if src.cancelled():
            result.cancel()
            return

        exc = src.exception()
        if exc is not None:
            _settle(result, lambda: result.set_exception(exc))
            return

        try:
            value = transform(src.result())
        except Exception as transform_exc:  # noqa: BLE001
            _settle(result, lambda: result.set_exception(transform_exc))
            return

        _settle(result, lambda: result.set_result(value))

    def on_result_done(res: "Future[_U]") -> None:
        if res.cancelled():
            source.cancel()

    result.add_done_callback(on_result_done)
    source.add_done_callback(on_source_done)
    return result


def failed_future(exc: BaseException) -> "Future[Any]":
    """Returns a handle already completed with the given exception."""
    future: Future[Any] = Future()
    future.set_exception(exc)
    return future
