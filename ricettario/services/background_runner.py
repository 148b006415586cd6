"""Off-UI-thread execution for blocking remote calls.

Work runs on a small thread pool; ``on_result`` / ``on_error`` are delivered
back on the thread that owns the module's invoker object (the UI thread, as
long as this module is first imported there).
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, Qt, Signal

_logger = logging.getLogger(__name__)


class _UiInvoker(QObject):
    posted = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self.posted.connect(self._run, Qt.QueuedConnection)

    def _run(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            _logger.exception("UI callback failed", extra={"operation": "run_bg"})


class BackgroundRunner:
    def __init__(self, *, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ricettario-bg")
        self._invoker = _UiInvoker()

    def __call__(
        self,
        fn: Callable[[], Any],
        *,
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Future:
        future: Future = self._executor.submit(fn)
        future.add_done_callback(lambda done: self._deliver(done, on_result, on_error))
        return future

    def _deliver(
        self,
        future: Future,
        on_result: Optional[Callable[[Any], None]],
        on_error: Optional[Callable[[BaseException], None]],
    ) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            if on_error is not None:
                self._invoker.posted.emit(lambda: on_error(error))
            else:
                _logger.warning(
                    "Background task failed with no error handler",
                    extra={"operation": "run_bg", "error": str(error)},
                )
            return
        if on_result is not None:
            result = future.result()
            self._invoker.posted.emit(lambda: on_result(result))

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


_default = BackgroundRunner()


def run_bg(
    fn: Callable[[], Any],
    *,
    on_result: Optional[Callable[[Any], None]] = None,
    on_error: Optional[Callable[[BaseException], None]] = None,
) -> Future:
    """Run ``fn`` on the shared pool and post its outcome to the UI thread."""
    return _default(fn, on_result=on_result, on_error=on_error)


def shutdown() -> None:
    _default.shutdown()


__all__ = ["BackgroundRunner", "run_bg", "shutdown"]
