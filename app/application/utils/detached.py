from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Any, Callable

from app.core.metrics import side_effect_failures_total


logger = logging.getLogger(__name__)


class DetachedTaskRunner:
    """
    Runs side-effect tasks whose outcome the caller does not wait on.

    With an executor, tasks run on its threads; without one they run inline
    (useful in tests and scripts). Either way a failing task is logged and
    counted, never raised to the submitter.
    """

    def __init__(self, executor: Executor | None = None) -> None:
        self._executor = executor

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self._executor is None:
            self._run_guarded(name, fn, args, kwargs)
            return
        try:
            self._executor.submit(self._run_guarded, name, fn, args, kwargs)
        except RuntimeError:
            # Executor already shut down (process exiting); run in place
            self._run_guarded(name, fn, args, kwargs)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    @staticmethod
    def _run_guarded(name: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            side_effect_failures_total.labels(task=name).inc()
            logger.exception("Detached task failed", extra={"task": name, "error": str(e)})
