"""
Supervised access to a restartable resource.

A :class:`SupervisedSession` wraps something expensive and fragile (the
authenticated browser used to resolve private Basecamp assets) behind a
lock, and applies one restart policy to every operation run through it:

* a failing operation is retried on the same resource until
  ``max_consecutive_failures`` failures in a row have been seen;
* reaching that threshold restarts the resource, at most
  ``max_restarts_per_operation`` times for a single call, after which
  :class:`OperationRestartLimitError` is raised;
* every restart counts against ``max_global_restarts``; once that budget
  is spent the session is marked unusable and
  :class:`SessionUnusableError` is raised for this and every later call;
* a failure of the factory itself counts like a failed operation;
* exceptions listed in ``permanent_errors`` describe the target, not the
  resource, and are re-raised at once without touching the counters.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Optional, Tuple, Type, TypeVar

from bc2notion.utils.logs import log_message
from bc2notion.utils.run_context import ShutdownRequested

R = TypeVar("R")
T = TypeVar("T")


class OperationRestartLimitError(RuntimeError):
    pass


class SessionUnusableError(RuntimeError):
    pass


class SupervisedSession(Generic[R]):
    def __init__(
        self,
        factory: Callable[[], R],
        *,
        name: str = "session",
        closer: Optional[Callable[[R], None]] = None,
        max_consecutive_failures: int = 3,
        max_restarts_per_operation: int = 2,
        max_global_restarts: int = 10,
        permanent_errors: Tuple[Type[Exception], ...] = (),
    ) -> None:
        self.name = name
        self.permanent_errors = tuple(permanent_errors)
        self._factory = factory
        self._closer = closer
        self.max_consecutive_failures = max(1, max_consecutive_failures)
        self.max_restarts_per_operation = max(0, max_restarts_per_operation)
        self.max_global_restarts = max(0, max_global_restarts)
        self._lock = threading.RLock()
        self._resource: Optional[R] = None
        self.consecutive_failures = 0
        self.global_restarts = 0
        self.unusable = False

    def _ensure(self) -> R:
        if self._resource is None:
            log_message(f"[{self.name}] Starting resource", "DEBUG")
            self._resource = self._factory()
        return self._resource

    def _close(self) -> None:
        resource, self._resource = self._resource, None
        if resource is not None and self._closer is not None:
            try:
                self._closer(resource)
            except Exception as e:
                log_message(f"[{self.name}] Error while closing resource: {e}", "WARNING")

    def _restart(self, label: str) -> None:
        if self.global_restarts >= self.max_global_restarts:
            self.unusable = True
            self._close()
            raise SessionUnusableError(
                f"{self.name}: global restart limit ({self.max_global_restarts}) reached during {label}"
            )
        self.global_restarts += 1
        log_message(
            f"[{self.name}] Restarting after {self.consecutive_failures} consecutive failures "
            f"({label}, global restart {self.global_restarts}/{self.max_global_restarts})",
            "WARNING",
        )
        self._close()
        self.consecutive_failures = 0

    def run(self, operation: Callable[[R], T], label: str = "operation") -> T:
        """Run ``operation(resource)`` under the lock and the restart policy."""
        with self._lock:
            if self.unusable:
                raise SessionUnusableError(f"{self.name} is no longer usable")
            restarts = 0
            while True:
                try:
                    result = operation(self._ensure())
                except (OperationRestartLimitError, SessionUnusableError, ShutdownRequested):
                    raise
                except self.permanent_errors as e:
                    self.consecutive_failures = 0
                    log_message(f"[{self.name}] {label} refused: {e}", "WARNING")
                    raise
                except Exception as e:
                    self.consecutive_failures += 1
                    log_message(
                        f"[{self.name}] {label} failed ({self.consecutive_failures}/"
                        f"{self.max_consecutive_failures}): {e}",
                        "WARNING",
                    )
                    if self.consecutive_failures < self.max_consecutive_failures:
                        continue
                    if restarts >= self.max_restarts_per_operation:
                        self.consecutive_failures = 0
                        raise OperationRestartLimitError(
                            f"{self.name}: {label} failed after {restarts} restarts"
                        ) from e
                    restarts += 1
                    self._restart(label)
                    continue
                self.consecutive_failures = 0
                return result

    def close(self) -> None:
        with self._lock:
            self._close()

    def __enter__(self) -> "SupervisedSession[R]":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
