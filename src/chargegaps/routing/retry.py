"""
Bounded retry with linear backoff for routing-service calls.

Before retry number k the caller waits min(k, backoff_cap_s) seconds. Attempts
stop at `max_attempts` (None keeps retrying forever) or when the next sleep
would cross `deadline_s` measured from the first attempt. Sleeping happens on
the calling thread, so one stuck worker never stalls the others.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

T = TypeVar("T")


class RetryExhaustedError(RuntimeError):
    def __init__(self, message: str, *, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int | None = 20
    backoff_cap_s: float = 60.0
    deadline_s: float | None = None

    def backoff_s(self, retry_number: int) -> float:
        return float(min(retry_number, self.backoff_cap_s))

    def run(
        self,
        fn: Callable[[], T],
        *,
        is_transient: Callable[[BaseException], bool],
        sleep_fn: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_retry: Callable[[int, float, BaseException], None] | None = None,
    ) -> T:
        """
        Call `fn` until it returns. Exceptions for which `is_transient` is False
        propagate immediately; transient ones are retried until the policy gives
        up with `RetryExhaustedError`.
        """
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 or None")
        started = clock()
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except Exception as e:
                if not is_transient(e):
                    raise
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    raise RetryExhaustedError(
                        f"gave up after {attempt} attempts: {e}", attempts=attempt, last_error=e
                    ) from e
                wait_s = self.backoff_s(attempt)
                if self.deadline_s is not None and (clock() - started) + wait_s > self.deadline_s:
                    raise RetryExhaustedError(
                        f"deadline of {self.deadline_s}s reached after {attempt} attempts: {e}",
                        attempts=attempt,
                        last_error=e,
                    ) from e
                if on_retry is not None:
                    on_retry(attempt, wait_s, e)
                sleep_fn(wait_s)


def retry_policy_from_settings(settings: dict[str, Any]) -> RetryPolicy:
    cfg = ((settings.get("osrm", {}) or {}).get("retry", {}) or {})
    max_attempts = cfg.get("max_attempts", 20)
    deadline = cfg.get("deadline_s")
    return RetryPolicy(
        max_attempts=int(max_attempts) if max_attempts is not None else None,
        backoff_cap_s=float(cfg.get("backoff_cap_s", 60.0)),
        deadline_s=float(deadline) if deadline is not None else None,
    )
