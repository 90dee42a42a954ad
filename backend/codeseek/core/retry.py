"""Retry-with-backoff policy for network-backed boundaries."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from codeseek.core.errors import NetworkError
from codeseek.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Bounded retry: the wait before attempt N is ``base_delay * 2 ** (N - 1)``."""

    max_attempts: int = 3
    base_delay: float = 1.0
    timeout: float | None = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_for(self, attempt: int) -> float:
        if attempt <= 1:
            return 0.0
        return self.base_delay * (2 ** (attempt - 1))

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        description: str = "operation",
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ) -> T:
        """Run ``operation`` until it succeeds or the attempt budget is spent."""
        last_error: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            delay = self.delay_for(attempt)
            if delay:
                logger.info(
                    "Waiting %.1fs before retry %s/%s of %s",
                    delay,
                    attempt,
                    self.max_attempts,
                    description,
                )
                self.sleep(delay)
            try:
                return self._run_once(operation, description)
            except retry_on as exc:
                last_error = exc
                logger.warning("Attempt %s/%s of %s failed: %s", attempt, self.max_attempts, description, exc)
        raise NetworkError(operation=description, retry_possible=False) from last_error

    def _run_once(self, operation: Callable[[], T], description: str) -> T:
        if self.timeout is None:
            return operation()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="codeseek-retry")
        future = executor.submit(operation)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError as exc:
            future.cancel()
            raise TimeoutError(f"{description} timed out after {self.timeout:.1f}s") from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)


__all__ = ["RetryPolicy"]
