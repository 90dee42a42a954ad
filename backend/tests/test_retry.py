"""Tests for the retry policy."""

from __future__ import annotations

import pytest

from codeseek.core.errors import NetworkError
from codeseek.core.retry import RetryPolicy


def test_success_after_transient_failures() -> None:
    delays: list[float] = []
    calls = iter([OSError("reset"), OSError("reset"), "ok"])

    def flaky():
        outcome = next(calls)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=delays.append)
    assert policy.execute_with_retry(flaky, description="download") == "ok"
    assert delays == [2.0, 4.0]


def test_exhausted_attempts_raise_network_error() -> None:
    policy = RetryPolicy(max_attempts=2, base_delay=0.0, sleep=lambda _: None)

    def always_fails():
        raise ConnectionError("offline")

    with pytest.raises(NetworkError) as excinfo:
        policy.execute_with_retry(always_fails, description="model download")
    assert excinfo.value.operation == "model download"
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_network_error_message_names_only_real_remedies() -> None:
    assert str(NetworkError("model download", retry_possible=True)) == "Network error during model download"
    with_fallback = NetworkError("model download", retry_possible=False, fallback="codeseek index --model none")
    assert str(with_fallback) == "Network error during model download\nFallback: codeseek index --model none"


def test_errors_outside_retry_on_propagate() -> None:
    policy = RetryPolicy(sleep=lambda _: None)

    def broken():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        policy.execute_with_retry(broken, retry_on=(OSError,))


def test_policy_validation() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    assert RetryPolicy(base_delay=0.5).delay_for(1) == 0.0
