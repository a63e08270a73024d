import warnings
from unittest.mock import Mock

import pytest

from vectorindex.application.services.retry_policy import RetryPolicy, is_retryable
from vectorindex.domain.entities.deadline import InvocationDeadline
from vectorindex.domain.errors import (
    AlreadyExists,
    AuthorizationDenied,
    InvalidSpec,
    NotFound,
    ReconcileTimeout,
    RemoteUnavailable,
)


def _policy(**kwargs) -> RetryPolicy:
    sleeps = kwargs.pop("sleeps", [])
    kwargs.setdefault("max_attempts", 5)
    return RetryPolicy(initial_delay=0.5, max_delay=2.0, sleep=sleeps.append, **kwargs)


class TestClassification:
    def test_only_remote_unavailable_is_retryable(self):
        assert is_retryable(RemoteUnavailable("down"))
        for exc in (NotFound(), AlreadyExists(), InvalidSpec(), AuthorizationDenied(), ValueError()):
            assert not is_retryable(exc)


class TestCall:
    def test_returns_first_success(self):
        fn = Mock(return_value="ok")
        assert _policy().call(fn, "a", key="b") == "ok"
        fn.assert_called_once_with("a", key="b")

    def test_transient_errors_are_retried(self):
        sleeps: list[float] = []
        fn = Mock(side_effect=[RemoteUnavailable("503"), RemoteUnavailable("503"), "ok"])
        assert _policy(sleeps=sleeps).call(fn) == "ok"
        assert fn.call_count == 3
        assert len(sleeps) == 2
        assert all(0 <= delay <= 2.0 for delay in sleeps)

    def test_backoff_emits_no_deprecation_warnings(self):
        fn = Mock(side_effect=[RemoteUnavailable("503"), "ok"])

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            assert _policy().call(fn) == "ok"

    @pytest.mark.parametrize("error", [InvalidSpec("bad"), NotFound("gone"), AuthorizationDenied("no")])
    def test_fatal_errors_are_not_retried(self, error):
        fn = Mock(side_effect=error)
        with pytest.raises(type(error)):
            _policy().call(fn)
        assert fn.call_count == 1

    def test_exhaustion_surfaces_remote_unavailable(self):
        fn = Mock(side_effect=RemoteUnavailable("still down"))
        with pytest.raises(RemoteUnavailable, match="still down"):
            _policy(max_attempts=3).call(fn)
        assert fn.call_count == 3

    def test_expired_deadline_stops_before_calling(self):
        fn = Mock()
        with pytest.raises(ReconcileTimeout):
            _policy().call(fn, deadline=InvocationDeadline(lambda: 0.0))
        fn.assert_not_called()

    def test_deadline_expiring_during_retries_is_a_timeout(self):
        remaining = iter([30.0, 30.0, 0.0, 0.0, 0.0, 0.0])
        deadline = InvocationDeadline(lambda: next(remaining, 0.0))
        fn = Mock(side_effect=RemoteUnavailable("503"))
        with pytest.raises(ReconcileTimeout, match="503"):
            _policy().call(fn, deadline=deadline)
        assert fn.call_count < 5

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestWaitUntil:
    def test_polls_until_predicate_holds(self):
        fn = Mock(side_effect=[None, None, "visible"])
        result = _policy().wait_until(fn, lambda value: value is not None, attempts=5)
        assert result == "visible"
        assert fn.call_count == 3

    def test_returns_last_result_when_budget_runs_out(self):
        fn = Mock(return_value=None)
        assert _policy().wait_until(fn, lambda value: value is not None, attempts=3) is None
        assert fn.call_count == 3

    def test_transport_errors_inside_a_poll_use_the_retry_budget(self):
        fn = Mock(side_effect=[RemoteUnavailable("503"), None, "visible"])
        result = _policy().wait_until(fn, lambda value: value is not None, attempts=2)
        assert result == "visible"

    def test_fatal_errors_propagate(self):
        fn = Mock(side_effect=AuthorizationDenied("denied"))
        with pytest.raises(AuthorizationDenied):
            _policy().wait_until(fn, lambda value: value is not None, attempts=3)
