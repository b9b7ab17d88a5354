"""
Unit tests for the fallback orchestrator.

Candidates are in-memory (see make_candidate in conftest), so these tests
exercise ordering, stopping rules, timeouts and cancellation without HTTP.
"""

import threading
import time

import pytest

from shared import orchestrator
from shared.models import AttemptStopped, Candidate, ErrorKind, OperationKind, Outcome, RequestSpec
from shared.normalizer import classify_exception
from shared.orchestrator import execute, run_request, run_with_budget
from shared.registry import ProviderRegistry


@pytest.fixture
def spec():
    return RequestSpec(OperationKind.GENERATE_TEXT, {'destination': 'Rome'})


def _retryable(kind=ErrorKind.UPSTREAM_ERROR):
    return Outcome.retryable('HTTP 500: boom', kind, status_code=500)


def _auth_failure():
    return Outcome.fatal('invalid credentials', ErrorKind.AUTH_INVALID, status_code=401)


def _classify(raw):
    if isinstance(raw, Outcome):
        return raw
    return classify_exception(raw)


def _wait_for_stop(control, limit=2.0):
    """Behave like a call that only returns once told to stop."""
    deadline = time.monotonic() + limit
    while not control.stopped and time.monotonic() < deadline:
        time.sleep(0.01)
    return control.stopped


class TestExecute:
    """Tests for execute()"""

    def test_first_success_wins(self, spec, make_candidate):
        calls = []
        candidates = [make_candidate('A', calls=calls), make_candidate('B', calls=calls)]

        result = execute(spec, candidates, 1.0)

        assert result.success is True
        assert result.candidate_used == 'A'
        assert result.content == 'content from A'
        assert calls == ['A']
        assert len(result.attempts) == 1

    def test_retryable_moves_to_next(self, spec, make_candidate):
        calls = []
        candidates = [
            make_candidate('A', _retryable(), calls=calls),
            make_candidate('B', calls=calls),
        ]

        result = execute(spec, candidates, 1.0)

        assert result.success is True
        assert result.candidate_used == 'B'
        assert [a.candidate_id for a in result.attempts] == ['A', 'B']
        assert result.attempts[0].outcome.error_kind == ErrorKind.UPSTREAM_ERROR

    def test_fatal_stops_the_run(self, spec, make_candidate):
        calls = []
        candidates = [
            make_candidate('A', _auth_failure(), calls=calls),
            make_candidate('B', calls=calls),
        ]

        result = execute(spec, candidates, 1.0)

        assert result.success is False
        assert result.error_kind == ErrorKind.AUTH_INVALID
        assert calls == ['A']
        assert len(result.attempts) == 1

    def test_fatal_after_retryable(self, spec, make_candidate):
        candidates = [
            make_candidate('A', _retryable()),
            make_candidate('B', Outcome.fatal('rate limited', ErrorKind.RATE_LIMITED, 429)),
            make_candidate('C'),
        ]

        result = execute(spec, candidates, 1.0)

        assert result.error_kind == ErrorKind.RATE_LIMITED
        assert [a.candidate_id for a in result.attempts] == ['A', 'B']

    def test_all_retryable_exhausts(self, spec, make_candidate):
        candidates = [make_candidate(cid, _retryable()) for cid in ('A', 'B', 'C')]

        result = execute(spec, candidates, 1.0)

        assert result.success is False
        assert result.error_kind == ErrorKind.ALL_CANDIDATES_EXHAUSTED
        assert len(result.attempts) == 3
        assert 'All 3 candidates failed' in result.message
        assert result.message.endswith('C: HTTP 500: boom')

    def test_no_candidates_is_configuration_error(self, spec):
        result = execute(spec, [], 1.0)

        assert result.success is False
        assert result.error_kind == ErrorKind.CONFIGURATION_ERROR
        assert result.attempts == []

    def test_at_most_one_success_in_log(self, spec, make_candidate):
        candidates = [make_candidate('A', _retryable()), make_candidate('B'), make_candidate('C')]

        result = execute(spec, candidates, 1.0)

        successes = [a for a in result.attempts if a.outcome.is_success]
        assert len(successes) == 1
        assert result.attempts[-1].outcome.is_success

    def test_invoke_exception_is_classified(self, spec, make_candidate):
        import requests
        candidates = [
            make_candidate('A', requests.exceptions.ConnectionError('refused')),
            make_candidate('B'),
        ]

        result = execute(spec, candidates, 1.0)

        assert result.candidate_used == 'B'
        assert result.attempts[0].outcome.error_kind == ErrorKind.UPSTREAM_ERROR

    def test_classify_exception_becomes_malformed(self, spec, make_candidate):

        def broken_classify(raw):
            raise KeyError('choices')

        broken = Candidate('A', lambda parameters, control: {}, broken_classify)
        result = execute(spec, [broken, make_candidate('B')], 1.0)

        assert result.attempts[0].outcome.error_kind == ErrorKind.MALFORMED
        assert result.candidate_used == 'B'

    def test_parameters_reach_candidate(self, make_candidate):
        seen = {}

        def invoke(parameters, control):
            seen.update(parameters)
            seen['timeout'] = control.timeout_seconds
            return Outcome.success('ok')

        candidate = Candidate('A', invoke, lambda raw: raw)
        spec = RequestSpec(OperationKind.TRANSLATE, {'text': 'Ciao', 'toLanguage': 'English'})
        execute(spec, [candidate], 2.5)

        assert seen == {'text': 'Ciao', 'toLanguage': 'English', 'timeout': 2.5}

    def test_label_reported(self, spec, make_candidate):
        result = execute(spec, [make_candidate('claude', label='Claude Sonnet')], 1.0)
        assert result.candidate_label == 'Claude Sonnet'


class TestTimeouts:
    """Per-attempt timeout handling."""

    def test_slow_candidate_times_out_and_next_succeeds(self, spec, make_candidate):
        candidates = [make_candidate('slow', delay=1.0), make_candidate('fast')]

        started = time.monotonic()
        result = execute(spec, candidates, 0.1)
        elapsed = time.monotonic() - started

        assert result.success is True
        assert result.candidate_used == 'fast'
        assert result.attempts[0].outcome.error_kind == ErrorKind.TIMEOUT
        assert elapsed < 0.9

    def test_all_time_out(self, spec, make_candidate):
        candidates = [make_candidate('A', delay=0.5), make_candidate('B', delay=0.5)]

        result = execute(spec, candidates, 0.05)

        assert result.error_kind == ErrorKind.ALL_CANDIDATES_EXHAUSTED
        assert all(a.outcome.error_kind == ErrorKind.TIMEOUT for a in result.attempts)

    def test_timed_out_call_ends_before_next_starts(self, spec):
        events = []

        def slow(parameters, control):
            events.append('slow started')
            stopped = _wait_for_stop(control)
            events.append('slow ended')
            if stopped:
                raise AttemptStopped('stopped')
            return Outcome.success('late')

        def fast(parameters, control):
            events.append('fast started')
            return Outcome.success('ok')

        result = execute(spec, [Candidate('slow', slow, _classify), Candidate('fast', fast, _classify)], 0.1)

        assert result.candidate_used == 'fast'
        assert events == ['slow started', 'slow ended', 'fast started']
        assert result.attempts[0].outcome.error_kind == ErrorKind.TIMEOUT

    def test_unresponsive_call_is_left_after_grace(self, spec, make_candidate, monkeypatch):
        monkeypatch.setattr(orchestrator, 'STOP_GRACE_SECONDS', 0.1)
        release = threading.Event()

        def stuck(parameters, control):
            release.wait(2.0)
            return Outcome.success('late')

        started = time.monotonic()
        try:
            result = execute(spec, [Candidate('stuck', stuck, _classify), make_candidate('B')], 0.1)
        finally:
            release.set()

        assert result.candidate_used == 'B'
        assert time.monotonic() - started < 1.0


class TestCancellation:
    """Caller-driven cancellation."""

    def test_cancelled_before_start(self, spec, make_candidate):
        calls = []
        event = threading.Event()
        event.set()

        result = execute(spec, [make_candidate('A', calls=calls)], 1.0, cancel_event=event)

        assert result.error_kind == ErrorKind.CANCELLED
        assert result.attempts == []
        assert calls == []

    def test_cancelled_during_attempt(self, spec, make_candidate):
        calls = []
        event = threading.Event()
        candidates = [make_candidate('A', delay=1.0, calls=calls), make_candidate('B', calls=calls)]

        timer = threading.Timer(0.1, event.set)
        timer.start()
        try:
            result = execute(spec, candidates, 5.0, cancel_event=event)
        finally:
            timer.cancel()

        assert result.success is False
        assert result.error_kind == ErrorKind.CANCELLED
        assert calls == ['A']
        assert len(result.attempts) == 1

    def test_in_flight_attempt_recorded_as_cancelled(self, spec, make_candidate):
        event = threading.Event()
        timer = threading.Timer(0.1, event.set)
        timer.start()
        try:
            result = execute(spec, [make_candidate('A', delay=1.0)], 5.0, cancel_event=event)
        finally:
            timer.cancel()

        attempt = result.attempts[0]
        assert attempt.outcome.is_cancelled
        assert attempt.outcome.error_kind == ErrorKind.CANCELLED
        assert attempt.to_dict()['outcomeKind'] == 'cancelled'

    def test_cancel_reaches_the_running_call(self, spec):
        seen = []

        def waiting(parameters, control):
            seen.append(_wait_for_stop(control))
            raise AttemptStopped('stopped')

        event = threading.Event()
        timer = threading.Timer(0.1, event.set)
        timer.start()
        try:
            result = execute(spec, [Candidate('A', waiting, _classify)], 5.0, cancel_event=event)
        finally:
            timer.cancel()

        assert result.error_kind == ErrorKind.CANCELLED
        # The call saw the stop and finished before execute returned
        assert seen == [True]

    def test_budget_cancels_run(self, spec, make_candidate):
        registry = ProviderRegistry()
        registry.add_operation(OperationKind.GENERATE_TEXT, 5.0)
        registry.register(OperationKind.GENERATE_TEXT, make_candidate('A', delay=1.0))

        result = run_with_budget(spec, registry, budget_ms=100)

        assert result.error_kind == ErrorKind.CANCELLED

    def test_budget_not_reached(self, spec, make_candidate):
        registry = ProviderRegistry()
        registry.register(OperationKind.GENERATE_TEXT, make_candidate('A'))

        result = run_with_budget(spec, registry, budget_ms=5000)

        assert result.success is True


class TestRunRequest:
    """Tests for run_request()"""

    def test_preferred_candidate_tried_first(self, make_candidate):
        calls = []
        registry = ProviderRegistry()
        for cid in ('A', 'B', 'C'):
            registry.register(OperationKind.GENERATE_TEXT, make_candidate(cid, _retryable(), calls=calls))

        spec = RequestSpec(OperationKind.GENERATE_TEXT, {}, preferred_candidate_id='C')
        result = run_request(spec, registry)

        assert calls == ['C', 'A', 'B']
        assert [a.candidate_id for a in result.attempts] == ['C', 'A', 'B']

    def test_unknown_operation_kind(self):
        result = run_request(RequestSpec('summarize', {}), ProviderRegistry())

        assert result.success is False
        assert result.error_kind == ErrorKind.CONFIGURATION_ERROR

    def test_timeout_override(self, make_candidate):
        registry = ProviderRegistry()
        registry.add_operation(OperationKind.GENERATE_TEXT, 5.0)
        registry.register(OperationKind.GENERATE_TEXT, make_candidate('slow', delay=1.0))
        registry.register(OperationKind.GENERATE_TEXT, make_candidate('fast'))

        spec = RequestSpec(OperationKind.GENERATE_TEXT, {}, timeout_ms_override=100)
        result = run_request(spec, registry)

        assert result.candidate_used == 'fast'
        assert result.attempts[0].outcome.error_kind == ErrorKind.TIMEOUT

    def test_runs_are_independent(self, spec, make_candidate):
        registry = ProviderRegistry()
        registry.register(OperationKind.GENERATE_TEXT, make_candidate('A', _retryable()))
        registry.register(OperationKind.GENERATE_TEXT, make_candidate('B'))

        first = run_request(spec, registry)
        second = run_request(spec, registry)

        assert len(first.attempts) == 2
        assert len(second.attempts) == 2
        assert first.attempts is not second.attempts
