"""
Fallback orchestrator.

Runs one request against an ordered list of candidates, one attempt at a time,
and returns the first success or a single aggregated failure.

- success          -> stop, return it
- fatal failure    -> stop, return it (auth rejected, rate limited)
- retryable / timeout -> record, try the next candidate
- caller cancelled -> stop, return Cancelled (not a failure of the candidates)

Each attempt runs in its own worker thread. On timeout or cancellation the
attempt is stopped and given a short grace period to unwind, so only one
candidate call is in flight at a time. The orchestrator holds no state
between calls; every run builds its own attempt log.
"""

import concurrent.futures
import threading
import time
from typing import List, Optional

from .models import (
    Attempt,
    AttemptControl,
    Candidate,
    ConfigurationError,
    ErrorKind,
    OrchestrationResult,
    Outcome,
    RequestSpec,
)
from .registry import ProviderRegistry

# How often a waiting attempt checks the cancel event
CANCEL_POLL_SECONDS = 0.05

# How long a stopped attempt may take to unwind before the run moves on
STOP_GRACE_SECONDS = 2.0


def run_request(
    spec: RequestSpec,
    registry: ProviderRegistry,
    cancel_event: Optional[threading.Event] = None,
) -> OrchestrationResult:
    """Resolve candidates for the request's operation kind and execute them."""
    try:
        candidates = registry.list_candidates(spec.operation_kind, spec.preferred_candidate_id)
        timeout = registry.timeout_for(spec.operation_kind)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return OrchestrationResult(
            success=False,
            attempts=[],
            error_kind=ErrorKind.CONFIGURATION_ERROR,
            message=str(e),
        )

    if spec.timeout_ms_override:
        timeout = spec.timeout_ms_override / 1000.0

    return execute(spec, candidates, timeout, cancel_event=cancel_event)


def run_with_budget(
    spec: RequestSpec,
    registry: ProviderRegistry,
    budget_ms: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> OrchestrationResult:
    """
    run_request for HTTP handlers.

    Uses the caller's cancel_event if given; otherwise cancels the run once the
    whole-request budget is spent.
    """
    timer = None
    if cancel_event is None and budget_ms:
        cancel_event = threading.Event()
        timer = threading.Timer(budget_ms / 1000.0, cancel_event.set)
        timer.daemon = True
        timer.start()
    try:
        return run_request(spec, registry, cancel_event=cancel_event)
    finally:
        if timer is not None:
            timer.cancel()


def execute(
    spec: RequestSpec,
    candidates: List[Candidate],
    timeout_seconds: float,
    cancel_event: Optional[threading.Event] = None,
) -> OrchestrationResult:
    """
    Try candidates in order until one succeeds or a fatal failure stops the run.

    Args:
        spec: the request; its parameters are handed to every candidate
        candidates: already ordered, duplicates removed
        timeout_seconds: per-attempt bound
        cancel_event: set by the caller to abort the run

    Returns:
        OrchestrationResult
    """
    started = time.monotonic()
    attempts: List[Attempt] = []

    if not candidates:
        message = f'No candidates configured for {spec.operation_kind}'
        print(f"Configuration error: {message}")
        return OrchestrationResult(
            success=False,
            attempts=attempts,
            error_kind=ErrorKind.CONFIGURATION_ERROR,
            message=message,
        )

    for candidate in candidates:
        if cancel_event is not None and cancel_event.is_set():
            return _cancelled(attempts, started)

        print(f"Trying candidate: {candidate.candidate_id} ({spec.operation_kind})")
        attempt_started = time.monotonic()
        outcome, cancelled = _run_attempt(candidate, spec, timeout_seconds, cancel_event)
        attempts.append(Attempt(candidate.candidate_id, outcome, _elapsed_ms(attempt_started)))

        if cancelled:
            return _cancelled(attempts, started)

        if outcome.is_success:
            print(f"Candidate {candidate.candidate_id} succeeded in {attempts[-1].latency_ms}ms")
            return OrchestrationResult(
                success=True,
                attempts=attempts,
                content=outcome.payload,
                candidate_used=candidate.candidate_id,
                candidate_label=candidate.display_name,
                message='ok',
                elapsed_ms=_elapsed_ms(started),
            )

        if outcome.is_fatal:
            print(f"Candidate {candidate.candidate_id} failed fatally: {outcome.reason}")
            return OrchestrationResult(
                success=False,
                attempts=attempts,
                error_kind=outcome.error_kind,
                message=_describe(candidate.candidate_id, outcome),
                elapsed_ms=_elapsed_ms(started),
            )

        print(f"Candidate {candidate.candidate_id} failed, trying next: {outcome.reason}")

    return OrchestrationResult(
        success=False,
        attempts=attempts,
        error_kind=ErrorKind.ALL_CANDIDATES_EXHAUSTED,
        message=_exhausted_message(attempts),
        elapsed_ms=_elapsed_ms(started),
    )


def _run_attempt(candidate, spec, timeout_seconds, cancel_event):
    """
    Returns (outcome, cancelled).

    A stopped call is waited on for STOP_GRACE_SECONDS before this returns.
    """
    control = AttemptControl(timeout_seconds)
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=1, thread_name_prefix=f'candidate-{candidate.candidate_id}'
    )
    try:
        future = executor.submit(_invoke_and_classify, candidate, spec.parameters, control)
        while True:
            remaining = control.remaining()
            if remaining <= 0 and not future.done():
                _stop_attempt(candidate, future, control)
                return Outcome.retryable('timeout', ErrorKind.TIMEOUT,
                                         detail=f'no response within {timeout_seconds:g}s'), False

            wait = min(CANCEL_POLL_SECONDS, remaining) if cancel_event is not None else remaining
            try:
                return future.result(timeout=wait), False
            except concurrent.futures.TimeoutError:
                if cancel_event is not None and cancel_event.is_set():
                    _stop_attempt(candidate, future, control)
                    return Outcome.cancelled(), True
    finally:
        executor.shutdown(wait=False)


def _stop_attempt(candidate, future, control):
    """Signal the call to stop and let it unwind before the next candidate starts."""
    control.stop()
    if future.cancel():
        return
    try:
        future.result(timeout=STOP_GRACE_SECONDS)
    except concurrent.futures.TimeoutError:
        print(f"Candidate {candidate.candidate_id} still running {STOP_GRACE_SECONDS:g}s after stop, moving on")


def _invoke_and_classify(candidate, parameters, control) -> Outcome:
    try:
        raw = candidate.invoke(parameters, control)
    except Exception as e:
        raw = e

    try:
        return candidate.classify(raw)
    except Exception as e:
        return Outcome.retryable('malformed response', ErrorKind.MALFORMED, detail=repr(e))


def _cancelled(attempts, started) -> OrchestrationResult:
    print("Request cancelled by caller, stopping")
    return OrchestrationResult(
        success=False,
        attempts=attempts,
        error_kind=ErrorKind.CANCELLED,
        message='Request was cancelled before a candidate succeeded',
        elapsed_ms=_elapsed_ms(started),
    )


def _exhausted_message(attempts: List[Attempt]) -> str:
    """First fatal outcome if any, otherwise the last retryable one."""
    chosen = next((a for a in attempts if a.outcome.is_fatal), None)
    if chosen is None:
        chosen = attempts[-1]
    return f'All {len(attempts)} candidates failed. {_describe(chosen.candidate_id, chosen.outcome)}'


def _describe(candidate_id: str, outcome: Outcome) -> str:
    message = f'{candidate_id}: {outcome.reason}'
    if outcome.detail and outcome.detail not in outcome.reason:
        message += f' ({outcome.detail})'
    return message


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)
