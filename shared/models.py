"""
Core types for the audioguide provider functions.

A Candidate is one backend the orchestrator may try. Every attempt against a
candidate produces exactly one Outcome; the orchestrator collects them into an
attempt log and returns a single OrchestrationResult to the HTTP handler.
"""

import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional


class ErrorKind:
    """Error taxonomy shared by outcomes, results and HTTP responses."""

    # Fatal per request
    AUTH_INVALID = 'AuthInvalid'
    RATE_LIMITED = 'RateLimited'

    # Retryable per candidate
    CANDIDATE_UNAVAILABLE = 'CandidateUnavailable'
    CONTENT_REFUSED = 'ContentRefused'
    MALFORMED = 'Malformed'
    TIMEOUT = 'Timeout'
    UPSTREAM_ERROR = 'UpstreamError'

    # Terminal
    ALL_CANDIDATES_EXHAUSTED = 'AllCandidatesExhausted'
    CANCELLED = 'Cancelled'
    CONFIGURATION_ERROR = 'ConfigurationError'
    INVALID_REQUEST = 'InvalidRequest'


class OperationKind:
    GENERATE_TEXT = 'generateText'
    TRANSLATE = 'translate'
    SYNTHESIZE_SPEECH = 'synthesizeSpeech'
    STORE_AUDIO = 'storeAudio'


class ConfigurationError(Exception):
    """Missing credentials or an unknown operation kind. Never retried."""


SUCCESS = 'success'
RETRYABLE = 'retryable'
FATAL = 'fatal'
CANCELLED = 'cancelled'


@dataclass(frozen=True)
class Outcome:
    """Classified result of a single candidate attempt."""

    kind: str
    reason: str = ''
    payload: Any = None
    error_kind: Optional[str] = None
    status_code: Optional[int] = None
    detail: Optional[str] = None

    @classmethod
    def success(cls, payload, status_code=200):
        return cls(kind=SUCCESS, reason='ok', payload=payload, status_code=status_code)

    @classmethod
    def retryable(cls, reason, error_kind=ErrorKind.UPSTREAM_ERROR, status_code=None, detail=None):
        return cls(kind=RETRYABLE, reason=reason, error_kind=error_kind,
                   status_code=status_code, detail=detail)

    @classmethod
    def fatal(cls, reason, error_kind, status_code=None, detail=None):
        return cls(kind=FATAL, reason=reason, error_kind=error_kind,
                   status_code=status_code, detail=detail)

    @classmethod
    def cancelled(cls, reason='cancelled'):
        return cls(kind=CANCELLED, reason=reason, error_kind=ErrorKind.CANCELLED)

    @property
    def is_success(self) -> bool:
        return self.kind == SUCCESS

    @property
    def is_fatal(self) -> bool:
        return self.kind == FATAL

    @property
    def is_retryable(self) -> bool:
        return self.kind == RETRYABLE

    @property
    def is_cancelled(self) -> bool:
        return self.kind == CANCELLED


class AttemptStopped(Exception):
    """Raised inside a candidate call once its attempt is stopped or out of time."""


class AttemptControl:
    """
    Deadline and stop signal for one attempt.

    The orchestrator hands one to every invoke call and calls stop() when the
    attempt times out or the request is cancelled. Candidates pass remaining()
    as their network timeout, call check() before each outbound step, and
    use wait() instead of time.sleep() so a stop wakes them immediately.
    """

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        self.deadline = time.monotonic() + timeout_seconds
        self._stop_event = threading.Event()

    def remaining(self) -> float:
        return max(self.deadline - time.monotonic(), 0.0)

    def stop(self):
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def check(self):
        if self.stopped:
            raise AttemptStopped('attempt stopped')
        if self.remaining() <= 0:
            raise AttemptStopped(f'no response within {self.timeout_seconds:g}s')

    def wait(self, seconds: float) -> bool:
        """Sleep up to seconds (never past the deadline). True if stopped meanwhile."""
        return self._stop_event.wait(min(seconds, self.remaining()))


@dataclass(frozen=True)
class Candidate:
    """
    One invokable backend.

    invoke(parameters, control) performs the outbound call and returns the raw
    provider response (usually a requests.Response). control is the attempt's
    AttemptControl. classify(raw) turns that raw response, or the exception
    invoke raised, into an Outcome.
    """

    candidate_id: str
    invoke: Callable[[Mapping[str, Any], AttemptControl], Any]
    classify: Callable[[Any], Outcome]
    label: str = ''

    @property
    def display_name(self) -> str:
        return self.label or self.candidate_id


@dataclass(frozen=True)
class RequestSpec:
    """The caller's logical ask. Parameters are frozen into a read-only mapping."""

    operation_kind: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    preferred_candidate_id: Optional[str] = None
    timeout_ms_override: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'parameters', MappingProxyType(dict(self.parameters)))

    def get(self, key: str, default=None):
        return self.parameters.get(key, default)


@dataclass(frozen=True)
class Attempt:
    """One AttemptLog entry."""

    candidate_id: str
    outcome: Outcome
    latency_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'candidateId': self.candidate_id,
            'outcomeKind': self.outcome.kind,
            'errorKind': self.outcome.error_kind,
            'reason': self.outcome.reason,
            'latencyMs': self.latency_ms,
        }


@dataclass(frozen=True)
class OrchestrationResult:
    """Terminal artifact of one orchestration run."""

    success: bool
    attempts: List[Attempt]
    content: Any = None
    candidate_used: Optional[str] = None
    candidate_label: Optional[str] = None
    error_kind: Optional[str] = None
    message: str = ''
    elapsed_ms: int = 0

    def attempts_as_dicts(self) -> List[Dict[str, Any]]:
        return [attempt.to_dict() for attempt in self.attempts]

    def failure_body(self) -> Dict[str, Any]:
        return {
            'success': False,
            'errorKind': self.error_kind,
            'message': self.message,
            'attempts': self.attempts_as_dicts(),
        }
