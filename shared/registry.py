"""
Provider registry.

Holds the static, ordered candidate lists per operation kind. Lookups are pure:
list_candidates never mutates the registry and always returns a fresh list.
"""

from typing import Dict, List, Optional

from .models import Candidate, ConfigurationError

DEFAULT_TIMEOUT_SECONDS = 9.0


class ProviderRegistry:
    """Ordered candidates per operation kind, plus per-kind attempt timeouts."""

    def __init__(self):
        self._candidates: Dict[str, List[Candidate]] = {}
        self._timeouts: Dict[str, float] = {}

    def add_operation(self, operation_kind: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS):
        """Declare an operation kind, possibly with no candidates yet."""
        self._candidates.setdefault(operation_kind, [])
        self._timeouts[operation_kind] = timeout_seconds

    def register(self, operation_kind: str, candidate: Candidate):
        """Append a candidate. Registration order is priority order."""
        if operation_kind not in self._candidates:
            self.add_operation(operation_kind)
        self._candidates[operation_kind].append(candidate)

    def operation_kinds(self) -> List[str]:
        return list(self._candidates)

    def candidate_ids(self, operation_kind: str) -> List[str]:
        return [c.candidate_id for c in self._lookup(operation_kind)]

    def timeout_for(self, operation_kind: str) -> float:
        self._lookup(operation_kind)
        return self._timeouts.get(operation_kind, DEFAULT_TIMEOUT_SECONDS)

    def list_candidates(self, operation_kind: str, preferred_id: Optional[str] = None) -> List[Candidate]:
        """
        Candidates for an operation kind in the order they should be tried.

        The preferred candidate (if registered) goes first, the rest keep their
        registry order, and repeated ids appear only once.

        Raises:
            ConfigurationError: unknown operation kind
        """
        registered = self._lookup(operation_kind)

        ordered = []
        if preferred_id:
            ordered.extend(c for c in registered if c.candidate_id == preferred_id)
        ordered.extend(registered)

        seen = set()
        result = []
        for candidate in ordered:
            if candidate.candidate_id in seen:
                continue
            seen.add(candidate.candidate_id)
            result.append(candidate)
        return result

    def _lookup(self, operation_kind: str) -> List[Candidate]:
        try:
            return self._candidates[operation_kind]
        except KeyError:
            raise ConfigurationError(f'Unknown operation kind: {operation_kind}') from None
