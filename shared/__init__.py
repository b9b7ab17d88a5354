"""Shared provider orchestration for the CloudGuide audioguide functions."""

from .models import (
    ErrorKind,
    OperationKind,
    ConfigurationError,
    Outcome,
    AttemptControl,
    AttemptStopped,
    Candidate,
    RequestSpec,
    Attempt,
    OrchestrationResult,
)

from .registry import ProviderRegistry

from .orchestrator import (
    execute,
    run_request,
    run_with_budget,
)

from .formatter import (
    format_guide,
    format_speech,
    format_translation,
)

from .config import Config, load_config
from .providers import build_registry, resolve_candidate_id

__all__ = [
    # Core types
    'ErrorKind',
    'OperationKind',
    'ConfigurationError',
    'Outcome',
    'AttemptControl',
    'AttemptStopped',
    'Candidate',
    'RequestSpec',
    'Attempt',
    'OrchestrationResult',
    # Registry and orchestration
    'ProviderRegistry',
    'execute',
    'run_request',
    'run_with_budget',
    # Envelope formatting
    'format_guide',
    'format_speech',
    'format_translation',
    # Wiring
    'Config',
    'load_config',
    'build_registry',
    'resolve_candidate_id',
]
