"""
Shared pytest fixtures for the CloudGuide function tests.
"""

import pytest
import sys
import importlib.util
from pathlib import Path

from shared.config import load_config
from shared.models import Candidate, Outcome
from shared.normalizer import classify_exception
from shared.providers import build_registry

# Project root for finding Cloud Function modules
PROJECT_ROOT = Path(__file__).parent.parent


def _load_module_from_path(module_name: str, file_path: Path):
    """Load a module from a specific file path."""
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


# Load Cloud Function modules with unique names at module load time
_guide_generator_module = _load_module_from_path(
    'guide_generator_main',
    PROJECT_ROOT / 'guide-generator' / 'main.py'
)

_guide_translator_module = _load_module_from_path(
    'guide_translator_main',
    PROJECT_ROOT / 'guide-translator' / 'main.py'
)

_speech_synthesizer_module = _load_module_from_path(
    'speech_synthesizer_main',
    PROJECT_ROOT / 'speech-synthesizer' / 'main.py'
)

_audio_storage_module = _load_module_from_path(
    'audio_storage_main',
    PROJECT_ROOT / 'audio-storage' / 'main.py'
)

_submission_mailer_module = _load_module_from_path(
    'submission_mailer_main',
    PROJECT_ROOT / 'submission-mailer' / 'main.py'
)

_cms_uploader_module = _load_module_from_path(
    'cms_uploader_main',
    PROJECT_ROOT / 'cms-uploader' / 'main.py'
)


# ============================================================================
# Function module fixtures
# ============================================================================

@pytest.fixture
def guide_generator_module():
    return _guide_generator_module


@pytest.fixture
def guide_translator_module():
    return _guide_translator_module


@pytest.fixture
def speech_synthesizer_module():
    return _speech_synthesizer_module


@pytest.fixture
def audio_storage_module():
    return _audio_storage_module


@pytest.fixture
def submission_mailer_module():
    return _submission_mailer_module


@pytest.fixture
def cms_uploader_module():
    return _cms_uploader_module


@pytest.fixture
def configure(monkeypatch):
    """
    Point a function module at a config built from the given env vars.

    Rebuilds the module's REGISTRY (when it has one) from the same config,
    so each test controls exactly which providers exist.
    """
    def _configure(module, **environ):
        config = load_config(environ)
        monkeypatch.setattr(module, 'CONFIG', config)
        if hasattr(module, 'REGISTRY'):
            monkeypatch.setattr(module, 'REGISTRY', build_registry(config))
        return config

    return _configure


# ============================================================================
# Core fixtures
# ============================================================================

@pytest.fixture
def make_candidate():
    """
    Factory for in-memory candidates.

    `result` is either an Outcome (returned by classify) or an exception
    instance (raised by invoke). `calls` records every invocation. A delayed
    candidate waits on its AttemptControl, so a stop ends it early.
    """
    def _make(candidate_id, result=None, delay=0.0, calls=None, label=''):
        if result is None:
            result = Outcome.success(f'content from {candidate_id}')

        def invoke(parameters, control):
            if calls is not None:
                calls.append(candidate_id)
            if delay:
                control.wait(delay)
                control.check()
            if isinstance(result, BaseException):
                raise result
            return result

        def classify(raw):
            if isinstance(raw, Outcome):
                return raw
            return classify_exception(raw)

        return Candidate(candidate_id, invoke, classify, label=label)

    return _make


@pytest.fixture
def mock_flask_request():
    """Factory for creating mock Flask request objects."""
    class MockRequest:
        def __init__(self, json_data=None, method='POST', args=None, data=b'', form=None, files=None):
            self._json = json_data
            self.method = method
            self.args = args or {}
            self.data = data
            self.form = form or {}
            self.files = files or {}

        def get_json(self, force=False, silent=False):
            return self._json

    return MockRequest


@pytest.fixture
def rome_request():
    """Typical guide generation request body."""
    return {
        'destination': 'Rome',
        'numStops': 5,
        'guideType': 'city',
        'style': 'storytelling',
        'language': 'English',
    }


@pytest.fixture
def claude_success_body():
    return {
        'id': 'msg_01',
        'type': 'message',
        'role': 'assistant',
        'stop_reason': 'end_turn',
        'content': [{'type': 'text', 'text': 'STOP 1: INTRODUCTION\n------\nWelcome to Rome.'}],
    }


@pytest.fixture
def chat_success_body():
    return {
        'id': 'chatcmpl-1',
        'choices': [{
            'index': 0,
            'finish_reason': 'stop',
            'message': {'role': 'assistant', 'content': 'STOP 1: INTRODUCTION\n------\nWelcome to Rome.'},
        }],
    }
