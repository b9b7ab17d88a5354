"""
Speech Synthesizer Cloud Function

Turns audioguide text into MP3 audio.

English goes to OpenAI TTS first; other languages go to Google Cloud TTS
first for native pronunciation. Lovo and Speechify are further fallbacks.
Audio comes back as a data URL (or a provider download URL for Lovo and
Speechify) for the front-end to play or hand to audio-storage.
"""

import functions_framework
import os
import sys
import traceback

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.config import load_config
from shared.formatter import format_speech
from shared.http_utils import (
    InvalidRequest,
    error_response,
    json_response,
    method_not_allowed,
    parse_timeout_override,
    preflight_response,
    read_json_body,
    require_fields,
    result_response,
    text_field,
    utc_timestamp,
)
from shared.models import ConfigurationError, ErrorKind, OperationKind, RequestSpec
from shared.orchestrator import run_with_budget
from shared.providers import build_registry, default_speech_candidate, resolve_candidate_id
from shared.speech_providers import SUPPORTED_LANGUAGES, clamp_speed

# Configuration
CONFIG = load_config()
REGISTRY = build_registry(CONFIG)

# OpenAI TTS input limit
MAX_TEXT_LENGTH = 4096


def build_request_spec(body: dict) -> RequestSpec:
    require_fields(body, 'text')

    text = str(body['text'])
    if len(text) > MAX_TEXT_LENGTH:
        raise InvalidRequest(f'text exceeds {MAX_TEXT_LENGTH} characters')

    language = text_field(body, 'language', 'en-US')
    voice = text_field(body, 'voice', None)

    preferred = resolve_candidate_id(body.get('provider') or body.get('preferredProvider'),
                                     OperationKind.SYNTHESIZE_SPEECH)
    if not preferred:
        preferred = default_speech_candidate(language, voice)

    return RequestSpec(
        operation_kind=OperationKind.SYNTHESIZE_SPEECH,
        parameters={
            'text': text,
            'voice': voice,
            'language': language,
            'speed': clamp_speed(body.get('speed', 1.0)),
            'pitch': body.get('pitch', 0),
        },
        preferred_candidate_id=preferred,
        timeout_ms_override=parse_timeout_override(body),
    )


def health_payload() -> dict:
    return {
        'success': True,
        'message': 'Speech synthesizer is working',
        'candidates': REGISTRY.candidate_ids(OperationKind.SYNTHESIZE_SPEECH),
        'supportedLanguages': SUPPORTED_LANGUAGES,
        'timestamp': utc_timestamp(),
    }


@functions_framework.http
def synthesize_speech(request, cancel_event=None):
    """
    Main Cloud Function entry point.

    GET returns the configured providers. POST expects:
    {
        "text": "Welcome to the Colosseum...",
        "language": "it-IT",
        "voice": "nova",
        "speed": 1.0
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response('GET, POST')

    if request.method == 'GET':
        return json_response(health_payload())

    if request.method != 'POST':
        return method_not_allowed(request.method)

    try:
        spec = build_request_spec(read_json_body(request))
        print(f"Generating audio for {len(spec.get('text'))} chars in {spec.get('language')}, "
              f"preferred: {spec.preferred_candidate_id}")

        result = run_with_budget(spec, REGISTRY, CONFIG.request_budget_ms, cancel_event=cancel_event)
        if not result.success:
            return result_response(result)

        body = format_speech(result.content, spec, result.candidate_used,
                             label=result.candidate_label, elapsed_ms=result.elapsed_ms)
        return result_response(result, body)

    except InvalidRequest as e:
        return error_response(ErrorKind.INVALID_REQUEST, str(e))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return error_response(ErrorKind.CONFIGURATION_ERROR, str(e))
    except Exception as e:
        print(f"TTS error: {str(e)}\n{traceback.format_exc()}")
        return error_response('InternalError', 'TTS generation failed', status=500)
