"""
Guide Translator Cloud Function

Translates a generated audioguide script into another language while keeping
its STOP headers and layout intact.

Does NOT:
- Re-synthesize audio for the translated text
- Detect the source language (the caller states it)
"""

import functions_framework
import os
import sys
import traceback

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.config import load_config
from shared.formatter import format_translation
from shared.http_utils import (
    InvalidRequest,
    error_response,
    method_not_allowed,
    parse_timeout_override,
    preflight_response,
    read_json_body,
    require_fields,
    result_response,
)
from shared.models import ConfigurationError, ErrorKind, OperationKind, RequestSpec
from shared.orchestrator import run_with_budget
from shared.providers import build_registry, resolve_candidate_id

# Configuration
CONFIG = load_config()
REGISTRY = build_registry(CONFIG)

MAX_TEXT_LENGTH = 50000


def build_request_spec(body: dict) -> RequestSpec:
    require_fields(body, 'text')
    if not body.get('fromLanguage') or not body.get('toLanguage'):
        raise InvalidRequest('Source and target languages are required')

    text = str(body['text'])
    if len(text) > MAX_TEXT_LENGTH:
        raise InvalidRequest(f'text exceeds {MAX_TEXT_LENGTH} characters')

    preferred = body.get('provider') or body.get('preferredProvider')
    return RequestSpec(
        operation_kind=OperationKind.TRANSLATE,
        parameters={
            'text': text,
            'fromLanguage': str(body['fromLanguage']),
            'toLanguage': str(body['toLanguage']),
        },
        preferred_candidate_id=resolve_candidate_id(preferred, OperationKind.TRANSLATE),
        timeout_ms_override=parse_timeout_override(body),
    )


@functions_framework.http
def translate_guide(request, cancel_event=None):
    """
    Main Cloud Function entry point.

    Expected JSON input:
    {
        "text": "STOP 1: INTRODUCTION ...",
        "fromLanguage": "English",
        "toLanguage": "Spanish",
        "provider": "deepseek"
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response('POST')

    if request.method != 'POST':
        return method_not_allowed(request.method)

    try:
        spec = build_request_spec(read_json_body(request))
        print(f"Translating from {spec.get('fromLanguage')} to {spec.get('toLanguage')}")

        result = run_with_budget(spec, REGISTRY, CONFIG.request_budget_ms, cancel_event=cancel_event)
        if not result.success:
            return result_response(result)

        body = format_translation(result.content, spec, result.candidate_used,
                                  label=result.candidate_label, elapsed_ms=result.elapsed_ms)
        body['model'] = result.candidate_label
        return result_response(result, body)

    except InvalidRequest as e:
        return error_response(ErrorKind.INVALID_REQUEST, str(e))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return error_response(ErrorKind.CONFIGURATION_ERROR, str(e))
    except Exception as e:
        print(f"Translation error: {str(e)}\n{traceback.format_exc()}")
        return error_response('InternalError', 'Internal server error', status=500)
