"""
Guide Generator Cloud Function

Generates CloudGuide audioguide scripts from a destination description.

Responsibilities:
- Validate the generation request
- Build the audioguide prompt (or pass a raw prompt through)
- Try the configured LLM providers in order until one succeeds
- Wrap the generated text in the CloudGuide envelope

Does NOT:
- Synthesize audio (speech-synthesizer's job)
- Store generated content (audio-storage's job)
- Invent placeholder content when every provider fails
"""

import functions_framework
import os
import sys
import traceback

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.config import load_config
from shared.formatter import format_guide
from shared.http_utils import (
    InvalidRequest,
    error_response,
    method_not_allowed,
    parse_int,
    parse_timeout_override,
    preflight_response,
    read_json_body,
    result_response,
    text_field,
)
from shared.models import ConfigurationError, ErrorKind, OperationKind, RequestSpec
from shared.orchestrator import run_with_budget
from shared.prompts import DEFAULT_NUM_STOPS, DEFAULT_STOP_LENGTH, MAX_NUM_STOPS
from shared.providers import build_registry, resolve_candidate_id

# Configuration
CONFIG = load_config()
REGISTRY = build_registry(CONFIG)

GUIDE_TYPES = ['museum', 'city', 'trail', 'comprehensive']


def build_request_spec(body: dict) -> RequestSpec:
    """Validate the request body and turn it into a RequestSpec."""
    prompt = text_field(body, 'prompt')
    destination = text_field(body, 'destination')

    if not destination and not prompt:
        raise InvalidRequest('Missing required field: destination')

    num_stops = parse_int(body.get('numStops', body.get('stops')), 'numStops',
                          default=DEFAULT_NUM_STOPS, low=1, high=MAX_NUM_STOPS)
    stop_length = parse_int(body.get('stopLength'), 'stopLength',
                            default=DEFAULT_STOP_LENGTH, low=50, high=2000)

    website_refs = body.get('websiteRefs') or []
    if not isinstance(website_refs, list):
        raise InvalidRequest('websiteRefs must be a list')

    guide_type = (text_field(body, 'guideType') or text_field(body, 'tourType', 'city')).lower()

    parameters = {
        'destination': destination or None,
        'numStops': num_stops,
        'stopLength': stop_length,
        'guideType': guide_type,
        'style': text_field(body, 'style', 'informative'),
        'audience': text_field(body, 'audience', 'general'),
        'language': text_field(body, 'language', 'English'),
        'includeCoordinates': bool(body.get('includeCoordinates')),
        'websiteRefs': [str(ref) for ref in website_refs],
        'customPrompt': text_field(body, 'customPrompt', None),
    }
    if prompt:
        parameters['prompt'] = prompt

    preferred = body.get('provider') or body.get('preferredProvider')
    return RequestSpec(
        operation_kind=OperationKind.GENERATE_TEXT,
        parameters=parameters,
        preferred_candidate_id=resolve_candidate_id(preferred, OperationKind.GENERATE_TEXT),
        timeout_ms_override=parse_timeout_override(body),
    )


@functions_framework.http
def generate_guide(request, cancel_event=None):
    """
    Main Cloud Function entry point.

    Expected JSON input:
    {
        "destination": "Rome",
        "numStops": 8,
        "guideType": "city",
        "style": "storytelling",
        "audience": "families",
        "stopLength": 300,
        "language": "English",
        "provider": "claude"
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response('POST')

    if request.method != 'POST':
        return method_not_allowed(request.method)

    try:
        spec = build_request_spec(read_json_body(request))
        print(f"Generating {spec.get('numStops')} stops for {spec.get('destination') or 'custom prompt'}")

        result = run_with_budget(spec, REGISTRY, CONFIG.request_budget_ms, cancel_event=cancel_event)
        if not result.success:
            return result_response(result)

        body = format_guide(result.content, spec, result.candidate_used,
                            label=result.candidate_label, elapsed_ms=result.elapsed_ms)
        body.update({
            'destination': spec.get('destination'),
            'stops': spec.get('numStops'),
            'model': result.candidate_label,
        })
        return result_response(result, body)

    except InvalidRequest as e:
        return error_response(ErrorKind.INVALID_REQUEST, str(e))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return error_response(ErrorKind.CONFIGURATION_ERROR, str(e))
    except Exception as e:
        print(f"Error: {str(e)}\n{traceback.format_exc()}")
        return error_response('InternalError', 'Internal server error', status=500)
