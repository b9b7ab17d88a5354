"""
Audio Storage Cloud Function

Stores generated audioguide audio and returns a permanent public URL.

- POST uploads audio (Cloud Storage first, Cloudinary as fallback)
- GET ?guideId=... lists the audio stored for a guide
- DELETE removes a stored file by URL

When every backend fails the request fails. Returning the caller's own data
URL instead is an opt-in policy (STORAGE_DATA_URL_FALLBACK) and is always
labelled storage="dataUrl" with the failure attached.
"""

import functions_framework
import os
import sys
import traceback

from google.api_core import exceptions as google_exceptions

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.config import load_config, require
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
)
from shared.models import ConfigurationError, ErrorKind, OperationKind, RequestSpec
from shared.orchestrator import run_with_budget
from shared.providers import build_registry, resolve_candidate_id
from shared.storage_providers import (
    decode_audio_data,
    delete_gcs_object,
    get_storage_client,
    list_guide_files,
)

# Configuration
CONFIG = load_config()
REGISTRY = build_registry(CONFIG)

MAX_AUDIO_BYTES = 25 * 1024 * 1024


def build_request_spec(body: dict) -> RequestSpec:
    require_fields(body, 'audioData', 'fileName')

    try:
        audio = decode_audio_data(str(body['audioData']))
    except ValueError as e:
        raise InvalidRequest(str(e)) from None
    if not audio:
        raise InvalidRequest('audioData is empty')
    if len(audio) > MAX_AUDIO_BYTES:
        raise InvalidRequest(f'audioData exceeds {MAX_AUDIO_BYTES} bytes')

    return RequestSpec(
        operation_kind=OperationKind.STORE_AUDIO,
        parameters={
            'audioData': str(body['audioData']),
            'fileName': str(body['fileName']),
            'guideId': body.get('guideId'),
            'metadata': body.get('metadata'),
            'type': body.get('type') or 'audio',
        },
        preferred_candidate_id=resolve_candidate_id(body.get('provider'), OperationKind.STORE_AUDIO),
        timeout_ms_override=parse_timeout_override(body),
    )


def data_url_fallback(result, audio_data: str):
    """Hand the caller's data URL back, marked as not permanently stored."""
    print(f"Storage failed ({result.error_kind}), returning data URL")
    return json_response({
        'success': True,
        'url': audio_data,
        'storage': 'dataUrl',
        'permanent': False,
        'errorKind': result.error_kind,
        'warning': f'Audio was not stored: {result.message}',
        'attempts': result.attempts_as_dicts(),
    })


def upload(request, cancel_event=None):
    body = read_json_body(request)
    spec = build_request_spec(body)
    print(f"Uploading audio: {spec.get('fileName')} (guide {spec.get('guideId') or 'general'})")

    result = run_with_budget(spec, REGISTRY, CONFIG.request_budget_ms, cancel_event=cancel_event)
    if not result.success:
        if CONFIG.storage_data_url_fallback and result.error_kind != ErrorKind.CANCELLED:
            return data_url_fallback(result, spec.get('audioData'))
        return result_response(result)

    stored = dict(result.content)
    print(f"Upload successful: {stored.get('url')}")
    stored.update({
        'success': True,
        'candidateUsed': result.candidate_used,
        'downloadUrl': stored.get('url'),
        'permanent': True,
    })
    return result_response(result, stored)


def list_files(request):
    guide_id = request.args.get('guideId') if getattr(request, 'args', None) else None
    if not CONFIG.gcs_bucket:
        return json_response({'success': True, 'configured': False, 'files': []})
    if not guide_id:
        return json_response({'success': True, 'configured': True,
                              'message': 'Audio storage is working', 'files': []})

    client = get_storage_client(CONFIG.google_service_account)
    files = list_guide_files(client, CONFIG.gcs_bucket, guide_id)
    return json_response({'success': True, 'configured': True, 'files': files})


def delete_file(request):
    body = read_json_body(request)
    require_fields(body, 'url')
    bucket_name = require(CONFIG.gcs_bucket, 'GCS_BUCKET')

    client = get_storage_client(CONFIG.google_service_account)
    try:
        deleted = delete_gcs_object(client, bucket_name, body['url'])
    except google_exceptions.NotFound:
        return error_response('NotFound', 'File not found', status=404)
    if not deleted:
        raise InvalidRequest('url does not belong to the audio bucket')
    return json_response({'success': True, 'message': 'File deleted successfully'})


@functions_framework.http
def store_audio(request, cancel_event=None):
    """
    Main Cloud Function entry point.

    Expected JSON input for POST:
    {
        "audioData": "data:audio/mp3;base64,...",
        "fileName": "stop_1.mp3",
        "guideId": "rome-2024",
        "metadata": {"stop": 1}
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response('GET, POST, DELETE')

    try:
        if request.method == 'POST':
            return upload(request, cancel_event=cancel_event)
        if request.method == 'GET':
            return list_files(request)
        if request.method == 'DELETE':
            return delete_file(request)
        return method_not_allowed(request.method)

    except InvalidRequest as e:
        return error_response(ErrorKind.INVALID_REQUEST, str(e))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return error_response(ErrorKind.CONFIGURATION_ERROR, str(e))
    except google_exceptions.GoogleAPICallError as e:
        print(f"Cloud Storage error: {e}")
        return error_response(ErrorKind.UPSTREAM_ERROR, f'Cloud Storage error: {e.message}', status=502)
    except Exception as e:
        print(f"Storage error: {str(e)}\n{traceback.format_exc()}")
        return error_response('InternalError', 'Server error', status=500)
