"""
HTTP boundary helpers shared by every Cloud Function.

Responses are (body, status, headers) tuples, the form functions_framework
accepts. Failures always come back as JSON with errorKind and message; stack
traces go to the logs only.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .models import ErrorKind, OrchestrationResult

CORS_HEADERS = {'Access-Control-Allow-Origin': '*'}

ERROR_STATUS = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.AUTH_INVALID: 401,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.CANCELLED: 499,
    ErrorKind.CONFIGURATION_ERROR: 500,
    ErrorKind.MALFORMED: 500,
    ErrorKind.ALL_CANDIDATES_EXHAUSTED: 502,
}


class InvalidRequest(ValueError):
    """Caller sent a request that cannot be processed. Maps to 400."""


def preflight_response(methods: str = 'POST') -> Tuple[str, int, Dict[str, str]]:
    headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Methods': f'{methods}, OPTIONS',
        'Access-Control-Allow-Headers': 'Content-Type, Authorization',
        'Access-Control-Max-Age': '3600'
    }
    return ('', 204, headers)


def json_response(body: Dict[str, Any], status: int = 200) -> Tuple[str, int, Dict[str, str]]:
    headers = dict(CORS_HEADERS)
    headers['Content-Type'] = 'application/json'
    return (json.dumps(body), status, headers)


def error_response(error_kind: str, message: str, status: Optional[int] = None, **extra):
    body = {'success': False, 'errorKind': error_kind, 'message': message}
    body.update(extra)
    return json_response(body, status or ERROR_STATUS.get(error_kind, 500))


def method_not_allowed(method: str):
    return error_response(ErrorKind.INVALID_REQUEST, f'Method not allowed: {method}', status=405)


def result_response(result: OrchestrationResult, success_body: Optional[Dict[str, Any]] = None):
    """Map an orchestration result onto an HTTP response."""
    if result.success:
        body = dict(success_body or {})
        body.setdefault('success', True)
        body['attempts'] = result.attempts_as_dicts()
        body['processed_at'] = utc_timestamp()
        return json_response(body, 200)

    return json_response(result.failure_body(), ERROR_STATUS.get(result.error_kind, 500))


def read_json_body(request) -> Dict[str, Any]:
    """Parse the request body as a JSON object or raise InvalidRequest."""
    request_json = request.get_json(silent=True)
    if request_json is None:
        raw_data = getattr(request, 'data', b'') or b''
        if isinstance(raw_data, bytes):
            raw_data = raw_data.decode('utf-8', errors='replace')
        if raw_data.strip():
            try:
                request_json = json.loads(raw_data)
            except ValueError:
                raise InvalidRequest('Request body is not valid JSON') from None
    if not isinstance(request_json, dict):
        raise InvalidRequest('Request body must be a JSON object')
    return request_json


def require_fields(body: Dict[str, Any], *names: str):
    missing = [name for name in names if body.get(name) in (None, '')]
    if missing:
        raise InvalidRequest(f"Missing required field: {', '.join(missing)}")


def text_field(body: Dict[str, Any], name: str, default: Optional[str] = '') -> Optional[str]:
    """Optional text field, stripped. Numbers are accepted as their text."""
    value = body.get(name)
    if value in (None, ''):
        return default
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidRequest(f'{name} must be a string')
    return str(value).strip() or default


def parse_int(value, name: str, default: int, low: int = 1, high: Optional[int] = None) -> int:
    if value in (None, ''):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{name} must be an integer') from None
    if number < low or (high is not None and number > high):
        bounds = f'between {low} and {high}' if high is not None else f'at least {low}'
        raise InvalidRequest(f'{name} must be {bounds}')
    return number


def parse_timeout_override(body: Dict[str, Any]) -> Optional[int]:
    value = body.get('timeoutMs')
    if value in (None, ''):
        return None
    return parse_int(value, 'timeoutMs', default=0, low=1, high=600000)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'
