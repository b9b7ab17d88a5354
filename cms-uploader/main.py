"""
CloudGuide CMS Uploader Cloud Function

Uploads a finished audio file straight into the institution's CloudGuide CMS
account:

1. Open the CMS login page and read its CSRF token
2. Log in with the institution credentials (keeps the session cookie)
3. Post the audio and its details as multipart form data

Accepts either a multipart form (fields plus an "audio" file) or JSON with a
base64 "audioData". POST {"test": true}, or GET, only reports whether the
CMS credentials are configured.
"""

import functions_framework
import os
import re
import sys
import traceback
from typing import Optional

import requests
from bs4 import BeautifulSoup

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.config import TRUE_VALUES, load_config, require
from shared.http_utils import (
    ERROR_STATUS,
    InvalidRequest,
    error_response,
    json_response,
    method_not_allowed,
    preflight_response,
    read_json_body,
    require_fields,
    text_field,
    utc_timestamp,
)
from shared.models import ConfigurationError, ErrorKind, Outcome
from shared.normalizer import classify_error_status
from shared.storage_providers import decode_audio_data

# Configuration
CONFIG = load_config()

REQUEST_TIMEOUT = 30
MAX_AUDIO_BYTES = 25 * 1024 * 1024
USER_AGENT = 'Mozilla/5.0 (compatible; CloudGuideUploader/1.0)'

# Hidden form fields frameworks use for the login CSRF token
CSRF_INPUT_NAMES = ['_token', 'csrf_token', 'csrfmiddlewaretoken', 'authenticity_token']
CSRF_META_PATTERN = re.compile(r'^csrf[-_]token$', re.I)


class CmsRequestFailed(Exception):
    """A CMS call failed. Carries the classified outcome."""

    def __init__(self, stage: str, outcome: Outcome):
        super().__init__(f'CloudGuide {stage} failed: {outcome.reason}')
        self.stage = stage
        self.outcome = outcome


def extract_csrf_token(html: str) -> Optional[str]:
    """Find the CSRF token on a page, from a meta tag or a hidden form field."""
    if not html:
        return None

    soup = BeautifulSoup(html, 'html.parser')
    meta = soup.find('meta', attrs={'name': CSRF_META_PATTERN})
    if meta and meta.get('content'):
        return meta['content']

    for name in CSRF_INPUT_NAMES:
        field = soup.find('input', attrs={'name': name})
        if field and field.get('value'):
            return field['value']
    return None


def check_response(response, stage: str):
    if not response.ok:
        raise CmsRequestFailed(stage, classify_error_status(response.status_code, response.text))


def login(session, base_url: str, username: str, password: str) -> Optional[str]:
    """Log the session in. Returns the CSRF token for later calls, if the CMS uses one."""
    print("Logging into CloudGuide...")
    page = session.get(f'{base_url}/login', timeout=REQUEST_TIMEOUT)
    check_response(page, 'login page')
    token = extract_csrf_token(page.text)

    form = {'username': username, 'password': password}
    headers = {'Accept': 'application/json'}
    if token:
        form['_token'] = token
        headers['X-CSRF-Token'] = token

    response = session.post(f'{base_url}/login', data=form, headers=headers, timeout=REQUEST_TIMEOUT)
    check_response(response, 'login')
    if not session.cookies:
        raise CmsRequestFailed('login', Outcome.fatal('no session cookie returned', ErrorKind.AUTH_INVALID,
                                                      status_code=response.status_code))
    return token


def upload_audio(session, base_url: str, token: Optional[str], upload: dict, institution_uuid: str) -> dict:
    """Post the audio to the CMS. Returns the CMS's JSON reply (empty if it sent none)."""
    print(f"Login successful, uploading audio: {upload['fileName']}")
    headers = {'Accept': 'application/json'}
    if token:
        headers['X-CSRF-Token'] = token

    response = session.post(
        f'{base_url}/api/audio/upload',
        data={
            'title': upload['title'],
            'description': upload['description'],
            'language': upload['language'],
            'institution_uuid': institution_uuid,
            'exhibit_id': upload['exhibitId'],
        },
        files={'audio': (upload['fileName'], upload['audio'], upload['contentType'])},
        headers=headers,
        timeout=REQUEST_TIMEOUT,
    )
    check_response(response, 'upload')

    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def read_upload(request) -> dict:
    """Audio and details from a multipart form or a JSON body."""
    files = getattr(request, 'files', None) or {}
    if 'audio' in files:
        fields = request.form
        audio_file = files['audio']
        audio = audio_file.read()
        file_name = audio_file.filename or 'audio.mp3'
        content_type = audio_file.mimetype or 'audio/mpeg'
    else:
        fields = read_json_body(request)
        require_fields(fields, 'audioData')
        try:
            audio = decode_audio_data(str(fields['audioData']))
        except ValueError as e:
            raise InvalidRequest(str(e)) from None
        file_name = text_field(fields, 'fileName', 'audio.mp3')
        content_type = 'audio/mpeg'

    if not audio:
        raise InvalidRequest('No audio file provided')
    if len(audio) > MAX_AUDIO_BYTES:
        raise InvalidRequest(f'audio exceeds {MAX_AUDIO_BYTES} bytes')

    return {
        'title': text_field(fields, 'title', 'Untitled'),
        'description': text_field(fields, 'description'),
        'language': text_field(fields, 'language', 'en'),
        'exhibitId': text_field(fields, 'exhibitId'),
        'fileName': file_name,
        'contentType': content_type,
        'audio': audio,
    }


def is_test_request(request) -> bool:
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return bool(body.get('test'))
    form = getattr(request, 'form', None) or {}
    return str(form.get('test', '')).lower() in TRUE_VALUES


def status_payload() -> dict:
    return {
        'success': True,
        'configured': CONFIG.cloudguide_configured,
        'message': 'CloudGuide upload endpoint is ready',
    }


@functions_framework.http
def upload_to_cloudguide(request):
    """
    Main Cloud Function entry point.

    Expected multipart fields: title, description, language, exhibitId and
    an "audio" file. JSON alternative:
    {
        "title": "Stop 1 - Entrance",
        "language": "en",
        "exhibitId": "42",
        "fileName": "stop_1.mp3",
        "audioData": "data:audio/mp3;base64,..."
    }
    """
    if request.method == 'OPTIONS':
        return preflight_response('GET, POST')

    if request.method == 'GET':
        return json_response(status_payload())

    if request.method != 'POST':
        return method_not_allowed(request.method)

    try:
        if is_test_request(request):
            return json_response(status_payload())

        upload = read_upload(request)
        username = require(CONFIG.cloudguide_username, 'CLOUDGUIDE_USERNAME')
        password = require(CONFIG.cloudguide_password, 'CLOUDGUIDE_PASSWORD')
        institution_uuid = require(CONFIG.cloudguide_institution_uuid, 'CLOUDGUIDE_INSTITUTION_UUID')

        with requests.Session() as session:
            session.headers['User-Agent'] = USER_AGENT
            token = login(session, CONFIG.cloudguide_base_url, username, password)
            reply = upload_audio(session, CONFIG.cloudguide_base_url, token, upload, institution_uuid)

        print("Upload successful!")
        return json_response({
            'success': True,
            'message': 'Audio uploaded to CloudGuide successfully',
            'data': {
                'title': upload['title'],
                'language': upload['language'],
                'uploadId': reply.get('id') or 'unknown',
                'timestamp': utc_timestamp(),
            },
        })

    except InvalidRequest as e:
        return error_response(ErrorKind.INVALID_REQUEST, str(e))
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return error_response(ErrorKind.CONFIGURATION_ERROR, str(e))
    except CmsRequestFailed as e:
        print(f"CloudGuide upload error: {e}")
        error_kind = e.outcome.error_kind
        return error_response(error_kind, str(e), status=ERROR_STATUS.get(error_kind, 502),
                              details=e.outcome.detail)
    except requests.exceptions.Timeout:
        print("CloudGuide upload error: request timed out")
        return error_response(ErrorKind.TIMEOUT, 'CloudGuide did not respond in time', status=504)
    except requests.exceptions.RequestException as e:
        print(f"CloudGuide upload error: {e}")
        return error_response(ErrorKind.UPSTREAM_ERROR, f'CloudGuide request failed: {e}', status=502)
    except Exception as e:
        print(f"Upload error: {str(e)}\n{traceback.format_exc()}")
        return error_response('InternalError', 'Upload failed', status=500)
