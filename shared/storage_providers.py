"""
Object storage candidates for generated audio.

Google Cloud Storage is tried first, Cloudinary second. Both hand back a
public URL; nothing about the stored object is kept here.
"""

import base64
import binascii
import hashlib
import json
import re
import time
from typing import Optional

import requests
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage
from google.oauth2 import service_account

from .models import AttemptControl, AttemptStopped, Candidate, ErrorKind, Outcome
from .normalizer import MalformedResponse, classify_error_status, classify_exception, classify_http_response

SCOPES = ['https://www.googleapis.com/auth/cloud-platform']
GCS_PUBLIC_URL = 'https://storage.googleapis.com'
AUDIO_PREFIX = 'audioguides'
CACHE_CONTROL = 'public, max-age=31536000'

CLOUDINARY_UPLOAD_URL = 'https://api.cloudinary.com/v1_1/{cloud_name}/{resource_type}/upload'
CLOUDINARY_DESTROY_URL = 'https://api.cloudinary.com/v1_1/{cloud_name}/{resource_type}/destroy'

# Bound for deleting an upload that arrived after its attempt was stopped
CLEANUP_TIMEOUT_SECONDS = 5.0


def get_storage_client(service_account_json: Optional[str] = None):
    """Initialize Cloud Storage client."""
    if service_account_json:
        creds_dict = json.loads(service_account_json)
        creds = service_account.Credentials.from_service_account_info(
            creds_dict,
            scopes=SCOPES
        )
        return storage.Client(credentials=creds, project=creds_dict.get('project_id'))
    # Use default credentials in Cloud Functions
    return storage.Client()


def decode_audio_data(audio_data: str) -> bytes:
    """Accept either a data URL or bare base64."""
    if 'base64,' in audio_data:
        audio_data = audio_data.split('base64,', 1)[1]
    try:
        return base64.b64decode(audio_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f'audioData is not valid base64: {e}') from None


def safe_stem(file_name: str) -> str:
    stem = re.sub(r'\.[^/.]+$', '', file_name or 'audio')
    stem = re.sub(r'[^A-Za-z0-9_-]+', '_', stem).strip('_')
    return stem or 'audio'


def guide_prefix(guide_id: Optional[str]) -> str:
    return f"{AUDIO_PREFIX}/{safe_stem(guide_id) if guide_id else 'general'}/"


def public_url(bucket_name: str, blob_name: str) -> str:
    return f"{GCS_PUBLIC_URL}/{bucket_name}/{blob_name}"


def upload_audio_to_gcs(client, bucket_name: str, parameters, timestamp: int, control: AttemptControl) -> dict:
    """
    Upload decoded audio (and optional metadata JSON) and return its public URL.

    Every call is bounded by the attempt's remaining time. An upload that
    completes after the attempt was stopped is deleted again before the
    next storage candidate runs.
    """
    bucket = client.bucket(bucket_name)
    prefix = guide_prefix(parameters.get('guideId'))
    blob_name = f"{prefix}{safe_stem(parameters['fileName'])}_{timestamp}.mp3"

    blob = bucket.blob(blob_name)
    blob.cache_control = CACHE_CONTROL
    audio = decode_audio_data(parameters['audioData'])
    control.check()
    blob.upload_from_string(audio, content_type='audio/mpeg', timeout=control.remaining())
    try:
        control.check()
        blob.reload(timeout=control.remaining())
    except Exception:
        discard_blob(blob)
        raise

    metadata = parameters.get('metadata')
    if metadata:
        try:
            control.check()
            meta_blob = bucket.blob(f"{prefix}metadata_{timestamp}.json")
            meta_blob.upload_from_string(json.dumps(metadata), content_type='application/json',
                                         timeout=control.remaining())
        except (google_exceptions.GoogleAPICallError, AttemptStopped) as e:
            print(f"Metadata save skipped: {e}")

    return {
        'url': public_url(bucket_name, blob_name),
        'pathname': blob_name,
        'size': blob.size,
        'storage': 'gcs',
    }


def discard_blob(blob):
    """Remove an object whose upload will not be reported."""
    print(f"Removing unreported upload: {blob.name}")
    try:
        blob.delete(timeout=CLEANUP_TIMEOUT_SECONDS)
    except google_exceptions.GoogleAPICallError as e:
        print(f"Could not remove {blob.name}: {e}")


def list_guide_files(client, bucket_name: str, guide_id: str) -> list:
    blobs = client.list_blobs(bucket_name, prefix=guide_prefix(guide_id), max_results=100)
    return [
        {
            'url': public_url(bucket_name, blob.name),
            'pathname': blob.name,
            'size': blob.size,
            'uploadedAt': blob.time_created.isoformat() if blob.time_created else None,
        }
        for blob in blobs
    ]


def blob_name_from_url(bucket_name: str, url: str) -> Optional[str]:
    prefix = f"{GCS_PUBLIC_URL}/{bucket_name}/"
    if url.startswith(prefix):
        return url[len(prefix):]
    return None


def delete_gcs_object(client, bucket_name: str, url: str) -> bool:
    """Delete a stored object by its public URL. Returns False for foreign URLs."""
    blob_name = blob_name_from_url(bucket_name, url)
    if not blob_name:
        return False
    client.bucket(bucket_name).blob(blob_name).delete()
    return True


def classify_gcs(raw) -> Outcome:
    if isinstance(raw, dict):
        if not raw.get('url'):
            return Outcome.retryable('malformed response', ErrorKind.MALFORMED, detail='upload returned no URL')
        return Outcome.success(raw)
    if isinstance(raw, google_exceptions.GoogleAPICallError) and raw.code:
        return classify_error_status(int(raw.code), raw.message or str(raw))
    if isinstance(raw, auth_exceptions.GoogleAuthError):
        return Outcome.retryable('candidate unavailable', ErrorKind.CANDIDATE_UNAVAILABLE, detail=str(raw))
    if isinstance(raw, ValueError):
        return Outcome.retryable('malformed response', ErrorKind.MALFORMED, detail=str(raw))
    return classify_exception(raw)


def gcs_candidate(bucket_name: str, service_account_json: Optional[str] = None, client_factory=None) -> Candidate:
    client_factory = client_factory or get_storage_client

    def invoke(parameters, control):
        control.check()
        client = client_factory(service_account_json)
        return upload_audio_to_gcs(client, bucket_name, parameters, int(time.time() * 1000), control)

    return Candidate('gcs', invoke, classify_gcs, label='Google Cloud Storage')


# ============================================================================
# Cloudinary
# ============================================================================

def cloudinary_target(file_type: str, file_name: str):
    """Returns (folder, resource_type) for an upload."""
    if file_type == 'audio' or 'audio' in (file_name or ''):
        # Cloudinary stores audio under the video resource type
        return 'cloudguide/audio', 'video'
    if file_type == 'json' or (file_name or '').endswith('.json'):
        return 'cloudguide/guides', 'raw'
    return 'cloudguide/files', 'auto'


def cloudinary_signature(params: dict, api_secret: str) -> str:
    """SHA-256 over the alphabetically sorted params followed by the secret."""
    to_sign = '&'.join(f'{key}={params[key]}' for key in sorted(params))
    return hashlib.sha256(f'{to_sign}{api_secret}'.encode('utf-8')).hexdigest()


def extract_cloudinary_upload(data: dict) -> dict:
    if not data.get('secure_url'):
        raise MalformedResponse('Cloudinary response has no secure_url')
    return {
        'url': data['secure_url'],
        'publicId': data.get('public_id'),
        'format': data.get('format'),
        'size': data.get('bytes'),
        'storage': 'cloudinary',
    }


def cloudinary_destroy(cloud_name: str, api_key: str, api_secret: str, public_id: str, resource_type: str):
    """Delete an uploaded asset; failures are logged, not raised."""
    signed = {'public_id': public_id, 'timestamp': int(time.time())}
    try:
        response = requests.post(
            CLOUDINARY_DESTROY_URL.format(cloud_name=cloud_name, resource_type=resource_type),
            data={
                **signed,
                'api_key': api_key,
                'signature': cloudinary_signature(signed, api_secret),
                'signature_algorithm': 'sha256',
            },
            timeout=CLEANUP_TIMEOUT_SECONDS,
        )
        if not response.ok:
            print(f"Could not remove Cloudinary asset {public_id}: HTTP {response.status_code}")
    except requests.exceptions.RequestException as e:
        print(f"Could not remove Cloudinary asset {public_id}: {e}")


def cloudinary_candidate(cloud_name: str, api_key: str, api_secret: str) -> Candidate:
    def invoke(parameters, control):
        control.check()
        timestamp = int(time.time())
        folder, resource_type = cloudinary_target(parameters.get('type', 'audio'), parameters['fileName'])
        public_id = f"{safe_stem(parameters['fileName'])}_{timestamp}"

        signed = {'folder': folder, 'public_id': public_id, 'timestamp': timestamp}
        audio_data = parameters['audioData']
        if not audio_data.startswith('data:'):
            audio_data = f'data:audio/mpeg;base64,{audio_data}'

        response = requests.post(
            CLOUDINARY_UPLOAD_URL.format(cloud_name=cloud_name, resource_type=resource_type),
            data={
                **signed,
                'file': audio_data,
                'api_key': api_key,
                'signature': cloudinary_signature(signed, api_secret),
                'signature_algorithm': 'sha256',
            },
            timeout=control.remaining(),
        )
        if response.ok and control.stopped:
            print(f"Removing unreported upload: {folder}/{public_id}")
            cloudinary_destroy(cloud_name, api_key, api_secret, f'{folder}/{public_id}', resource_type)
            raise AttemptStopped('upload finished after the attempt was stopped')
        return response

    return Candidate(
        'cloudinary',
        invoke,
        lambda raw: classify_http_response(raw, extract_cloudinary_upload),
        label='Cloudinary',
    )
