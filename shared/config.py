"""
Configuration for the provider functions.

All settings come from environment variables set on the Cloud Function.
There are no built-in fallback keys: a provider without credentials is simply
not registered, and asking for a required value that is absent raises
ConfigurationError.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .models import ConfigurationError

TRUE_VALUES = ('1', 'true', 'yes', 'on')

DEFAULT_TEXT_TIMEOUT_MS = 9000
DEFAULT_TRANSLATE_TIMEOUT_MS = 9000
DEFAULT_SPEECH_TIMEOUT_MS = 30000
DEFAULT_STORAGE_TIMEOUT_MS = 15000

DEFAULT_CLOUDGUIDE_BASE_URL = 'https://app.cloudguide.me'


@dataclass(frozen=True)
class Config:
    # LLM providers
    claude_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    deepseek_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    huggingface_api_key: Optional[str] = None
    huggingface_enabled: bool = False

    # TTS providers
    google_cloud_api_key: Optional[str] = None
    lovo_api_key: Optional[str] = None
    speechify_api_key: Optional[str] = None

    # Storage
    gcs_bucket: Optional[str] = None
    google_service_account: Optional[str] = None
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    storage_data_url_fallback: bool = False

    # Email
    email_user: Optional[str] = None
    email_pass: Optional[str] = None
    admin_email: Optional[str] = None
    smtp_host: str = 'smtp.gmail.com'
    smtp_port: int = 465
    email_mock_mode: bool = False

    # CloudGuide CMS
    cloudguide_username: Optional[str] = None
    cloudguide_password: Optional[str] = None
    cloudguide_institution_uuid: Optional[str] = None
    cloudguide_base_url: str = DEFAULT_CLOUDGUIDE_BASE_URL

    # Per-operation attempt timeouts
    text_timeout_ms: int = DEFAULT_TEXT_TIMEOUT_MS
    translate_timeout_ms: int = DEFAULT_TRANSLATE_TIMEOUT_MS
    speech_timeout_ms: int = DEFAULT_SPEECH_TIMEOUT_MS
    storage_timeout_ms: int = DEFAULT_STORAGE_TIMEOUT_MS

    # Whole-request budget; when it runs out the remaining attempts are cancelled
    request_budget_ms: Optional[int] = None

    @property
    def cloudinary_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)

    @property
    def email_configured(self) -> bool:
        return bool(self.email_user and self.email_pass)

    @property
    def cloudguide_configured(self) -> bool:
        return bool(self.cloudguide_username and self.cloudguide_password and self.cloudguide_institution_uuid)


def _flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, '').strip().lower() in TRUE_VALUES


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f'{name} must be an integer, got {value!r}') from None


def _str(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """Build a Config from the environment (os.environ by default)."""
    if environ is None:
        environ = os.environ

    email_user = _str(environ, 'EMAIL_USER')

    return Config(
        claude_api_key=_str(environ, 'CLAUDE_API_KEY'),
        openai_api_key=_str(environ, 'OPENAI_API_KEY'),
        deepseek_api_key=_str(environ, 'DEEPSEEK_API_KEY'),
        groq_api_key=_str(environ, 'GROQ_API_KEY'),
        huggingface_api_key=_str(environ, 'HUGGINGFACE_API_KEY'),
        # The inference API also answers anonymously, so it can be switched on without a key
        huggingface_enabled=bool(_str(environ, 'HUGGINGFACE_API_KEY')) or _flag(environ, 'HUGGINGFACE_ENABLED'),
        google_cloud_api_key=_str(environ, 'GOOGLE_CLOUD_API_KEY'),
        lovo_api_key=_str(environ, 'LOVO_API_KEY'),
        speechify_api_key=_str(environ, 'SPEECHIFY_API_KEY'),
        gcs_bucket=_str(environ, 'GCS_BUCKET'),
        google_service_account=_str(environ, 'GOOGLE_SERVICE_ACCOUNT'),
        cloudinary_cloud_name=_str(environ, 'CLOUDINARY_CLOUD_NAME'),
        cloudinary_api_key=_str(environ, 'CLOUDINARY_API_KEY'),
        cloudinary_api_secret=_str(environ, 'CLOUDINARY_API_SECRET'),
        storage_data_url_fallback=_flag(environ, 'STORAGE_DATA_URL_FALLBACK'),
        email_user=email_user,
        email_pass=_str(environ, 'EMAIL_PASS'),
        admin_email=_str(environ, 'ADMIN_EMAIL') or email_user,
        smtp_host=_str(environ, 'SMTP_HOST') or 'smtp.gmail.com',
        smtp_port=_int(environ, 'SMTP_PORT', 465),
        email_mock_mode=_flag(environ, 'EMAIL_MOCK_MODE'),
        cloudguide_username=_str(environ, 'CLOUDGUIDE_USERNAME'),
        cloudguide_password=_str(environ, 'CLOUDGUIDE_PASSWORD'),
        cloudguide_institution_uuid=_str(environ, 'CLOUDGUIDE_INSTITUTION_UUID'),
        cloudguide_base_url=(_str(environ, 'CLOUDGUIDE_BASE_URL') or DEFAULT_CLOUDGUIDE_BASE_URL).rstrip('/'),
        text_timeout_ms=_int(environ, 'TEXT_TIMEOUT_MS', DEFAULT_TEXT_TIMEOUT_MS),
        translate_timeout_ms=_int(environ, 'TRANSLATE_TIMEOUT_MS', DEFAULT_TRANSLATE_TIMEOUT_MS),
        speech_timeout_ms=_int(environ, 'SPEECH_TIMEOUT_MS', DEFAULT_SPEECH_TIMEOUT_MS),
        storage_timeout_ms=_int(environ, 'STORAGE_TIMEOUT_MS', DEFAULT_STORAGE_TIMEOUT_MS),
        request_budget_ms=_int(environ, 'REQUEST_BUDGET_MS', 0) or None,
    )


def require(value, name: str):
    """Return value, or raise ConfigurationError naming the missing variable."""
    if not value:
        raise ConfigurationError(f'{name} is not configured')
    return value
