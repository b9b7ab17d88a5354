"""
Default provider wiring.

build_registry turns a Config into the candidate lists each function uses.
Providers without credentials are left out; an operation with no configured
providers is still declared so running it reports a ConfigurationError.
"""

from typing import Optional

from .config import Config
from .models import OperationKind
from .registry import ProviderRegistry
from .speech_providers import (
    SPEECHIFY_VOICES,
    google_tts_candidate,
    is_english,
    lovo_candidate,
    openai_tts_candidate,
    speechify_candidate,
)
from .storage_providers import cloudinary_candidate, gcs_candidate
from .text_providers import (
    CHAT_BUILDERS,
    claude_candidate,
    deepseek_candidate,
    groq_candidates,
    huggingface_candidate,
    openai_candidate,
)

# Names the front-end uses for a provider family, mapped to a candidate id
PROVIDER_ALIASES = {
    'anthropic': 'claude',
    'gpt': 'openai',
    'groq': 'groq-llama-70b',
    'hf': 'huggingface',
    'openai-tts': 'openai-tts',
    'google': 'google-tts',
    'lovo': 'lovo-tts',
    'vercel-blob': 'gcs',
}


def resolve_candidate_id(name: Optional[str], operation_kind: Optional[str] = None) -> Optional[str]:
    """Map a caller-supplied provider name onto a candidate id."""
    if not name:
        return None
    name = str(name).strip().lower()
    if operation_kind == OperationKind.SYNTHESIZE_SPEECH and name == 'openai':
        return 'openai-tts'
    return PROVIDER_ALIASES.get(name, name)


def default_speech_candidate(language: str, voice: Optional[str] = None) -> str:
    """Preferred TTS backend when the caller names none."""
    if voice in SPEECHIFY_VOICES:
        return 'speechify'
    # OpenAI voices are English-accented; other languages sound native on Google
    return 'openai-tts' if is_english(language) else 'google-tts'


def _register_text_kind(registry: ProviderRegistry, config: Config, operation_kind: str, order):
    build = CHAT_BUILDERS[operation_kind]
    factories = {
        'claude': lambda: [claude_candidate(config.claude_api_key, build)] if config.claude_api_key else [],
        'openai': lambda: [openai_candidate(config.openai_api_key, build)] if config.openai_api_key else [],
        'deepseek': lambda: [deepseek_candidate(config.deepseek_api_key, build)] if config.deepseek_api_key else [],
        'groq': lambda: groq_candidates(config.groq_api_key, build) if config.groq_api_key else [],
        'huggingface': lambda: (
            [huggingface_candidate(config.huggingface_api_key, build)] if config.huggingface_enabled else []
        ),
    }
    for family in order:
        for candidate in factories[family]():
            registry.register(operation_kind, candidate)


def build_registry(config: Config) -> ProviderRegistry:
    registry = ProviderRegistry()

    registry.add_operation(OperationKind.GENERATE_TEXT, config.text_timeout_ms / 1000.0)
    _register_text_kind(registry, config, OperationKind.GENERATE_TEXT,
                        ['claude', 'openai', 'deepseek', 'groq', 'huggingface'])

    registry.add_operation(OperationKind.TRANSLATE, config.translate_timeout_ms / 1000.0)
    _register_text_kind(registry, config, OperationKind.TRANSLATE,
                        ['openai', 'deepseek', 'groq', 'claude'])

    registry.add_operation(OperationKind.SYNTHESIZE_SPEECH, config.speech_timeout_ms / 1000.0)
    if config.openai_api_key:
        registry.register(OperationKind.SYNTHESIZE_SPEECH, openai_tts_candidate(config.openai_api_key))
    if config.google_cloud_api_key:
        registry.register(OperationKind.SYNTHESIZE_SPEECH, google_tts_candidate(config.google_cloud_api_key))
    if config.lovo_api_key:
        registry.register(OperationKind.SYNTHESIZE_SPEECH, lovo_candidate(config.lovo_api_key))
    if config.speechify_api_key:
        registry.register(OperationKind.SYNTHESIZE_SPEECH, speechify_candidate(config.speechify_api_key))

    registry.add_operation(OperationKind.STORE_AUDIO, config.storage_timeout_ms / 1000.0)
    if config.gcs_bucket:
        registry.register(OperationKind.STORE_AUDIO,
                          gcs_candidate(config.gcs_bucket, config.google_service_account))
    if config.cloudinary_configured:
        registry.register(OperationKind.STORE_AUDIO,
                          cloudinary_candidate(config.cloudinary_cloud_name,
                                               config.cloudinary_api_key,
                                               config.cloudinary_api_secret))

    return registry
