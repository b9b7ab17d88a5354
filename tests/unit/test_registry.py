"""
Unit tests for the provider registry and default provider wiring.
"""

import pytest

from shared.config import load_config
from shared.models import ConfigurationError, OperationKind
from shared.providers import build_registry, default_speech_candidate, resolve_candidate_id
from shared.registry import ProviderRegistry


def _ids(candidates):
    return [c.candidate_id for c in candidates]


@pytest.fixture
def abc_registry(make_candidate):
    registry = ProviderRegistry()
    for candidate_id in ('A', 'B', 'C'):
        registry.register(OperationKind.GENERATE_TEXT, make_candidate(candidate_id))
    return registry


class TestListCandidates:
    """Tests for ProviderRegistry.list_candidates()"""

    def test_registry_order_without_preference(self, abc_registry):
        assert _ids(abc_registry.list_candidates(OperationKind.GENERATE_TEXT)) == ['A', 'B', 'C']

    def test_preferred_candidate_goes_first(self, abc_registry):
        ordered = abc_registry.list_candidates(OperationKind.GENERATE_TEXT, preferred_id='C')
        assert _ids(ordered) == ['C', 'A', 'B']

    def test_preferred_already_first(self, abc_registry):
        ordered = abc_registry.list_candidates(OperationKind.GENERATE_TEXT, preferred_id='A')
        assert _ids(ordered) == ['A', 'B', 'C']

    def test_unknown_preference_is_ignored(self, abc_registry):
        ordered = abc_registry.list_candidates(OperationKind.GENERATE_TEXT, preferred_id='Z')
        assert _ids(ordered) == ['A', 'B', 'C']

    def test_duplicate_ids_appear_once(self, make_candidate):
        registry = ProviderRegistry()
        registry.register(OperationKind.TRANSLATE, make_candidate('A'))
        registry.register(OperationKind.TRANSLATE, make_candidate('B'))
        registry.register(OperationKind.TRANSLATE, make_candidate('A'))

        assert _ids(registry.list_candidates(OperationKind.TRANSLATE)) == ['A', 'B']

    def test_lookup_does_not_mutate_registry(self, abc_registry):
        first = abc_registry.list_candidates(OperationKind.GENERATE_TEXT, preferred_id='B')
        first.clear()
        assert _ids(abc_registry.list_candidates(OperationKind.GENERATE_TEXT)) == ['A', 'B', 'C']

    def test_declared_kind_without_candidates_is_empty(self):
        registry = ProviderRegistry()
        registry.add_operation(OperationKind.STORE_AUDIO, 15.0)
        assert registry.list_candidates(OperationKind.STORE_AUDIO) == []

    def test_unknown_kind_raises_configuration_error(self, abc_registry):
        with pytest.raises(ConfigurationError):
            abc_registry.list_candidates('summarize')


class TestTimeouts:
    """Tests for ProviderRegistry.timeout_for()"""

    def test_declared_timeout(self):
        registry = ProviderRegistry()
        registry.add_operation(OperationKind.SYNTHESIZE_SPEECH, 30.0)
        assert registry.timeout_for(OperationKind.SYNTHESIZE_SPEECH) == 30.0

    def test_register_without_declaring_uses_default(self, make_candidate):
        registry = ProviderRegistry()
        registry.register(OperationKind.GENERATE_TEXT, make_candidate('A'))
        assert registry.timeout_for(OperationKind.GENERATE_TEXT) == 9.0

    def test_unknown_kind_raises(self):
        with pytest.raises(ConfigurationError):
            ProviderRegistry().timeout_for('summarize')


class TestBuildRegistry:
    """Tests for build_registry()"""

    def test_all_text_providers_in_order(self):
        config = load_config({
            'CLAUDE_API_KEY': 'c', 'OPENAI_API_KEY': 'o', 'DEEPSEEK_API_KEY': 'd',
            'GROQ_API_KEY': 'g', 'HUGGINGFACE_API_KEY': 'h',
        })
        registry = build_registry(config)

        assert registry.candidate_ids(OperationKind.GENERATE_TEXT) == [
            'claude', 'openai', 'deepseek',
            'groq-llama-70b', 'groq-llama-8b', 'groq-mixtral',
            'huggingface',
        ]

    def test_translate_order(self):
        config = load_config({'CLAUDE_API_KEY': 'c', 'OPENAI_API_KEY': 'o', 'DEEPSEEK_API_KEY': 'd'})
        registry = build_registry(config)

        assert registry.candidate_ids(OperationKind.TRANSLATE) == ['openai', 'deepseek', 'claude']

    def test_missing_keys_leave_providers_out(self):
        registry = build_registry(load_config({'DEEPSEEK_API_KEY': 'd'}))

        assert registry.candidate_ids(OperationKind.GENERATE_TEXT) == ['deepseek']
        assert registry.candidate_ids(OperationKind.SYNTHESIZE_SPEECH) == []

    def test_every_operation_declared_even_when_empty(self):
        registry = build_registry(load_config({}))

        assert set(registry.operation_kinds()) == {
            OperationKind.GENERATE_TEXT,
            OperationKind.TRANSLATE,
            OperationKind.SYNTHESIZE_SPEECH,
            OperationKind.STORE_AUDIO,
        }

    def test_speech_and_storage_order(self):
        config = load_config({
            'OPENAI_API_KEY': 'o', 'GOOGLE_CLOUD_API_KEY': 'g', 'LOVO_API_KEY': 'l',
            'SPEECHIFY_API_KEY': 's', 'GCS_BUCKET': 'bucket',
            'CLOUDINARY_CLOUD_NAME': 'cloud', 'CLOUDINARY_API_KEY': 'k', 'CLOUDINARY_API_SECRET': 's',
        })
        registry = build_registry(config)

        assert registry.candidate_ids(OperationKind.SYNTHESIZE_SPEECH) == [
            'openai-tts', 'google-tts', 'lovo-tts', 'speechify'
        ]
        assert registry.candidate_ids(OperationKind.STORE_AUDIO) == ['gcs', 'cloudinary']

    def test_cloudinary_needs_all_three_settings(self):
        config = load_config({'CLOUDINARY_CLOUD_NAME': 'cloud', 'CLOUDINARY_API_KEY': 'k'})
        assert build_registry(config).candidate_ids(OperationKind.STORE_AUDIO) == []

    def test_timeouts_come_from_config(self):
        registry = build_registry(load_config({'SPEECH_TIMEOUT_MS': '45000'}))
        assert registry.timeout_for(OperationKind.SYNTHESIZE_SPEECH) == 45.0
        assert registry.timeout_for(OperationKind.GENERATE_TEXT) == 9.0


class TestResolveCandidateId:
    """Tests for resolve_candidate_id()"""

    def test_none(self):
        assert resolve_candidate_id(None) is None

    def test_alias(self):
        assert resolve_candidate_id('Anthropic') == 'claude'

    def test_groq_family_maps_to_first_model(self):
        assert resolve_candidate_id('groq') == 'groq-llama-70b'

    def test_openai_means_tts_for_speech(self):
        assert resolve_candidate_id('openai', OperationKind.SYNTHESIZE_SPEECH) == 'openai-tts'
        assert resolve_candidate_id('openai', OperationKind.GENERATE_TEXT) == 'openai'

    def test_unknown_name_passes_through(self):
        assert resolve_candidate_id('deepseek') == 'deepseek'


class TestDefaultSpeechCandidate:
    """Tests for default_speech_candidate()"""

    def test_english_uses_openai(self):
        assert default_speech_candidate('en-US') == 'openai-tts'

    def test_other_languages_use_google(self):
        assert default_speech_candidate('it-IT') == 'google-tts'

    def test_celebrity_voice_uses_speechify(self):
        assert default_speech_candidate('en-US', 'snoop') == 'speechify'
