"""
Text-to-speech candidates.

Each candidate returns playable audio as either a data URL or a provider
download URL. Voice and language handling follows what each provider accepts.
"""

import requests

from .models import Candidate, ErrorKind, Outcome
from .normalizer import (
    MalformedResponse,
    body_snippet,
    classify_audio_response,
    classify_http_response,
    extract_google_audio,
    extract_speechify_audio,
)

OPENAI_TTS_URL = 'https://api.openai.com/v1/audio/speech'
OPENAI_TTS_MODEL = 'tts-1'
OPENAI_VOICES = ['alloy', 'echo', 'fable', 'onyx', 'nova', 'shimmer']

GOOGLE_TTS_URL = 'https://texttospeech.googleapis.com/v1/text:synthesize'

LOVO_TTS_URL = 'https://api.genny.lovo.ai/api/v1/tts'
LOVO_DEFAULT_SPEAKER = 'en-US-sophia'
LOVO_POLL_INTERVAL = 1.0

SPEECHIFY_URL = 'https://api.sws.speechify.com/v1/audio/speech'

# Wavenet voices per language; unknown languages use the English default
GOOGLE_VOICES = {
    'es-ES': ('es-ES-Wavenet-C', 'FEMALE'),
    'es-MX': ('es-MX-Wavenet-A', 'FEMALE'),
    'es-US': ('es-US-Wavenet-A', 'FEMALE'),
    'fr-FR': ('fr-FR-Wavenet-E', 'FEMALE'),
    'de-DE': ('de-DE-Wavenet-F', 'FEMALE'),
    'it-IT': ('it-IT-Wavenet-A', 'FEMALE'),
    'pt-PT': ('pt-PT-Wavenet-A', 'FEMALE'),
    'pt-BR': ('pt-BR-Wavenet-A', 'FEMALE'),
    'zh-CN': ('cmn-CN-Wavenet-A', 'FEMALE'),
    'ja-JP': ('ja-JP-Wavenet-B', 'FEMALE'),
    'ko-KR': ('ko-KR-Wavenet-A', 'FEMALE'),
    'ru-RU': ('ru-RU-Wavenet-E', 'FEMALE'),
    'ar-XA': ('ar-XA-Wavenet-A', 'FEMALE'),
    'hi-IN': ('hi-IN-Wavenet-A', 'FEMALE'),
    'nl-NL': ('nl-NL-Wavenet-E', 'FEMALE'),
    'pl-PL': ('pl-PL-Wavenet-E', 'FEMALE'),
    'tr-TR': ('tr-TR-Wavenet-E', 'FEMALE'),
    'sv-SE': ('sv-SE-Wavenet-A', 'FEMALE'),
    'da-DK': ('da-DK-Wavenet-A', 'FEMALE'),
    'no-NO': ('nb-NO-Wavenet-E', 'FEMALE'),
    'fi-FI': ('fi-FI-Wavenet-A', 'FEMALE'),
}
GOOGLE_DEFAULT_VOICE = ('en-US-Wavenet-F', 'FEMALE')

# Short voice names the front-end sends for Speechify celebrity voices
SPEECHIFY_VOICES = {
    'snoop': 'snoop-dogg',
    'gwyneth': 'gwyneth-paltrow',
    'david': 'david-attenborough',
    'james': 'james-earl-jones',
}

SUPPORTED_LANGUAGES = ['en-US', 'en-GB'] + sorted(GOOGLE_VOICES)


def is_english(language: str) -> bool:
    return (language or 'en-US').lower().startswith('en')


def clamp_speed(speed, low: float = 0.25, high: float = 4.0) -> float:
    try:
        value = float(speed)
    except (TypeError, ValueError):
        return 1.0
    return max(low, min(high, value))


def google_voice_for(language: str):
    return GOOGLE_VOICES.get(language, GOOGLE_DEFAULT_VOICE)


def openai_tts_candidate(api_key: str) -> Candidate:
    def invoke(parameters, control):
        control.check()
        voice = parameters.get('voice')
        return requests.post(
            OPENAI_TTS_URL,
            headers={
                'Authorization': f'Bearer {api_key}',
                'Content-Type': 'application/json',
            },
            json={
                'model': OPENAI_TTS_MODEL,
                'input': parameters['text'],
                'voice': voice if voice in OPENAI_VOICES else 'alloy',
                'speed': clamp_speed(parameters.get('speed', 1.0)),
            },
            timeout=control.remaining(),
        )

    return Candidate('openai-tts', invoke, classify_audio_response, label='OpenAI TTS')


def google_tts_candidate(api_key: str) -> Candidate:
    def invoke(parameters, control):
        control.check()
        language = parameters.get('language') or 'en-US'
        voice_name, gender = google_voice_for(language)
        return requests.post(
            GOOGLE_TTS_URL,
            params={'key': api_key},
            headers={'Content-Type': 'application/json'},
            json={
                'input': {'text': parameters['text']},
                'voice': {
                    'languageCode': language,
                    'name': voice_name,
                    'ssmlGender': gender,
                },
                'audioConfig': {
                    'audioEncoding': 'MP3',
                    'speakingRate': clamp_speed(parameters.get('speed', 1.0)),
                    'pitch': 0,
                    'volumeGainDb': 0,
                    'effectsProfileId': ['headphone-class-device'],
                },
            },
            timeout=control.remaining(),
        )

    return Candidate(
        'google-tts',
        invoke,
        lambda raw: classify_http_response(raw, extract_google_audio),
        label='Google Cloud TTS',
    )


class LovoJobFailed(Exception):
    pass


def _lovo_json(response):
    try:
        data = response.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise MalformedResponse(f'Lovo returned an unexpected body: {body_snippet(response.text)}')
    return data


def lovo_candidate(api_key: str, poll_interval: float = LOVO_POLL_INTERVAL) -> Candidate:
    """Lovo is asynchronous: create a job, then poll it until it completes."""

    def invoke(parameters, control):
        control.check()
        headers = {'Authorization': f'Bearer {api_key}'}

        created = requests.post(
            LOVO_TTS_URL,
            headers={**headers, 'Content-Type': 'application/json'},
            json={
                'speaker': parameters.get('voice') or LOVO_DEFAULT_SPEAKER,
                'text': parameters['text'],
                'speed': str(parameters.get('speed', '1.0')),
                'pitch': str(parameters.get('pitch', '0')),
            },
            timeout=control.remaining(),
        )
        if not created.ok:
            return created

        job_id = _lovo_json(created).get('id')
        if not job_id:
            raise MalformedResponse('Lovo did not return a job id')

        while True:
            # Stops polling as soon as the attempt is stopped or out of time
            control.check()
            status = requests.get(f'{LOVO_TTS_URL}/{job_id}', headers=headers, timeout=control.remaining())
            if not status.ok:
                return status

            data = _lovo_json(status)
            if data.get('status') == 'completed' and data.get('download_url'):
                return status
            if data.get('status') == 'failed':
                raise LovoJobFailed(f'Lovo job {job_id} failed')

            control.wait(poll_interval)

    def classify(raw):
        if isinstance(raw, LovoJobFailed):
            return Outcome.retryable('TTS generation failed', ErrorKind.UPSTREAM_ERROR, detail=str(raw))
        return classify_http_response(raw, lambda data: data['download_url'])

    return Candidate('lovo-tts', invoke, classify, label='Lovo')


def speechify_candidate(api_key: str) -> Candidate:
    def invoke(parameters, control):
        control.check()
        voice = parameters.get('voice')
        return requests.post(
            SPEECHIFY_URL,
            headers={
                'Authorization': f'Bearer {api_key}',
                'Content-Type': 'application/json',
            },
            json={
                'input': parameters['text'],
                'voice_id': SPEECHIFY_VOICES.get(voice, voice or 'default'),
                'language': parameters.get('language') or 'en-US',
                'audio_format': 'mp3',
            },
            timeout=control.remaining(),
        )

    return Candidate(
        'speechify',
        invoke,
        lambda raw: classify_http_response(raw, extract_speechify_audio),
        label='Speechify',
    )
