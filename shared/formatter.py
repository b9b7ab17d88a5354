"""
CloudGuide envelope formatting.

Wraps generated text in the header/footer framing the front-end displays,
keeps the unformatted text for audio synthesis, and attaches metadata.
Pure functions: no clock reads, same inputs give the same output.
"""

import re
from typing import Any, Dict, Optional

from .models import RequestSpec

RULE = '=' * 51
FOOTER = '© CloudGuide - www.cloudguide.me'

STOP_HEADER_PATTERN = re.compile(r'^\s*STOP\s+\d+\s*:', re.I | re.M)


def count_words(text: str) -> int:
    if not text:
        return 0
    return len(text.split())


def count_stops(text: str) -> int:
    """Number of 'STOP n:' headers in the text."""
    if not text:
        return 0
    return len(STOP_HEADER_PATTERN.findall(text))


def _metadata(content: str, candidate_used: str, label: Optional[str], elapsed_ms: Optional[int]) -> Dict[str, Any]:
    return {
        'candidateUsed': candidate_used,
        'model': label or candidate_used,
        'wordCount': count_words(content),
        'characterCount': len(content or ''),
        'stopCount': count_stops(content),
        'elapsedMs': elapsed_ms,
    }


def guide_header(spec: RequestSpec, label: str) -> str:
    destination = spec.get('destination') or 'Custom Prompt'
    details = [
        ('Language', spec.get('language') or 'English'),
        ('Guide Type', spec.get('guideType') or spec.get('tourType') or 'comprehensive'),
        ('Style', spec.get('style')),
        ('Total Stops', spec.get('numStops')),
        ('Words per Stop', spec.get('stopLength')),
        ('AI Model', label),
    ]
    lines = [f'AUDIOGUIDE: {str(destination).upper()}', RULE, '']
    lines.extend(f'{name}: {value}' for name, value in details if value not in (None, ''))
    lines.extend(['', RULE, ''])
    return '\n'.join(lines)


def format_guide(
    content: str,
    spec: RequestSpec,
    candidate_used: str,
    label: Optional[str] = None,
    elapsed_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Build the generateText success envelope.

    Args:
        content: text returned by the winning candidate
        spec: the request that produced it
        candidate_used: id of the winning candidate
        label: display name of the model, defaults to the id
        elapsed_ms: orchestration time, reported as-is

    Returns:
        Dict with content (framed), rawContent (unformatted), candidateUsed, metadata
    """
    raw_content = (content or '').strip()
    framed = f"{guide_header(spec, label or candidate_used)}\n{raw_content}\n\n{RULE}\n{FOOTER}"

    return {
        'success': True,
        'content': framed,
        'rawContent': raw_content,
        'candidateUsed': candidate_used,
        'metadata': _metadata(raw_content, candidate_used, label, elapsed_ms),
    }


def format_speech(
    audio_url: str,
    spec: RequestSpec,
    candidate_used: str,
    label: Optional[str] = None,
    elapsed_ms: Optional[int] = None,
) -> Dict[str, Any]:
    language = spec.get('language') or 'en-US'
    body = {
        'success': True,
        'audioUrl': audio_url,
        'candidateUsed': candidate_used,
        'provider': candidate_used,
        'voice': spec.get('voice'),
        'language': language,
        'metadata': {
            'candidateUsed': candidate_used,
            'model': label or candidate_used,
            'characterCount': len(spec.get('text') or ''),
            'wordCount': count_words(spec.get('text') or ''),
            'elapsedMs': elapsed_ms,
        },
    }
    if candidate_used == 'openai-tts' and not language.lower().startswith('en'):
        body['warning'] = (f'Using OpenAI for {language}. Audio will have an English accent. '
                           'For native pronunciation, configure Google Cloud TTS.')
    return body


def format_translation(
    content: str,
    spec: RequestSpec,
    candidate_used: str,
    label: Optional[str] = None,
    elapsed_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """Translations are returned without framing; the source text already has it."""
    translated = (content or '').strip()
    metadata = _metadata(translated, candidate_used, label, elapsed_ms)
    metadata['fromLanguage'] = spec.get('fromLanguage')
    metadata['toLanguage'] = spec.get('toLanguage')

    return {
        'success': True,
        'content': translated,
        'rawContent': translated,
        'translatedText': translated,
        'fromLanguage': spec.get('fromLanguage'),
        'toLanguage': spec.get('toLanguage'),
        'candidateUsed': candidate_used,
        'metadata': metadata,
    }
