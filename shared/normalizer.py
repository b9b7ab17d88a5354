"""
Response normalization for provider calls.

Every provider response, successful or not, passes through here and comes out
as an Outcome. Parsing errors never escape as exceptions.

Rules, checked in order:
- 401                                   -> fatal AuthInvalid
- 429                                   -> fatal RateLimited
- 404, or error text mentioning a model -> retryable CandidateUnavailable
- any other non-2xx                     -> retryable UpstreamError
- 2xx with bad JSON / no content        -> retryable Malformed
- 2xx with a refusal marker             -> retryable ContentRefused
- timeout                               -> retryable Timeout
- network error                         -> retryable UpstreamError
"""

import base64
import json
import re
from typing import Any, Callable, Optional

import requests

from .models import AttemptStopped, ErrorKind, Outcome

BODY_SNIPPET_LENGTH = 300

# Unknown-model errors: "model not found", "The model `x` does not exist", "model_decommissioned"
MODEL_ERROR_PATTERN = re.compile(r'\bmodel', re.I)


class MalformedResponse(ValueError):
    """Raised by content extractors when the expected field is missing."""


def body_snippet(text: Optional[str]) -> str:
    if not text:
        return ''
    return ' '.join(text.split())[:BODY_SNIPPET_LENGTH]


def error_message_from_body(text: str) -> str:
    """Pull a human-readable message out of a provider error body."""
    try:
        data = json.loads(text)
    except (ValueError, TypeError):
        return body_snippet(text)

    if isinstance(data, dict):
        error = data.get('error')
        if isinstance(error, dict) and error.get('message'):
            return str(error['message'])
        if isinstance(error, str):
            return error
        if data.get('message'):
            return str(data['message'])
    return body_snippet(text)


def classify_error_status(status_code: int, text: str) -> Outcome:
    """Classify a non-2xx response."""
    message = error_message_from_body(text)
    snippet = body_snippet(text)

    if status_code == 401:
        return Outcome.fatal('invalid credentials', ErrorKind.AUTH_INVALID,
                             status_code=status_code, detail=message)
    if status_code == 429:
        return Outcome.fatal('rate limited', ErrorKind.RATE_LIMITED,
                             status_code=status_code, detail=message)
    if status_code == 404 or MODEL_ERROR_PATTERN.search(message or ''):
        return Outcome.retryable('candidate unavailable', ErrorKind.CANDIDATE_UNAVAILABLE,
                                 status_code=status_code, detail=message)
    return Outcome.retryable(f'HTTP {status_code}: {snippet}', ErrorKind.UPSTREAM_ERROR,
                             status_code=status_code, detail=message)


def classify_exception(exc: BaseException) -> Outcome:
    """Classify an exception raised while calling a provider."""
    # requests' JSONDecodeError is also a RequestException; a bad body is Malformed
    if isinstance(exc, (MalformedResponse, requests.exceptions.JSONDecodeError)):
        return Outcome.retryable('malformed response', ErrorKind.MALFORMED, detail=str(exc))
    if isinstance(exc, (AttemptStopped, requests.exceptions.Timeout)):
        return Outcome.retryable('timeout', ErrorKind.TIMEOUT, detail=str(exc))
    if isinstance(exc, requests.exceptions.RequestException):
        return Outcome.retryable(f'request failed: {exc}', ErrorKind.UPSTREAM_ERROR, detail=str(exc))
    return Outcome.retryable(f'unexpected error: {exc}', ErrorKind.UPSTREAM_ERROR, detail=repr(exc))


def classify_http_response(
    raw: Any,
    extract: Callable[[Any], Any],
    refusal: Optional[Callable[[Any], Optional[str]]] = None,
) -> Outcome:
    """
    Classify a JSON provider response.

    Args:
        raw: requests.Response, or the exception raised by the call
        extract: pulls the content out of the parsed JSON; raises
            MalformedResponse (or KeyError/IndexError/TypeError) when absent
        refusal: optional detector returning a refusal description, or None

    Returns:
        Outcome
    """
    if isinstance(raw, BaseException):
        return classify_exception(raw)

    status_code = raw.status_code
    if not 200 <= status_code < 300:
        return classify_error_status(status_code, raw.text)

    try:
        data = raw.json()
    except ValueError:
        return Outcome.retryable('malformed response', ErrorKind.MALFORMED,
                                 status_code=status_code, detail=body_snippet(raw.text))

    try:
        refused = refusal(data) if refusal is not None else None
        if refused:
            return Outcome.retryable('content refused', ErrorKind.CONTENT_REFUSED,
                                     status_code=status_code, detail=refused)
        content = extract(data)
    except (MalformedResponse, KeyError, IndexError, TypeError, AttributeError) as e:
        return Outcome.retryable('malformed response', ErrorKind.MALFORMED,
                                 status_code=status_code, detail=str(e))

    if content is None or (isinstance(content, str) and not content.strip()):
        return Outcome.retryable('malformed response', ErrorKind.MALFORMED,
                                 status_code=status_code, detail='empty content')

    return Outcome.success(content, status_code=status_code)


def classify_audio_response(raw: Any) -> Outcome:
    """Classify a provider that answers with raw MP3 bytes (OpenAI TTS)."""
    if isinstance(raw, BaseException):
        return classify_exception(raw)

    if not 200 <= raw.status_code < 300:
        return classify_error_status(raw.status_code, raw.text)

    if not raw.content:
        return Outcome.retryable('malformed response', ErrorKind.MALFORMED,
                                 status_code=raw.status_code, detail='empty audio body')

    return Outcome.success(audio_data_url(raw.content), status_code=raw.status_code)


def audio_data_url(audio: bytes, mime: str = 'audio/mp3') -> str:
    return f"data:{mime};base64,{base64.b64encode(audio).decode('ascii')}"


# ============================================================================
# Content extractors
# ============================================================================

def extract_chat_content(data: dict) -> str:
    """OpenAI-compatible chat completion (OpenAI, DeepSeek, Groq)."""
    choices = data.get('choices')
    if not choices:
        raise MalformedResponse('response has no choices')
    message = choices[0].get('message') or {}
    content = message.get('content')
    if not isinstance(content, str):
        raise MalformedResponse('choice has no message content')
    return content


def extract_claude_content(data: dict) -> str:
    """Anthropic messages API: concatenate the text blocks."""
    blocks = data.get('content')
    if not isinstance(blocks, list) or not blocks:
        raise MalformedResponse('response has no content blocks')
    texts = [block.get('text', '') for block in blocks if block.get('type', 'text') == 'text']
    if not any(texts):
        raise MalformedResponse('content blocks have no text')
    return ''.join(texts)


def extract_huggingface_content(data: Any) -> str:
    """Inference API returns either [{generated_text}] or {generated_text}."""
    if isinstance(data, list) and data and isinstance(data[0], dict) and data[0].get('generated_text'):
        return data[0]['generated_text']
    if isinstance(data, dict) and data.get('generated_text'):
        return data['generated_text']
    raise MalformedResponse('response has no generated_text')


def extract_google_audio(data: dict) -> str:
    audio_content = data.get('audioContent')
    if not audio_content:
        raise MalformedResponse('No audio content received from Google TTS')
    return f"data:audio/mp3;base64,{audio_content}"


def extract_speechify_audio(data: dict) -> str:
    if data.get('audio_url') or data.get('url'):
        return data.get('audio_url') or data.get('url')
    audio_data = data.get('audio_data')
    if audio_data:
        if audio_data.startswith('data:'):
            return audio_data
        return f"data:audio/mp3;base64,{audio_data}"
    raise MalformedResponse('response has no audio')


# ============================================================================
# Refusal detectors
# ============================================================================

def claude_refusal(data: dict) -> Optional[str]:
    if isinstance(data, dict) and data.get('stop_reason') == 'refusal':
        return 'stop_reason=refusal'
    return None


def chat_refusal(data: dict) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    for choice in data.get('choices') or []:
        message = choice.get('message') or {}
        if message.get('refusal'):
            return str(message['refusal'])
        if choice.get('finish_reason') == 'content_filter':
            return 'finish_reason=content_filter'
    return None
