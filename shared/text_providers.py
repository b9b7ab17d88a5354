"""
LLM candidates for guide generation and translation.

Every candidate here is the same shape: build a chat request from the request
parameters, POST it to the provider, and classify the JSON that comes back.
Which prompt is sent depends on the operation kind, not on the provider.
"""

from typing import Callable, Mapping, NamedTuple

import requests

from .models import Candidate, OperationKind
from .normalizer import (
    chat_refusal,
    claude_refusal,
    classify_http_response,
    extract_chat_content,
    extract_claude_content,
    extract_huggingface_content,
)
from .prompts import (
    GUIDE_SYSTEM_PROMPT,
    TRANSLATION_SYSTEM_PROMPT,
    build_translation_prompt,
    guide_prompt_from_parameters,
)

CLAUDE_URL = 'https://api.anthropic.com/v1/messages'
CLAUDE_MODEL = 'claude-3-5-sonnet-20241022'
ANTHROPIC_VERSION = '2023-06-01'

OPENAI_CHAT_URL = 'https://api.openai.com/v1/chat/completions'
OPENAI_CHAT_MODEL = 'gpt-3.5-turbo'

DEEPSEEK_URL = 'https://api.deepseek.com/v1/chat/completions'
DEEPSEEK_MODEL = 'deepseek-chat'

GROQ_URL = 'https://api.groq.com/openai/v1/chat/completions'
# (candidate id, model, label) in fallback order
GROQ_MODELS = [
    ('groq-llama-70b', 'llama-3.1-70b-versatile', 'Groq Llama 3.1 70B'),
    ('groq-llama-8b', 'llama-3.1-8b-instant', 'Groq Llama 3.1 8B'),
    ('groq-mixtral', 'mixtral-8x7b-32768', 'Groq Mixtral'),
]

HUGGINGFACE_MODEL = 'microsoft/DialoGPT-large'
HUGGINGFACE_URL = f'https://api-inference.huggingface.co/models/{HUGGINGFACE_MODEL}'


class ChatRequest(NamedTuple):
    system: str
    prompt: str
    temperature: float
    max_tokens: int


def guide_chat_request(parameters: Mapping) -> ChatRequest:
    return ChatRequest(
        system=GUIDE_SYSTEM_PROMPT,
        prompt=guide_prompt_from_parameters(parameters),
        temperature=float(parameters.get('temperature') or 0.7),
        max_tokens=int(parameters.get('maxTokens') or 4000),
    )


def translation_chat_request(parameters: Mapping) -> ChatRequest:
    return ChatRequest(
        system=TRANSLATION_SYSTEM_PROMPT,
        prompt=build_translation_prompt(
            parameters['text'], parameters['fromLanguage'], parameters['toLanguage']
        ),
        # Low temperature keeps translations consistent
        temperature=0.3,
        max_tokens=4000,
    )


CHAT_BUILDERS = {
    OperationKind.GENERATE_TEXT: guide_chat_request,
    OperationKind.TRANSLATE: translation_chat_request,
}

ChatBuilder = Callable[[Mapping], ChatRequest]


# ============================================================================
# Candidate factories
# ============================================================================

def claude_candidate(api_key: str, build: ChatBuilder) -> Candidate:
    def invoke(parameters, control):
        control.check()
        chat = build(parameters)
        return requests.post(
            CLAUDE_URL,
            headers={
                'Content-Type': 'application/json',
                'x-api-key': api_key,
                'anthropic-version': ANTHROPIC_VERSION,
            },
            json={
                'model': CLAUDE_MODEL,
                'max_tokens': chat.max_tokens,
                'temperature': chat.temperature,
                'system': chat.system,
                'messages': [{'role': 'user', 'content': chat.prompt}],
            },
            timeout=control.remaining(),
        )

    return Candidate(
        candidate_id='claude',
        invoke=invoke,
        classify=lambda raw: classify_http_response(raw, extract_claude_content, claude_refusal),
        label='Claude Sonnet',
    )


def openai_compatible_candidate(
    candidate_id: str,
    url: str,
    api_key: str,
    model: str,
    label: str,
    build: ChatBuilder,
) -> Candidate:
    """OpenAI, DeepSeek and Groq all speak the chat completions API."""

    def invoke(parameters, control):
        control.check()
        chat = build(parameters)
        return requests.post(
            url,
            headers={
                'Authorization': f'Bearer {api_key}',
                'Content-Type': 'application/json',
            },
            json={
                'model': model,
                'messages': [
                    {'role': 'system', 'content': chat.system},
                    {'role': 'user', 'content': chat.prompt},
                ],
                'temperature': chat.temperature,
                'max_tokens': chat.max_tokens,
                'top_p': 0.9,
                'stream': False,
            },
            timeout=control.remaining(),
        )

    return Candidate(
        candidate_id=candidate_id,
        invoke=invoke,
        classify=lambda raw: classify_http_response(raw, extract_chat_content, chat_refusal),
        label=label,
    )


def openai_candidate(api_key: str, build: ChatBuilder) -> Candidate:
    return openai_compatible_candidate(
        'openai', OPENAI_CHAT_URL, api_key, OPENAI_CHAT_MODEL, 'OpenAI GPT-3.5', build
    )


def deepseek_candidate(api_key: str, build: ChatBuilder) -> Candidate:
    return openai_compatible_candidate(
        'deepseek', DEEPSEEK_URL, api_key, DEEPSEEK_MODEL, 'DeepSeek Chat', build
    )


def groq_candidates(api_key: str, build: ChatBuilder):
    return [
        openai_compatible_candidate(candidate_id, GROQ_URL, api_key, model, label, build)
        for candidate_id, model, label in GROQ_MODELS
    ]


def huggingface_candidate(api_key, build: ChatBuilder) -> Candidate:
    def invoke(parameters, control):
        control.check()
        chat = build(parameters)
        headers = {'Content-Type': 'application/json'}
        if api_key:
            headers['Authorization'] = f'Bearer {api_key}'
        return requests.post(
            HUGGINGFACE_URL,
            headers=headers,
            json={
                'inputs': chat.prompt,
                'parameters': {
                    'max_length': 800,
                    'temperature': chat.temperature,
                    'do_sample': True,
                    'top_p': 0.9,
                },
            },
            timeout=control.remaining(),
        )

    return Candidate(
        candidate_id='huggingface',
        invoke=invoke,
        classify=lambda raw: classify_http_response(raw, extract_huggingface_content),
        label='Hugging Face DialoGPT',
    )
