"""
Gemini chat completion client (through litellm).
"""
import base64
import logging
from typing import Any, Iterable, List, Optional, Union

import litellm
from flask import current_app

logger = logging.getLogger(__name__)


class GeminiError(Exception):
    """Raised when the generative AI API fails or returns no text."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


def text_part(text: str) -> dict:
    return {'type': 'text', 'text': text}


def inline_data_part(data: bytes, mime_type: str) -> dict:
    """Build a file part carrying raw bytes as a base64 data URL."""
    encoded = base64.b64encode(data).decode('ascii')
    return {
        'type': 'file',
        'file': {'file_data': f'data:{mime_type};base64,{encoded}'},
    }


def build_messages(parts: List[Union[str, dict]],
                   system_instruction: Union[str, Iterable[str], None] = None,
                   history: Optional[Iterable[dict]] = None) -> List[dict]:
    """Assemble chat messages; history turns come before the new user turn."""
    messages = []
    if system_instruction:
        instructions = [system_instruction] if isinstance(system_instruction, str) else list(system_instruction)
        messages.append({'role': 'system', 'content': '\n'.join(instructions)})
    for turn in history or ():
        content = turn.get('content')
        if not isinstance(content, str) or not content:
            continue
        role = 'assistant' if turn.get('role') in ('assistant', 'model') else 'user'
        messages.append({'role': role, 'content': content})
    messages.append({
        'role': 'user',
        'content': [text_part(p) if isinstance(p, str) else p for p in parts],
    })
    return messages


def _choice_text(response: Any) -> str:
    choices = getattr(response, 'choices', None) or []
    if not choices:
        raise GeminiError('No candidates returned')
    choice = choices[0]
    if getattr(choice, 'finish_reason', None) == 'content_filter':
        raise GeminiError('No candidates returned (blocked: content_filter)')
    content = getattr(choice.message, 'content', None)
    if not isinstance(content, str) or not content:
        raise GeminiError('Empty response from model')
    return content


def generate_content(
    parts: List[Union[str, dict]],
    system_instruction: Union[str, Iterable[str], None] = None,
    model: Optional[str] = None,
    history: Optional[Iterable[dict]] = None,
) -> str:
    """
    Send a user turn (after any earlier conversation) to Gemini and return the reply text.

    Args:
        parts: Content parts; plain strings become text parts
        system_instruction: One instruction or a list of instructions
        model: Gemini model name (defaults to GEMINI_MODEL)
        history: Earlier turns as {"role": "user"|"assistant", "content": str}

    Returns:
        Text of the first choice

    Raises:
        GeminiError: API key missing, provider failure, or empty output
    """
    api_key = current_app.config.get('GEMINI_API_KEY')
    if not api_key:
        raise GeminiError('Generative AI is not configured (GEMINI_API_KEY missing).')

    model = model or current_app.config['GEMINI_MODEL']
    kwargs = {
        'model': f'gemini/{model}',
        'messages': build_messages(parts, system_instruction, history),
        'api_key': api_key,
        'timeout': current_app.config.get('GEMINI_TIMEOUT_SECONDS', 60),
    }
    if current_app.config.get('GEMINI_API_BASE'):
        kwargs['api_base'] = current_app.config['GEMINI_API_BASE']

    try:
        response = litellm.completion(**kwargs)
    except Exception as e:
        status_code = getattr(e, 'status_code', None)
        logger.warning(f"Gemini call failed for {model} ({status_code}): {e}")
        raise GeminiError(str(getattr(e, 'message', None) or e), status_code=status_code) from e

    return _choice_text(response)
