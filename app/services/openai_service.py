"""
Client for the remote speech provider (OpenAI-compatible HTTP API).

Three operations share one request path:
    synthesize     text -> Ogg/Opus audio bytes
    enhance_text   punctuation/number normalisation before synthesis
    transcribe     voice note -> text

Failures are classified here, the lowest level that can tell them apart:
timeouts, connection errors, 5xx and plain 429 throttling are transient and
retried with exponential backoff; bad credentials, malformed input and an
exhausted quota are terminal. When retries run out the error becomes terminal.
"""
import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from app.config import (
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    TTS_MODEL,
    ENHANCE_MODEL,
    TRANSCRIBE_MODEL,
    PROVIDER_TIMEOUT,
    PROVIDER_MAX_ATTEMPTS,
    PROVIDER_BACKOFF_BASE,
    MAX_CHUNK_LENGTH,
)
from app.services.chunker import split_text
from app.services.errors import ProviderError, TransientProviderError, TerminalProviderError

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r'[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F]')

ENHANCE_PROMPT = (
    'You prepare text for speech synthesis. Return the input text unchanged '
    'except for these minimal fixes: add punctuation where it is missing, fix '
    'obvious typos that would affect pronunciation, and write numbers, prices '
    'and dates the way they should be read aloud. Never answer questions, '
    'never add content, never translate and never change the meaning.'
)


class OpenAIService:
    """
    Thin async adapter to the provider.

    Args:
        api_key: Bearer token
        base_url: API root, e.g. https://api.openai.com/v1
        max_attempts: Attempts per call, including the first
        backoff_base: Delay before the second attempt; doubles each retry
        transport: Optional httpx transport (tests use httpx.MockTransport)
        sleep: Awaitable used between attempts
    """

    def __init__(
        self,
        api_key: str = OPENAI_API_KEY,
        base_url: str = OPENAI_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT,
        max_attempts: int = PROVIDER_MAX_ATTEMPTS,
        backoff_base: float = PROVIDER_BACKOFF_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={'Authorization': f'Bearer {api_key}'},
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def synthesize(
        self,
        text: str,
        voice: str,
        speed: float = 1.0,
        instructions: Optional[str] = None,
    ) -> bytes:
        """Synthesize one chunk; returns Ogg/Opus bytes."""
        sanitized = _CONTROL_CHARS.sub('', text).strip()
        payload: Dict[str, Any] = {
            'model': TTS_MODEL,
            'input': sanitized,
            'voice': voice,
            'speed': speed,
            'response_format': 'opus',
        }
        if instructions:
            payload['instructions'] = instructions

        logger.info('Synthesizing %d chars with voice=%s speed=%.2f', len(sanitized), voice, speed)
        response = await self._post('/audio/speech', json=payload)
        logger.debug('Synthesis returned %d bytes', len(response.content))
        return response.content

    async def enhance_text(self, text: str) -> str:
        """Normalise text for speech, piece by piece, rejoined with spaces."""
        enhanced = []
        for chunk in split_text(text, MAX_CHUNK_LENGTH):
            response = await self._post('/chat/completions', json={
                'model': ENHANCE_MODEL,
                'temperature': 0.1,
                'messages': [
                    {'role': 'system', 'content': ENHANCE_PROMPT},
                    {'role': 'user', 'content': chunk.text},
                ],
            })
            try:
                content = response.json()['choices'][0]['message']['content']
            except (ValueError, KeyError, IndexError, TypeError) as e:
                raise TerminalProviderError(f'Malformed enhancement response: {e}') from e
            enhanced.append((content or '').strip())
        return ' '.join(part for part in enhanced if part)

    async def transcribe(self, audio: bytes, filename: str = 'voice.ogg') -> str:
        response = await self._post(
            '/audio/transcriptions',
            files={'file': (filename, audio)},
            data={'model': TRANSCRIBE_MODEL, 'response_format': 'text'},
        )
        return response.text.strip()

    async def _post(self, path: str, **kwargs) -> httpx.Response:
        last_error: Optional[ProviderError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._client.post(path, **kwargs)
            except httpx.TimeoutException as e:
                last_error = TransientProviderError(f'{path} timed out: {e}')
            except httpx.TransportError as e:
                last_error = TransientProviderError(f'{path} connection failed: {e}')
            else:
                if response.is_success:
                    return response
                last_error = classify_response(path, response)

            if isinstance(last_error, TerminalProviderError):
                logger.error('%s failed (attempt %d/%d): %s', path, attempt, self.max_attempts, last_error)
                raise last_error

            if attempt < self.max_attempts:
                delay = self.backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    '%s failed (attempt %d/%d): %s; retrying in %.1fs',
                    path, attempt, self.max_attempts, last_error, delay,
                )
                await self._sleep(delay)

        raise TerminalProviderError(
            f'{path} failed after {self.max_attempts} attempts: {last_error}',
            status_code=last_error.status_code if last_error else None,
        ) from last_error


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    error = body.get('error') if isinstance(body, dict) else None
    return error if isinstance(error, dict) else {}


def classify_response(path: str, response: httpx.Response) -> ProviderError:
    """Map an unsuccessful HTTP response to a transient or terminal error."""
    status = response.status_code
    error = _error_body(response)
    detail = error.get('message') or response.reason_phrase
    message = f'{path} returned {status}: {detail}'

    if status >= 500:
        return TransientProviderError(message, status_code=status)
    if status == 429:
        if error.get('code') == 'insufficient_quota' or error.get('type') == 'insufficient_quota':
            return TerminalProviderError(
                message,
                status_code=status,
                user_message='The text-to-speech quota is exhausted. Please try again later.',
            )
        return TransientProviderError(message, status_code=status)
    if status in (401, 403):
        return TerminalProviderError(
            message,
            status_code=status,
            user_message='The text-to-speech service rejected our credentials.',
        )
    if status == 408:
        return TransientProviderError(message, status_code=status)
    return TerminalProviderError(message, status_code=status)


# Singleton instance
_openai_service: Optional[OpenAIService] = None


def get_openai_service() -> OpenAIService:
    """Get the provider client singleton instance."""
    global _openai_service
    if _openai_service is None:
        _openai_service = OpenAIService()
    return _openai_service


async def close_openai_service():
    """Close the shared HTTP client and drop the singleton."""
    global _openai_service
    if _openai_service is not None:
        service = _openai_service
        _openai_service = None
        await service.aclose()


def reset_openai_service():
    """Reset the provider client singleton (for testing)."""
    global _openai_service
    _openai_service = None
