"""
Error taxonomy for admission and job execution.

Every error carries a short ``user_message`` that is safe to show to the
requesting owner; the exception text itself is meant for logs.
"""
import asyncio
from typing import Optional


GENERIC_USER_MESSAGE = 'Sorry, there was an error processing your request.'


class SpeechJobError(Exception):
    """Base class for errors raised while admitting or running a job."""

    user_message = GENERIC_USER_MESSAGE

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class RateLimitExceeded(SpeechJobError):
    """Hard admission limit reached; the request is rejected before enqueue."""

    def __init__(self, reason: str, limit: int):
        self.reason = reason
        self.limit = limit
        super().__init__(
            f'Rate limit exceeded ({reason})',
            f'Rate limit exceeded. Maximum {limit} requests per minute. Please wait.',
        )


class ProviderError(SpeechJobError):
    """Remote speech/text provider call failed."""

    user_message = 'Error with the text-to-speech service. Please try again later.'

    def __init__(self, message: str, status_code: Optional[int] = None, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Overload, timeout or connection failure; worth retrying."""


class TerminalProviderError(ProviderError):
    """Bad credentials, malformed input, exhausted quota or exhausted retries."""


class EmptyTextError(SpeechJobError):
    user_message = 'Could not extract any text to read aloud.'


class UnsupportedFormatError(SpeechJobError):
    user_message = 'Unsupported document format. Please send: pdf, docx, txt, md'


class UnsupportedJobError(SpeechJobError):
    user_message = 'This kind of request is not supported.'


class UploadNotFoundError(SpeechJobError):
    user_message = 'The uploaded file is no longer available. Please send it again.'


class QueueUnavailableError(SpeechJobError):
    """The job could not be persisted to the queue; nothing was counted."""

    user_message = 'The service is busy right now. Please try again in a moment.'


class AssemblyError(SpeechJobError):
    """Concatenating chunk audio failed; ``diagnostics`` holds the tool output."""

    user_message = 'Failed to combine the generated audio.'

    def __init__(self, message: str, diagnostics: str = ''):
        super().__init__(message)
        self.diagnostics = diagnostics


def user_message_for(error: BaseException) -> str:
    """Pick the message shown to the owner for a failed job."""
    if isinstance(error, SpeechJobError):
        return error.user_message
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return 'Your request took too long and was stopped. Please try a shorter text.'
    return GENERIC_USER_MESSAGE
