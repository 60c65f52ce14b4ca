"""
Error taxonomy for the chat assistant.
"""

from typing import Optional


class ChatbotError(Exception):
    """Base class for errors raised by the chat assistant."""


class ValidationError(ChatbotError):
    """Turn request is missing a message or session id."""


class RateLimitExceeded(ChatbotError):
    """Session used up its request quota for the current window."""

    def __init__(self, session_id: str, retry_after: int):
        super().__init__(f"Rate limit exceeded for session {session_id}")
        self.session_id = session_id
        self.retry_after = retry_after


class CompletionError(ChatbotError):
    """
    The completion service failed: transport error, timeout, non-success
    status, or empty/malformed output.
    """

    def __init__(self, message: str, provider: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status
