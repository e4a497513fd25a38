"""Exception hierarchy for the Thryve research backend.

Route handlers catch these at the boundary and convert them into JSON error
bodies; nothing here is fatal to the process.
"""

from typing import Optional


class ThryveError(Exception):
    """Base class for all application errors."""


class ConfigurationError(ThryveError):
    """A required credential or setting is missing."""


class UpstreamAPIError(ThryveError):
    """A third-party API (search or LLM) answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: Optional[int], body: str = ""):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        status = status_code if status_code is not None else "n/a"
        super().__init__(f"{provider} error ({status}): {body}")


class SearchProviderError(UpstreamAPIError):
    """Raised when any query of a search aggregation fails."""

    def __init__(self, status_code: Optional[int], body: str = ""):
        super().__init__("Tavily", status_code, body)


class GeminiAPIError(UpstreamAPIError):
    """Raised when the Gemini REST API returns a non-2xx response."""

    def __init__(self, status_code: Optional[int], body: str = ""):
        super().__init__("Gemini", status_code, body)


class GeminiResponseError(ThryveError):
    """Gemini answered 2xx but without any candidate text."""

    def __init__(self, message: str = "Gemini returned an unexpected response."):
        super().__init__(message)


class ExtractionError(ThryveError):
    """No JSON object could be recovered from model output."""


class SeedGenerationError(ThryveError):
    """Seed proposal failed, including the single fallback prompt."""


class PersistenceError(ThryveError):
    """A Supabase read or write failed."""


class GenerationInProgressError(ThryveError):
    """A generation round is already running for this user."""


class ChatGenerationError(ThryveError):
    """The assistant could not produce a reply.

    ``user_message`` is the fixed, user-facing text surfaced to the client.
    """

    def __init__(self, user_message: str, cause: Optional[BaseException] = None):
        self.user_message = user_message
        self.cause = cause
        super().__init__(user_message)


class TrendNotFoundError(ThryveError):
    """No trend with this id belongs to the caller."""


class ConversationNotFoundError(ThryveError):
    """The caller owns no message in this conversation."""
