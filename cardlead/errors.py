"""
Error taxonomy for the extraction pipeline.

Every error carries a kind and a message safe to show to API callers.
Provider stack traces go to the log, never into these messages.
"""


class ErrorKind:
    INVALID_INPUT = "invalid_input"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_FAILURE = "provider_failure"
    EXTRACTION_EMPTY = "extraction_empty"
    INTERNAL_ERROR = "internal_error"


class CardLeadError(Exception):
    """Base class for pipeline errors."""

    kind = ErrorKind.INTERNAL_ERROR
    default_message = "Failed to scan business card"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(CardLeadError):
    """Input missing, of the wrong type, or not a decodable image."""

    kind = ErrorKind.INVALID_INPUT
    default_message = "Either 'image' (base64) or 'ocrText' (string) is required."


class ProviderUnavailableError(CardLeadError):
    """No recognition provider has credentials configured."""

    kind = ErrorKind.PROVIDER_UNAVAILABLE
    default_message = (
        "Vision API keys not configured. Please set OPENAI_API_KEY or "
        "GEMINI_API_KEY in environment variables."
    )


class ProviderFailureError(CardLeadError):
    """Every configured provider failed (timeout, rate limit, bad response)."""

    kind = ErrorKind.PROVIDER_FAILURE
    default_message = "All extraction providers failed. Please try again later."


class ExtractionEmptyError(CardLeadError):
    """Providers answered but found no contact information."""

    kind = ErrorKind.EXTRACTION_EMPTY
    default_message = "No contact information could be found on the card."
