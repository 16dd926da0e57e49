"""Error kinds for the chat pipeline and their mapping from upstream failures.

Every failure the pipeline can report belongs to exactly one ErrorKind. The
helpers at the bottom translate httpx transport errors and non-success HTTP
responses from OpenAI or Supabase into these kinds, so callers never inspect
provider payloads themselves.
"""
from enum import Enum
from typing import Optional

import httpx


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    CONFIGURATION = "configuration"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_QUOTA_EXCEEDED = "upstream_quota_exceeded"
    UPSTREAM_PROTOCOL = "upstream_protocol"
    INVALID_REQUEST = "invalid_request"


GENERIC_ERROR_MESSAGE = "An error occurred processing your request. Please try again."
UNAVAILABLE_MESSAGE = (
    "The assistant is temporarily unavailable because its usage limit was reached. "
    "Please try again later."
)
CONFIGURATION_MESSAGE = "The assistant is not configured correctly. Please contact the site owner."


class AssistantError(Exception):
    """Base class for every error the chat pipeline reports."""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code: int = 500
    public_message: str = GENERIC_ERROR_MESSAGE

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider

    def to_dict(self) -> dict:
        """JSON body returned to HTTP clients."""
        return {"error": self.public_message}


class ConfigurationError(AssistantError):
    """Required settings are missing or malformed."""

    kind = ErrorKind.CONFIGURATION
    public_message = CONFIGURATION_MESSAGE


class UpstreamUnavailable(AssistantError):
    """A provider could not be reached or failed to answer."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class UpstreamQuotaExceeded(AssistantError):
    """A provider rejected the call because of billing or rate limits."""

    kind = ErrorKind.UPSTREAM_QUOTA_EXCEEDED
    status_code = 503
    public_message = UNAVAILABLE_MESSAGE


class UpstreamProtocolError(AssistantError):
    """A provider answered with something we could not decode."""

    kind = ErrorKind.UPSTREAM_PROTOCOL


class InvalidRequest(AssistantError):
    """The caller sent a malformed request."""

    kind = ErrorKind.INVALID_REQUEST
    status_code = 400

    def to_dict(self) -> dict:
        # Validation messages are safe to show and help the caller fix the request
        return {"error": str(self)}


class InvalidInput(InvalidRequest):
    """A component was given input it cannot work with (e.g. empty text)."""


# Provider error codes that mean "out of quota" rather than a real failure
QUOTA_ERROR_CODES = {"insufficient_quota", "rate_limit_exceeded", "billing_hard_limit_reached"}


def _error_details(response: httpx.Response) -> tuple:
    """Extract (code, message) from a provider error body, if it is JSON."""
    try:
        body = response.json()
    except ValueError:
        return None, response.text[:200]

    if not isinstance(body, dict):
        return None, str(body)[:200]

    # OpenAI: {"error": {"code", "message"}}; PostgREST: {"code", "message"}
    error = body.get("error", body)
    if isinstance(error, dict):
        return error.get("code"), error.get("message") or str(error)[:200]
    return None, str(error)[:200]


def error_from_payload(payload: dict, provider: str) -> AssistantError:
    """Map an error object embedded in a streamed event to an error kind."""
    code = payload.get("code") or payload.get("type")
    message = payload.get("message") or str(payload)[:200]
    if code in QUOTA_ERROR_CODES:
        return UpstreamQuotaExceeded(f"{provider} quota exceeded: {message}", provider=provider)
    return UpstreamProtocolError(f"{provider} stream reported an error: {message}", provider=provider)


def error_from_response(response: httpx.Response, provider: str) -> AssistantError:
    """Map a non-success HTTP response to an error kind.

    Args:
        response: Provider response with a 4xx/5xx status
        provider: Provider name used in messages and logs

    Returns:
        UpstreamQuotaExceeded for 429 or a quota error code, UpstreamUnavailable otherwise
    """
    code, message = _error_details(response)
    status = response.status_code

    if status == 429 or code in QUOTA_ERROR_CODES:
        return UpstreamQuotaExceeded(
            f"{provider} quota exceeded (HTTP {status}): {message}",
            provider=provider,
        )

    return UpstreamUnavailable(
        f"{provider} request failed (HTTP {status}): {message}",
        provider=provider,
    )


def error_from_transport(exc: httpx.RequestError, provider: str) -> AssistantError:
    """Map an httpx request failure (connect, timeout, decoding) to an error kind."""
    if isinstance(exc, httpx.DecodingError):
        return UpstreamProtocolError(f"{provider} sent an undecodable body: {exc}", provider=provider)
    if isinstance(exc, httpx.TimeoutException):
        return UpstreamUnavailable(f"{provider} timed out: {exc}", provider=provider)
    return UpstreamUnavailable(f"{provider} unreachable: {exc}", provider=provider)
