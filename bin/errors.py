"""WebSearch error taxonomy.

Each error carries the HTTP status the Flask layer answers with.  Pipeline
code raises these; route functions in websearch.py turn them into JSON.
"""

from __future__ import annotations


class WebSearchError(Exception):
    """Base class for request-level failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WebSearchError):
    """Raised when a required request field is missing or blank."""

    status_code = 400


class NotFoundError(WebSearchError):
    """Raised when a sessionId is unknown to the session store."""

    status_code = 404


class RouteNotFoundError(WebSearchError):
    status_code = 404


class UpstreamError(WebSearchError):
    """Raised when the model provider fails or returns an unusable reply."""

    status_code = 500


class UpstreamTimeoutError(UpstreamError):
    status_code = 504


class ConfigError(ValueError):
    """Raised at startup when required configuration is absent."""
