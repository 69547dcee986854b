"""Relay error types.

Every error knows the HTTP status it maps to and how to render itself as a
JSON body, so the boundary in main.py never has to guess.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for failures surfaced to the caller."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_body(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(RelayError):
    """Missing or empty prompt, or an unreadable request body."""

    status_code = 400


class MethodNotAllowed(RelayError):
    status_code = 405

    def __init__(self) -> None:
        super().__init__("Method not allowed")


class ConfigurationError(RelayError):
    """Upstream credential is not configured.

    The message names the environment variable, never its value.
    """

    status_code = 500

    def __init__(self, env_key: str) -> None:
        super().__init__(
            f"API key not configured. Please set {env_key} in the environment.",
            details=f"The relay needs the {env_key} environment variable to reach its upstream provider.",
        )
        self.env_key = env_key


class UpstreamError(RelayError):
    """Non-success status or transport failure from the provider."""

    status_code = 500


class ExtractionError(RelayError):
    """The provider answered, but its envelope had no usable text."""

    status_code = 200


class ClientDisconnected(Exception):
    """The client went away mid-stream. Triggers cleanup only."""
