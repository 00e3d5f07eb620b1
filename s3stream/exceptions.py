"""Exceptions raised by s3stream."""

from __future__ import annotations


class S3StreamError(Exception):
    """Base class for all s3stream errors."""


class S3Error(S3StreamError):
    """The store answered with an unexpected status code.

    Attributes:
        status_code: HTTP status code of the response.
        body: Raw response body, kept verbatim for diagnostics.
        code: Error code parsed from the XML error document, if any.
        message: Error message parsed from the XML error document, if any.
        summary: Short description of the operation that failed.
    """

    def __init__(
        self,
        status_code: int,
        body: str = "",
        summary: str | None = None,
        code: str = "",
        message: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.code = code
        self.message = message
        self.summary = summary or f"s3 returned status {status_code}"
        super().__init__(self.summary)

    def __str__(self) -> str:
        detail = " - ".join(part for part in (self.code, self.message) if part)
        if not detail:
            detail = self.body
        if detail:
            return f"{self.summary} ({detail})"
        return self.summary

    def __repr__(self) -> str:
        return (
            f"S3Error(status_code={self.status_code!r}, code={self.code!r}, "
            f"summary={self.summary!r})"
        )


class InvalidStateError(S3StreamError):
    """An upload was used after it was closed or aborted."""


class ConfigError(S3StreamError):
    """Configuration is missing or invalid."""
