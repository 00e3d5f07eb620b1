"""HTTP error helpers for turning store responses into exceptions."""

from __future__ import annotations

from typing import Iterable

import requests

from s3stream.core.payloads import parse_error
from s3stream.exceptions import S3Error


def extract_error_detail(response: requests.Response) -> tuple[str, str]:
    """Extract the (code, message) pair from an S3 error response."""
    return parse_error(response.content)


def new_s3_error(response: requests.Response, summary: str | None = None) -> S3Error:
    """Build an S3Error carrying the response's status code and body."""
    code, message = extract_error_detail(response)
    return S3Error(
        response.status_code,
        body=response.text,
        summary=summary,
        code=code,
        message=message,
    )


def raise_for_s3_status(
    response: requests.Response,
    expected: Iterable[int],
    summary: str | None = None,
) -> None:
    """Raise S3Error unless the response status is one of ``expected``."""
    if response.status_code not in expected:
        raise new_s3_error(
            response, summary or f"unexpected status {response.status_code}"
        )
