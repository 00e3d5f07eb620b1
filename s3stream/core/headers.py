"""Typed access to object metadata returned by HEAD requests."""

from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Mapping

from requests.structures import CaseInsensitiveDict


class ObjectHead:
    """Headers of a HEAD response with typed accessors."""

    def __init__(self, headers: Mapping[str, str]) -> None:
        self.headers: CaseInsensitiveDict = CaseInsensitiveDict(headers)

    def get(self, name: str, default: str = "") -> str:
        return self.headers.get(name, default)

    def _date_header(self, name: str) -> datetime | None:
        value = self.get(name)
        if not value:
            return None
        return parsedate_to_datetime(value)

    @property
    def date(self) -> datetime | None:
        return self._date_header("Date")

    @property
    def last_modified(self) -> datetime | None:
        return self._date_header("Last-Modified")

    @property
    def etag(self) -> str:
        return self.get("ETag")

    @property
    def content_length(self) -> int | None:
        value = self.get("Content-Length")
        return int(value) if value else None

    @property
    def content_type(self) -> str:
        return self.get("Content-Type")

    def __repr__(self) -> str:
        return f"ObjectHead({dict(self.headers)!r})"
