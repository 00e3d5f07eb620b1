"""Typed builder for browser form-upload policy documents.

A policy is a JSON document with an ``expiration`` timestamp and an ordered
list of ``conditions``. Each condition is either a single-entry object
(``{"bucket": "name"}``) or a match array (``["starts-with", "$key", "a/"]``).
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterator, Union

from s3stream.const import POLICY_EXPIRATION_FORMAT


class ACL(str, Enum):
    """Canned access control lists."""

    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"
    BUCKET_OWNER_READ = "bucket-owner-read"
    BUCKET_OWNER_FULL_CONTROL = "bucket-owner-full-control"


@dataclass(frozen=True)
class KeyValueCondition:
    key: str
    value: str

    def to_json(self) -> dict[str, str]:
        return {self.key: self.value}


@dataclass(frozen=True)
class MatchCondition:
    operator: str
    name: str
    value: Union[str, int]

    def to_json(self) -> list[Any]:
        return [self.operator, self.name, self.value]


@dataclass(frozen=True)
class RangeCondition:
    operator: str
    low: int
    high: int

    def to_json(self) -> list[Any]:
        return [self.operator, self.low, self.high]


Condition = Union[KeyValueCondition, MatchCondition, RangeCondition]


class PolicyConditions:
    """Ordered list of policy conditions."""

    def __init__(self) -> None:
        self._entries: list[Condition] = []

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, key: str, value: str) -> PolicyConditions:
        self._entries.append(KeyValueCondition(key, value))
        return self

    def bucket(self, bucket: str) -> PolicyConditions:
        return self.add("bucket", bucket)

    def acl(self, acl: ACL | str) -> PolicyConditions:
        return self.add("acl", ACL(acl).value)

    def redirect(self, url: str) -> PolicyConditions:
        return self.add("redirect", url)

    def success_action_redirect(self, url: str) -> PolicyConditions:
        return self.add("success_action_redirect", url)

    def match(self, operator: str, name: str, value: str) -> PolicyConditions:
        self._entries.append(MatchCondition(operator, name, value))
        return self

    def equals(self, name: str, value: str) -> PolicyConditions:
        return self.match("eq", name, value)

    def starts_with(self, name: str, prefix: str) -> PolicyConditions:
        return self.match("starts-with", name, prefix)

    def content_length_range(self, low: int, high: int) -> PolicyConditions:
        if low < 0 or high < low:
            raise ValueError(f"invalid content length range {low}-{high}")
        self._entries.append(RangeCondition("content-length-range", low, high))
        return self

    def to_json(self) -> list[Any]:
        return [entry.to_json() for entry in self._entries]


@dataclass
class Policy:
    """Form-upload policy document.

    Attributes:
        expiration: Moment after which the store rejects the form.
        conditions: Conditions every form submission has to satisfy.
    """

    expiration: datetime | None = None
    conditions: PolicyConditions = field(default_factory=PolicyConditions)

    def set_expiration(self, seconds: int, now: datetime | None = None) -> Policy:
        now = now or datetime.now(timezone.utc)
        self.expiration = now + timedelta(seconds=seconds)
        return self

    def to_json(self) -> dict[str, Any]:
        document: dict[str, Any] = {}
        if self.expiration is not None:
            document["expiration"] = self.expiration.astimezone(timezone.utc).strftime(
                POLICY_EXPIRATION_FORMAT
            )
        document["conditions"] = self.conditions.to_json()
        return document

    def dumps(self) -> str:
        return json.dumps(self.to_json(), separators=(",", ":"))

    def encode(self) -> str:
        """Return the base64 form of the document, which is also what gets signed."""
        return base64.b64encode(self.dumps().encode("utf-8")).decode("ascii")
