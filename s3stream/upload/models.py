"""Data types shared by the multipart upload components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field

from s3stream.const import DEFAULT_PART_ATTEMPTS


class UploadState(str, Enum):
    """Lifecycle of a multipart upload session."""

    IDLE = "idle"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    ABORTING = "aborting"
    CLOSED = "closed"


class RetryPolicy(BaseModel):
    """How often a single part is attempted before the upload is given up.

    Attributes:
        attempts: total attempts per part, including the first.
        delay_seconds: pause between consecutive attempts of the same part.
    """

    attempts: int = Field(default=DEFAULT_PART_ATTEMPTS, ge=1)
    delay_seconds: float = Field(default=0.0, ge=0.0)


@dataclass
class Part:
    """One contiguous slice of the object, uploaded as a single PUT.

    ``data`` is dropped once the part is stored; ``size`` stays.
    """

    number: int
    data: bytes = field(repr=False)
    size: int = 0
    etag: str = ""

    def __post_init__(self) -> None:
        self.size = len(self.data)

    def release(self) -> None:
        self.data = b""
