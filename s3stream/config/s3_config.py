"""Pydantic model for s3stream client configuration."""

from pydantic import BaseModel, Field

from s3stream.const import (
    DEFAULT_CONCURRENCY,
    DEFAULT_HOST,
    DEFAULT_PART_ATTEMPTS,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_PART_SIZE,
    MIN_PART_SIZE,
)
from s3stream.exceptions import ConfigError

REQUIRED_FIELDS = ("bucket", "access_key", "secret_key")


class S3Config(BaseModel):
    """Connection and upload settings for one bucket.

    Attributes:
        bucket: name of the bucket objects are read from and written to.
        access_key: access key id used in the Authorization header.
        secret_key: secret used to sign requests.
        prefix: path prepended to every object key.
        host: store endpoint; the bucket is addressed as a subdomain of it.
        secure: use https when true, http otherwise.
        path_style: address the bucket as the first path segment instead of
            a subdomain, for stores without virtual-hosted buckets.
        concurrency: number of parts uploaded in parallel.
        part_attempts: attempts per part before the upload is aborted.
        retry_delay: seconds to wait between attempts of the same part.
        min_part_size: size of the first part, in bytes.
        timeout: per-request timeout in seconds.
    """

    bucket: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    prefix: str = ""
    host: str = DEFAULT_HOST
    secure: bool = True
    path_style: bool = False
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    part_attempts: int = Field(default=DEFAULT_PART_ATTEMPTS, ge=1)
    retry_delay: float = Field(default=0.0, ge=0.0)
    min_part_size: int = Field(default=MIN_PART_SIZE, ge=1, le=MAX_PART_SIZE)
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS

    def validate_credentials(self) -> None:
        """Raise ConfigError if a field needed to talk to the store is unset."""
        missing = [name for name in REQUIRED_FIELDS if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Missing configuration: {', '.join(missing)}")
