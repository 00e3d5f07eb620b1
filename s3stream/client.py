"""Client for one bucket of an S3-compatible object store.

S3Client owns the HTTP session and knows how to address, sign and send a
request for an object key. S3Object wraps one key and exposes the
operations on it: streaming multipart writes, reads, metadata, deletion and
signed URLs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any, BinaryIO, Mapping, Sequence, Tuple
from urllib.parse import urlencode

import requests
from requests.adapters import HTTPAdapter

from s3stream.config.s3_config import S3Config
from s3stream.core.headers import ObjectHead
from s3stream.core.http_errors import new_s3_error, raise_for_s3_status
from s3stream.core.policy import ACL, Policy
from s3stream.core.signing import (
    SigningContext,
    canonical_resource,
    presign_query,
    sign,
    sign_request,
)
from s3stream.upload.models import RetryPolicy
from s3stream.upload.multipart_writer import MultipartWriter, ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_IO_CHUNK_SIZE = 1024 * 1024


class S3Client:
    """Signs and sends requests for objects of one bucket.

    The client is safe to share between threads; the multipart writer's
    workers all send through the same session.
    """

    def __init__(self, config: S3Config, session: requests.Session | None = None):
        """Initialize the client.

        Args:
            config: Bucket, credentials and upload settings.
            session: Session to send requests with, a new one by default.

        Raises:
            ConfigError: If bucket or credentials are missing.
        """
        config.validate_credentials()
        self.config = config
        self._session = session or requests.Session()
        if session is None:
            adapter = HTTPAdapter(pool_maxsize=max(10, config.concurrency))
            self._session.mount("https://", adapter)
            self._session.mount("http://", adapter)

    def __enter__(self) -> S3Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def object(self, key: str) -> S3Object:
        return S3Object(self, key)

    @property
    def endpoint(self) -> str:
        scheme = "https" if self.config.secure else "http"
        if self.config.path_style:
            return f"{scheme}://{self.config.host}"
        return f"{scheme}://{self.config.bucket}.{self.config.host}"

    def object_path(self, key: str) -> str:
        """Unescaped path of a key within the bucket, including the prefix."""
        segments = [self.config.prefix.strip("/"), key.lstrip("/")]
        return "/" + "/".join(segment for segment in segments if segment)

    def resource(self, key: str) -> str:
        """Unescaped resource of a key as it appears in the string to sign."""
        return f"/{self.config.bucket}{self.object_path(key)}"

    def url(self, key: str, query_string: str = "") -> str:
        path = self.resource(key) if self.config.path_style else self.object_path(key)
        escaped_path, _ = canonical_resource(path, [])
        url = f"{self.endpoint}{escaped_path}"
        if query_string:
            url = f"{url}?{query_string}"
        return url

    def send(
        self,
        method: str,
        key: str,
        *,
        query: Sequence[Tuple[str, str]] | None = None,
        headers: Mapping[str, str] | None = None,
        data: bytes | None = None,
        stream: bool = False,
    ) -> requests.Response:
        """Sign and send a request for ``key``.

        Args:
            method: HTTP method.
            key: Object key the request is about.
            query: Query parameters; they are sorted and encoded exactly as
                they were signed.
            headers: Extra request headers, signed where applicable.
            data: Request body.
            stream: Leave the response body unread.

        Returns:
            The response, whatever its status code.

        Raises:
            requests.RequestException: On transport failure.
        """
        context = SigningContext(
            method=method,
            resource=self.resource(key),
            query=list(query or []),
            headers=list((headers or {}).items()),
        )
        signed = sign_request(
            context, self.config.access_key or "", self.config.secret_key or ""
        )
        url = self.url(key, signed.query_string)

        logger.debug("%s %s", method, url)
        response = self._session.request(
            method,
            url,
            headers=signed.header_dict(),
            data=data,
            stream=stream,
            timeout=self.config.timeout,
        )
        logger.debug("%s %s -> %d", method, url, response.status_code)
        return response


class S3Object:
    """A key in the bucket and the operations on it."""

    def __init__(self, client: S3Client, key: str) -> None:
        self._client = client
        self.key = key

    def __repr__(self) -> str:
        return f"S3Object(bucket={self._client.config.bucket!r}, key={self.key!r})"

    def writer(
        self,
        *,
        content_type: str | None = None,
        progress_callback: ProgressCallback | None = None,
        **options: Any,
    ) -> MultipartWriter:
        """Return a writer that uploads everything written to it as this object.

        Concurrency, retry policy and part size default to the client's
        configuration and can be overridden through ``options``.
        """
        config = self._client.config
        options.setdefault("concurrency", config.concurrency)
        options.setdefault(
            "retry_policy",
            RetryPolicy(
                attempts=config.part_attempts, delay_seconds=config.retry_delay
            ),
        )
        options.setdefault("min_part_size", config.min_part_size)
        return MultipartWriter(
            self._client,
            self.key,
            content_type=content_type,
            progress_callback=progress_callback,
            **options,
        )

    def upload(
        self,
        fileobj: BinaryIO,
        chunk_size: int = DEFAULT_IO_CHUNK_SIZE,
        **writer_options: Any,
    ) -> int:
        """Upload the contents of a binary file object.

        Returns:
            Number of bytes uploaded.
        """
        total = 0
        with self.writer(**writer_options) as writer:
            while True:
                chunk = fileobj.read(chunk_size)
                if not chunk:
                    break
                writer.write(chunk)
                total += len(chunk)
        return total

    def reader(self) -> requests.Response:
        """Open the object for streaming reads.

        The returned response must be closed, e.g. by using it as a context
        manager, and its body read with ``iter_content`` or ``raw``.

        Raises:
            S3Error: If the store does not answer with 200.
        """
        response = self._client.send("GET", self.key, stream=True)
        if response.status_code != 200:
            with response:
                raise new_s3_error(
                    response, f"could not read {self.key!r}: {response.status_code}"
                )
        return response

    def read(self) -> bytes:
        with self.reader() as response:
            return response.content

    def download(
        self, fileobj: BinaryIO, chunk_size: int = DEFAULT_IO_CHUNK_SIZE
    ) -> int:
        """Copy the object into a binary file object.

        Returns:
            Number of bytes written.
        """
        total = 0
        with self.reader() as response:
            for chunk in response.iter_content(chunk_size=chunk_size):
                fileobj.write(chunk)
                total += len(chunk)
        return total

    def head(self) -> ObjectHead:
        """Fetch the object's metadata.

        Raises:
            S3Error: If the store does not answer with 200.
        """
        with self._client.send("HEAD", self.key) as response:
            if response.status_code != 200:
                raise new_s3_error(
                    response, f"could not head {self.key!r}: {response.status_code}"
                )
            return ObjectHead(response.headers)

    def exists(self) -> bool:
        """Tell whether the object exists.

        Raises:
            S3Error: For answers other than 200 or 404.
        """
        with self._client.send("HEAD", self.key) as response:
            if response.status_code == 200:
                return True
            if response.status_code == 404:
                return False
            raise new_s3_error(
                response,
                f"could not check {self.key!r}: {response.status_code}",
            )

    def delete(self) -> None:
        """Delete the object. Deleting a missing key succeeds."""
        with self._client.send("DELETE", self.key) as response:
            raise_for_s3_status(
                response, (200, 204), f"could not delete {self.key!r}"
            )
        logger.info("Deleted %s", self.key)

    def expiring_url(
        self, expires_in: int | timedelta, now: datetime | None = None
    ) -> str:
        """Return a pre-signed GET URL valid for ``expires_in``.

        Args:
            expires_in: Validity as seconds or a timedelta.
            now: Start of the validity window, defaults to now.
        """
        if isinstance(expires_in, timedelta):
            expires_in = int(expires_in.total_seconds())
        now = now or datetime.now(timezone.utc)
        expires = int(now.timestamp()) + expires_in

        config = self._client.config
        query = presign_query(
            "GET",
            self._client.resource(self.key),
            config.access_key or "",
            config.secret_key or "",
            expires,
        )
        return self._client.url(self.key, urlencode(query))

    def form_upload_url(
        self,
        acl: ACL | str,
        policy: Policy,
        fields: Mapping[str, str] | None = None,
    ) -> str:
        """Return the bucket URL with the fields of a signed browser upload form.

        Args:
            acl: Canned ACL the uploaded object gets.
            policy: Conditions the form submission has to meet.
            fields: Additional form fields.
        """
        config = self._client.config
        encoded_policy = policy.encode()
        form = {
            "AWSAccessKeyId": config.access_key or "",
            "acl": ACL(acl).value,
            "key": self._client.object_path(self.key).lstrip("/"),
            "policy": encoded_policy,
            "signature": sign(config.secret_key or "", encoded_policy),
        }
        if fields:
            form.update(fields)
        bucket_root = (
            f"{self._client.endpoint}/{config.bucket}/"
            if config.path_style
            else f"{self._client.endpoint}/"
        )
        return f"{bucket_root}?{urlencode(sorted(form.items()))}"
