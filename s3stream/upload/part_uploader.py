"""Upload of a single multipart part with a bounded number of attempts."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import requests

from s3stream.core.http_errors import new_s3_error
from s3stream.exceptions import S3Error
from s3stream.upload.models import Part, RetryPolicy

if TYPE_CHECKING:
    from s3stream.client import S3Client

logger = logging.getLogger(__name__)


class PartUploader:
    """PUTs parts of one multipart upload, retrying failed attempts.

    A part's bytes are sent in full on every attempt. When every attempt
    fails, the error of the last one is raised; the caller decides what
    that means for the rest of the upload.
    """

    def __init__(
        self,
        client: S3Client,
        key: str,
        upload_id: str,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the part uploader.

        Args:
            client: Client used to sign and send requests.
            key: Object key the upload belongs to.
            upload_id: Identifier the store issued for the upload.
            retry_policy: Attempts and delay per part.
        """
        self._client = client
        self.key = key
        self.upload_id = upload_id
        self.retry_policy = retry_policy or RetryPolicy()

    def upload(self, part: Part) -> None:
        """Upload a part, recording the store's entity tag on it.

        Args:
            part: The part to upload. ``part.etag`` is set on success.

        Raises:
            S3Error: If the last attempt got a non-200 response.
            requests.RequestException: If the last attempt failed in transport.
        """
        attempts = self.retry_policy.attempts
        for attempt in range(1, attempts + 1):
            try:
                self._put_part(part)
                return
            except (S3Error, requests.RequestException) as exc:
                logger.warning(
                    "Part upload failed: key=%s part=%d attempt=%d/%d error=%s",
                    self.key,
                    part.number,
                    attempt,
                    attempts,
                    exc,
                )
                if attempt == attempts:
                    raise
                if self.retry_policy.delay_seconds:
                    time.sleep(self.retry_policy.delay_seconds)

    def _put_part(self, part: Part) -> None:
        query = [("partNumber", str(part.number)), ("uploadId", self.upload_id)]
        response = self._client.send("PUT", self.key, query=query, data=part.data)
        with response:
            if response.status_code != 200:
                raise new_s3_error(
                    response,
                    f"could not upload part {part.number}: {response.status_code}",
                )
            # the tag arrives quoted
            part.etag = response.headers.get("ETag", "").strip(' "')

        logger.debug(
            "Part uploaded: key=%s part=%d bytes=%d etag=%s",
            self.key,
            part.number,
            part.size,
            part.etag,
        )
