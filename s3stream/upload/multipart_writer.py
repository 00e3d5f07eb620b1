"""Streaming multipart upload writer.

This module provides MultipartWriter, a file-like object that buffers written
bytes into parts and uploads them concurrently as one multipart upload. The
first part is MIN_PART_SIZE bytes and every following part is 0.1% larger
than the previous one, up to MAX_PART_SIZE, so small objects need little
memory while very large ones stay under the store's limit of 10000 parts.

Parts are handed to a fixed pool of worker threads through a bounded queue.
Writes block while every worker is busy. Closing the writer waits for all
parts, then completes the upload with the parts listed in ascending order.
If any part fails all of its attempts, the upload is aborted instead and
close() raises the error that caused it.
"""

from __future__ import annotations

import logging
import queue
import threading
from operator import attrgetter
from types import TracebackType
from typing import TYPE_CHECKING, Callable

import requests

from s3stream.const import (
    DEFAULT_CONCURRENCY,
    MAX_NUM_PARTS,
    MAX_PART_SIZE,
    MIN_PART_SIZE,
)
from s3stream.core.http_errors import new_s3_error
from s3stream.core.mime_types import content_type_for_key
from s3stream.core.payloads import build_complete_body, parse_error, parse_upload_id
from s3stream.exceptions import InvalidStateError, S3Error, S3StreamError
from s3stream.upload.models import Part, RetryPolicy, UploadState
from s3stream.upload.part_uploader import PartUploader

if TYPE_CHECKING:
    from s3stream.client import S3Client

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class MultipartWriter:
    """Write an object to the store as a concurrent multipart upload.

    The upload is created on the server by the first write. Use the writer as
    a context manager, or call close() when done and abort() to give up:

        with client.object("logs/big.bin").writer() as writer:
            for chunk in chunks:
                writer.write(chunk)

    Attributes:
        key: Object key being written.
        abort_error: Error of the abort request, if aborting the upload on
            the server failed. Never raised; the error that caused the abort
            is what close() raises.
        bytes_uploaded: Bytes confirmed by the store so far.
    """

    def __init__(
        self,
        client: S3Client,
        key: str,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        retry_policy: RetryPolicy | None = None,
        content_type: str | None = None,
        min_part_size: int = MIN_PART_SIZE,
        max_part_size: int = MAX_PART_SIZE,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the writer. No request is made until the first write.

        Args:
            client: Client used to sign and send requests.
            key: Object key to write.
            concurrency: Number of parts uploaded in parallel.
            retry_policy: Attempts and delay per part.
            content_type: Content type of the object, guessed from the key's
                extension when omitted.
            min_part_size: Size of the first part in bytes.
            max_part_size: Upper bound for the part size.
            progress_callback: Called with the size of each stored part.
                Runs on worker threads.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        if not 1 <= min_part_size <= max_part_size:
            raise ValueError(
                f"invalid part size bounds: min={min_part_size} max={max_part_size}"
            )

        self._client = client
        self.key = key
        self.concurrency = concurrency
        self.retry_policy = retry_policy or RetryPolicy()
        self.content_type = content_type or content_type_for_key(key)
        self._max_part_size = max_part_size
        self._progress_callback = progress_callback

        # _lock guards everything below; it is never held across network I/O.
        self._lock = threading.Lock()
        self._all_done = threading.Condition(self._lock)
        self._start_lock = threading.Lock()
        self._state = UploadState.IDLE
        self._upload_id: str | None = None
        self._buffer = bytearray()
        self._capacity = min_part_size
        self._part_number = 0
        self._parts: list[Part] = []
        self._outstanding = 0
        self._error: Exception | None = None
        self.abort_error: Exception | None = None
        self.bytes_uploaded = 0

        self._queue: queue.Queue[Part | None] = queue.Queue(maxsize=concurrency)
        self._workers: list[threading.Thread] = []

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def upload_id(self) -> str | None:
        return self._upload_id

    @property
    def closed(self) -> bool:
        return self._state is UploadState.CLOSED

    @property
    def parts(self) -> list[Part]:
        """Parts handed off so far, in ascending part number order."""
        with self._lock:
            return sorted(self._parts, key=attrgetter("number"))

    def writable(self) -> bool:
        return not self.closed

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Buffer ``data``, handing off a part each time the buffer fills.

        Blocks while all workers are busy.

        Args:
            data: Bytes to append to the object.

        Returns:
            The number of bytes written, always ``len(data)``.

        Raises:
            InvalidStateError: If the writer is closed or closing.
            S3Error: If creating the upload failed, or a part already failed
                all of its attempts.
            requests.RequestException: Transport failure creating the upload
                or, as above, of a failed part.
        """
        self._start()

        view = memoryview(data).cast("B")
        total = len(view)
        offset = 0
        while True:
            part = None
            with self._lock:
                self._check_writable()
                room = self._capacity - len(self._buffer)
                chunk = view[offset : offset + room]
                self._buffer += chunk
                offset += len(chunk)
                if len(self._buffer) >= self._capacity:
                    part = self._cut_part()
            if part is not None:
                self._dispatch(part)
            if offset >= total:
                return total

    def close(self) -> None:
        """Upload buffered data, wait for all parts and complete the upload.

        Raises:
            InvalidStateError: If the writer is already closed or closing.
            S3Error: The first fatal error of the upload. The upload has been
                aborted on the server in that case.
            requests.RequestException: As above, for transport failures.
        """
        self._start()

        final_part = None
        with self._lock:
            self._check_open()
            if self._error is None and (self._buffer or self._part_number == 0):
                try:
                    final_part = self._cut_part()
                except S3StreamError:
                    final_part = None
            if self._error is None:
                self._state = UploadState.COMPLETING
            else:
                self._state = UploadState.ABORTING

        if final_part is not None:
            self._dispatch(final_part)
        self._drain()

        try:
            if self._error is None:
                try:
                    self._complete()
                except (S3Error, requests.RequestException) as exc:
                    self._error = exc
                else:
                    return
            with self._lock:
                self._state = UploadState.ABORTING
            self._abort_upload()
            raise self._error
        finally:
            self._finish()

    def abort(self) -> None:
        """Discard buffered data and abort the upload on the server.

        Parts already being uploaded are allowed to finish first. A failed
        abort request is logged and kept on ``abort_error``.

        Raises:
            InvalidStateError: If the writer is already closed or closing.
        """
        with self._start_lock, self._lock:
            self._check_open(allow_idle=True)
            started = self._state is UploadState.UPLOADING
            self._state = UploadState.ABORTING
            self._buffer = bytearray()

        try:
            if started:
                self._drain()
                self._abort_upload()
        finally:
            self._finish()

    def __enter__(self) -> MultipartWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if self.closed:
            return
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def _check_open(self, allow_idle: bool = False) -> None:
        if self._state is UploadState.UPLOADING:
            return
        if allow_idle and self._state is UploadState.IDLE:
            return
        raise InvalidStateError(
            f"upload of {self.key!r} is already {self._state.value}"
        )

    def _check_writable(self) -> None:
        self._check_open()
        if self._error is not None:
            raise self._error

    def _start(self) -> None:
        """Create the upload on the server and start the workers, once."""
        with self._start_lock:
            if self._state is not UploadState.IDLE:
                return

            upload_id = self._initiate()
            uploader = PartUploader(
                self._client, self.key, upload_id, self.retry_policy
            )
            self._workers = [
                threading.Thread(
                    target=self._worker,
                    args=(uploader,),
                    name=f"s3stream-part-{i}",
                    daemon=True,
                )
                for i in range(self.concurrency)
            ]
            for worker in self._workers:
                worker.start()

            with self._lock:
                self._upload_id = upload_id
                self._state = UploadState.UPLOADING

    def _initiate(self) -> str:
        response = self._client.send(
            "POST",
            self.key,
            query=[("uploads", "")],
            headers={"Content-Type": self.content_type},
        )
        with response:
            if response.status_code != 200:
                raise new_s3_error(
                    response,
                    f"could not create multipart upload: {response.status_code}",
                )
            try:
                upload_id = parse_upload_id(response.content)
            except ValueError as exc:
                raise S3Error(
                    response.status_code,
                    body=response.text,
                    summary="could not create multipart upload: no upload id",
                ) from exc

        logger.info(
            "Multipart upload started: key=%s upload_id=%s content_type=%s",
            self.key,
            upload_id,
            self.content_type,
        )
        return upload_id

    def _cut_part(self) -> Part:
        """Turn the buffer into the next part. Caller holds ``_lock``."""
        if self._part_number >= MAX_NUM_PARTS:
            error = S3StreamError(
                f"upload of {self.key!r} would exceed {MAX_NUM_PARTS} parts"
            )
            if self._error is None:
                self._error = error
            raise error

        self._part_number += 1
        part = Part(number=self._part_number, data=bytes(self._buffer))
        self._parts.append(part)
        self._outstanding += 1
        self._buffer = bytearray()
        # grow by 0.1% per part
        self._capacity = min(
            self._capacity + self._capacity // 1000, self._max_part_size
        )
        return part

    def _dispatch(self, part: Part) -> None:
        logger.debug(
            "Queueing part: key=%s part=%d bytes=%d", self.key, part.number, part.size
        )
        self._queue.put(part)

    def _worker(self, uploader: PartUploader) -> None:
        while True:
            part = self._queue.get()
            if part is None:
                return
            try:
                self._process(part, uploader)
            except Exception as exc:
                self._fail(part, exc)
            finally:
                with self._lock:
                    self._outstanding -= 1
                    if self._outstanding == 0:
                        self._all_done.notify_all()

    def _process(self, part: Part, uploader: PartUploader) -> None:
        with self._lock:
            skip = self._error is not None or self._state is UploadState.ABORTING
        if skip:
            logger.debug(
                "Skipping part of failed upload: key=%s part=%d", self.key, part.number
            )
            part.release()
            return

        uploader.upload(part)
        part.release()

        with self._lock:
            self.bytes_uploaded += part.size
        if self._progress_callback is not None:
            self._progress_callback(part.size)

    def _fail(self, part: Part, exc: Exception) -> None:
        logger.error(
            "Part %d of %s failed after %d attempts, upload will be aborted: %s",
            part.number,
            self.key,
            self.retry_policy.attempts,
            exc,
        )
        with self._lock:
            if self._error is None:
                self._error = exc

    def _drain(self) -> None:
        """Wait for every handed-off part, then stop the workers."""
        with self._all_done:
            self._all_done.wait_for(lambda: self._outstanding == 0)
        for _ in self._workers:
            self._queue.put(None)
        for worker in self._workers:
            worker.join()
        self._workers = []

    def _complete(self) -> None:
        parts = sorted(self._parts, key=attrgetter("number"))
        body = build_complete_body(parts)
        response = self._client.send(
            "POST", self.key, query=[("uploadId", self._upload_id or "")], data=body
        )
        with response:
            if response.status_code != 200:
                raise new_s3_error(
                    response, f"could not complete upload: {response.status_code}"
                )
            # the store may report a failure inside a 200 response
            code, message = parse_error(response.content)
            if code:
                raise S3Error(
                    response.status_code,
                    body=response.text,
                    summary="could not complete upload",
                    code=code,
                    message=message,
                )

        logger.info(
            "Multipart upload complete: key=%s upload_id=%s parts=%d bytes=%d",
            self.key,
            self._upload_id,
            len(parts),
            self.bytes_uploaded,
        )

    def _abort_upload(self) -> None:
        try:
            response = self._client.send(
                "DELETE", self.key, query=[("uploadId", self._upload_id or "")]
            )
            with response:
                if response.status_code not in (200, 204):
                    raise new_s3_error(
                        response, f"could not abort upload: {response.status_code}"
                    )
        except (S3Error, requests.RequestException) as exc:
            self.abort_error = exc
            logger.error(
                "Abort failed: key=%s upload_id=%s error=%s",
                self.key,
                self._upload_id,
                exc,
            )
            return

        logger.info(
            "Multipart upload aborted: key=%s upload_id=%s", self.key, self._upload_id
        )

    def _finish(self) -> None:
        with self._lock:
            self._state = UploadState.CLOSED
            self._buffer = bytearray()
            for part in self._parts:
                part.release()
