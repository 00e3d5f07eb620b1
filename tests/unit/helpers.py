"""Fake object store used by the upload and client tests."""

import re
import threading
import xml.etree.ElementTree as ET
from urllib.parse import parse_qs, urlsplit

import requests_mock


BUCKET = "test-bucket"
HOST = "s3.example.com"
ENDPOINT = f"https://{BUCKET}.{HOST}"
UPLOAD_ID = "upload-1"

ERROR_BODY = "<Error><Code>{code}</Code><Message>{message}</Message></Error>"


def error_body(code: str, message: str = "failed") -> str:
    return ERROR_BODY.format(code=code, message=message)


def query_of(request) -> dict[str, str]:
    """Parse a mocked request's query string without changing its case."""
    parsed = parse_qs(urlsplit(request.url).query, keep_blank_values=True)
    return {name: values[0] for name, values in parsed.items()}


class FakeStore:
    """In-memory stand-in for the multipart endpoints of one bucket.

    Behaviour is adjusted per test through the public attributes before the
    writer is used.
    """

    def __init__(self, mocker: requests_mock.Mocker) -> None:
        self.mocker = mocker
        self.lock = threading.Lock()

        self.initiate_status = 200
        self.complete_status = 200
        self.complete_body = "<CompleteMultipartUploadResult/>"
        self.abort_status = 204
        # part number -> number of attempts that fail before one succeeds
        self.part_failures: dict[int, int] = {}
        self.part_failure_status = 503
        self.part_failure_code = "SlowDown"

        self.parts: dict[int, bytes] = {}
        self.part_attempts: dict[int, int] = {}
        self.initiated_content_type: str | None = None
        self.completed_body: bytes | None = None
        self.aborted = False

        url = re.compile(re.escape(ENDPOINT) + "/.*")
        mocker.post(url, text=self._post)
        mocker.put(url, text=self._put)
        mocker.delete(url, text=self._delete)

    @property
    def request_count(self) -> int:
        return len(self.mocker.request_history)

    def data(self) -> bytes:
        """Concatenate stored parts in part number order."""
        return b"".join(self.parts[number] for number in sorted(self.parts))

    def manifest(self) -> list[tuple[int, str]]:
        """Return the (part number, etag) pairs of the completion request."""
        assert self.completed_body is not None
        root = ET.fromstring(self.completed_body)
        return [
            (int(part.findtext("PartNumber")), part.findtext("ETag"))
            for part in root.findall("Part")
        ]

    def _post(self, request, context) -> str:
        query = query_of(request)
        if "uploads" in query:
            context.status_code = self.initiate_status
            if self.initiate_status != 200:
                return error_body("AccessDenied", "Access Denied")
            self.initiated_content_type = request.headers.get("Content-Type")
            return (
                "<InitiateMultipartUploadResult "
                'xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
                f"<Bucket>{BUCKET}</Bucket><Key>key</Key>"
                f"<UploadId>{UPLOAD_ID}</UploadId>"
                "</InitiateMultipartUploadResult>"
            )

        assert query["uploadId"] == UPLOAD_ID
        context.status_code = self.complete_status
        if self.complete_status != 200:
            return error_body("InternalError")
        self.completed_body = request.body
        return self.complete_body

    def _put(self, request, context) -> str:
        query = query_of(request)
        assert query["uploadId"] == UPLOAD_ID
        number = int(query["partNumber"])

        with self.lock:
            self.part_attempts[number] = self.part_attempts.get(number, 0) + 1
            remaining = self.part_failures.get(number, 0)
            if remaining:
                self.part_failures[number] = remaining - 1
                context.status_code = self.part_failure_status
                return error_body(self.part_failure_code)
            self.parts[number] = request.body or b""

        context.status_code = 200
        context.headers["ETag"] = f'"etag-{number}"'
        return ""

    def _delete(self, request, context) -> str:
        assert query_of(request)["uploadId"] == UPLOAD_ID
        context.status_code = self.abort_status
        if self.abort_status not in (200, 204):
            return error_body("InternalError", "abort failed")
        self.aborted = True
        return ""


