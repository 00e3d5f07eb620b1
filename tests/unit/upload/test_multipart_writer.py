import os
import threading
import time

import pytest

from s3stream.client import S3Client
from s3stream.config.s3_config import S3Config
from s3stream.exceptions import InvalidStateError, S3Error, S3StreamError
from s3stream.upload import multipart_writer
from s3stream.upload.models import RetryPolicy, UploadState
from s3stream.upload.multipart_writer import MultipartWriter
from tests.unit.helpers import UPLOAD_ID, FakeStore, error_body


def _writer(client: S3Client, key: str = "data/blob.bin", **options):
    return client.object(key).writer(**options)


def test_small_object_is_one_part(client: S3Client, store: FakeStore) -> None:
    writer = _writer(client)

    assert writer.write(b"hello!") == 6
    writer.close()

    assert store.parts == {1: b"hello!"}
    assert store.manifest() == [(1, "etag-1")]
    assert [part.size for part in writer.parts] == [6]
    assert writer.state is UploadState.CLOSED
    assert writer.upload_id == UPLOAD_ID
    assert writer.abort_error is None
    assert not store.aborted


def test_no_request_before_first_write(client: S3Client, store: FakeStore) -> None:
    writer = _writer(client)

    assert writer.state is UploadState.IDLE
    assert store.request_count == 0

    writer.write(b"x")

    assert writer.state is UploadState.UPLOADING
    assert writer.upload_id == UPLOAD_ID


@pytest.mark.parametrize("chunk_size", [1, 7, 16, 33, 1000])
def test_concatenated_parts_equal_written_bytes(
    client: S3Client, store: FakeStore, chunk_size: int
) -> None:
    payload = os.urandom(500)

    with _writer(client) as writer:
        for offset in range(0, len(payload), chunk_size):
            writer.write(payload[offset : offset + chunk_size])

    assert store.data() == payload
    assert writer.bytes_uploaded == len(payload)


def _instrument_part_puts(
    client: S3Client,
    monkeypatch: pytest.MonkeyPatch,
    delays: dict[int, float],
) -> dict:
    """Wrap client.send to record part PUT concurrency and completion order.

    The delay runs before the mocked transport, so slow parts overlap with
    others instead of holding the mock's send lock.
    """
    stats: dict = {"in_flight": 0, "peak": 0, "completed": []}
    lock = threading.Lock()
    original_send = client.send

    def send(method: str, key: str, **kwargs):
        if method != "PUT":
            return original_send(method, key, **kwargs)
        number = int(dict(kwargs["query"])["partNumber"])
        with lock:
            stats["in_flight"] += 1
            stats["peak"] = max(stats["peak"], stats["in_flight"])
        try:
            time.sleep(delays.get(number, 0.0))
            return original_send(method, key, **kwargs)
        finally:
            with lock:
                stats["in_flight"] -= 1
                stats["completed"].append(number)

    monkeypatch.setattr(client, "send", send)
    return stats


def test_manifest_lists_every_part_in_ascending_order(
    client: S3Client, store: FakeStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    stats = _instrument_part_puts(client, monkeypatch, delays={1: 0.3})

    with _writer(client, concurrency=4) as writer:
        writer.write(b"a" * 16 * 6)

    assert stats["completed"][-1] == 1
    assert stats["completed"] != sorted(stats["completed"])
    manifest = store.manifest()
    assert [number for number, _ in manifest] == [1, 2, 3, 4, 5, 6]
    assert all(etag == f"etag-{number}" for number, etag in manifest)


def test_part_uploads_are_bounded_by_concurrency(
    client: S3Client, store: FakeStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    delays = {number: 0.02 for number in range(1, 21)}
    stats = _instrument_part_puts(client, monkeypatch, delays=delays)
    writer = _writer(client, concurrency=3)

    writer.write(b"b" * 16 * 20)
    # three parts in flight plus three queued is all a write can run ahead
    completed_when_write_returned = len(stats["completed"])
    writer.close()

    assert stats["peak"] == 3
    assert completed_when_write_returned >= 20 - 2 * 3
    assert store.data() == b"b" * 16 * 20


def test_write_after_exhausted_part_raises_first_error(
    client: S3Client, store: FakeStore
) -> None:
    store.part_failures[1] = 10
    writer = _writer(client)
    writer.write(b"f" * 16)

    deadline = time.monotonic() + 5
    while True:
        try:
            writer.write(b"x")
        except S3Error as exc:
            first_error = exc
            break
        assert time.monotonic() < deadline, "part failure was never reported"
        time.sleep(0.01)

    with pytest.raises(S3Error) as write_error:
        writer.write(b"y")
    with pytest.raises(S3Error) as close_error:
        writer.close()

    assert write_error.value is first_error
    assert close_error.value is first_error
    assert first_error.code == "SlowDown"
    assert store.aborted
    assert store.completed_body is None


def test_part_sizes_grow_and_never_shrink(
    s3_config: S3Config, store: FakeStore
) -> None:
    config = s3_config.model_copy(update={"min_part_size": 2000})
    with S3Client(config) as client:
        with _writer(client) as writer:
            for _ in range(60):
                writer.write(b"z" * 333)

    sizes = [part.size for part in writer.parts]
    assert sizes[:3] == [2000, 2002, 2004]
    full_parts = sizes[:-1]
    assert full_parts == sorted(full_parts)
    assert sum(sizes) == 60 * 333


def test_part_size_is_capped(client: S3Client, store: FakeStore) -> None:
    with _writer(client, min_part_size=1000, max_part_size=1001) as writer:
        writer.write(b"q" * 3003)

    assert [part.size for part in writer.parts] == [1000, 1001, 1001, 1]


def test_empty_object_uploads_single_empty_part(
    client: S3Client, store: FakeStore
) -> None:
    writer = _writer(client)

    writer.close()

    assert store.parts == {1: b""}
    assert store.manifest() == [(1, "etag-1")]


def test_content_type_guessed_from_key(client: S3Client, store: FakeStore) -> None:
    with _writer(client, key="reports/summary.json") as writer:
        writer.write(b"{}")

    assert store.initiated_content_type == "application/json"


def test_explicit_content_type_wins(client: S3Client, store: FakeStore) -> None:
    with _writer(client, key="summary.json", content_type="text/plain") as writer:
        writer.write(b"{}")

    assert store.initiated_content_type == "text/plain"


def test_part_retried_once_then_upload_completes(
    client: S3Client, store: FakeStore
) -> None:
    store.part_failures[2] = 1

    with _writer(client) as writer:
        writer.write(b"r" * 40)

    assert store.part_attempts[2] == 2
    assert store.data() == b"r" * 40
    assert not store.aborted


def test_failed_part_aborts_upload(client: S3Client, store: FakeStore) -> None:
    store.part_failures[2] = 10

    with pytest.raises(S3Error) as exc_info:
        with _writer(client) as writer:
            writer.write(b"f" * 64)

    assert exc_info.value.code == "SlowDown"
    assert store.part_attempts[2] == RetryPolicy().attempts
    assert store.aborted
    assert store.completed_body is None
    assert writer.closed


def test_abort_failure_is_recorded_not_raised(
    client: S3Client, store: FakeStore
) -> None:
    store.part_failures[1] = 10
    store.abort_status = 500
    writer = _writer(client)

    writer.write(b"f" * 10)
    with pytest.raises(S3Error) as exc_info:
        writer.close()

    assert exc_info.value.code == "SlowDown"
    assert isinstance(writer.abort_error, S3Error)
    assert writer.abort_error.status_code == 500
    assert writer.abort_error.code == "InternalError"


def test_completion_failure_aborts_upload(client: S3Client, store: FakeStore) -> None:
    store.complete_status = 500
    writer = _writer(client)
    writer.write(b"c" * 20)

    with pytest.raises(S3Error) as exc_info:
        writer.close()

    assert exc_info.value.status_code == 500
    assert store.aborted
    assert writer.closed


def test_error_document_in_successful_completion_is_raised(
    client: S3Client, store: FakeStore
) -> None:
    store.complete_body = error_body("InternalError", "We encountered an error")
    writer = _writer(client)
    writer.write(b"c" * 20)

    with pytest.raises(S3Error) as exc_info:
        writer.close()

    assert exc_info.value.status_code == 200
    assert exc_info.value.code == "InternalError"
    assert store.aborted


def test_initiate_failure_leaves_writer_idle(
    client: S3Client, store: FakeStore
) -> None:
    store.initiate_status = 403
    writer = _writer(client)

    with pytest.raises(S3Error) as exc_info:
        writer.write(b"data")

    assert exc_info.value.status_code == 403
    assert exc_info.value.code == "AccessDenied"
    assert writer.state is UploadState.IDLE
    assert store.request_count == 1


def test_initiate_without_upload_id_raises(
    client: S3Client, http_mock, store: FakeStore
) -> None:
    http_mock.post(
        "https://test-bucket.s3.example.com/data/blob.bin",
        text="<InitiateMultipartUploadResult/>",
    )

    with pytest.raises(S3Error, match="no upload id"):
        _writer(client).write(b"data")


def test_closed_writer_rejects_operations_without_requests(
    client: S3Client, store: FakeStore
) -> None:
    writer = _writer(client)
    writer.write(b"done")
    writer.close()
    request_count = store.request_count

    with pytest.raises(InvalidStateError):
        writer.write(b"more")
    with pytest.raises(InvalidStateError):
        writer.close()
    with pytest.raises(InvalidStateError):
        writer.abort()

    assert store.request_count == request_count
    assert not writer.writable()


def test_abort_before_first_write_sends_nothing(
    client: S3Client, store: FakeStore
) -> None:
    writer = _writer(client)

    writer.abort()

    assert writer.closed
    assert store.request_count == 0
    with pytest.raises(InvalidStateError):
        writer.write(b"late")


def test_abort_discards_buffer_and_aborts_on_server(
    client: S3Client, store: FakeStore
) -> None:
    writer = _writer(client)
    writer.write(b"a" * 40)

    writer.abort()

    assert store.aborted
    assert store.completed_body is None
    assert b"a" * 8 not in store.parts.values()
    assert writer.closed


def test_context_manager_aborts_on_exception(
    client: S3Client, store: FakeStore
) -> None:
    with pytest.raises(RuntimeError):
        with _writer(client) as writer:
            writer.write(b"partial")
            raise RuntimeError("producer failed")

    assert store.aborted
    assert store.completed_body is None
    assert writer.closed


def test_context_manager_does_not_close_twice(
    client: S3Client, store: FakeStore
) -> None:
    with _writer(client) as writer:
        writer.write(b"x")
        writer.close()

    assert store.manifest() == [(1, "etag-1")]


def test_too_many_parts_aborts_upload(
    client: S3Client, store: FakeStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(multipart_writer, "MAX_NUM_PARTS", 2)

    with pytest.raises(S3StreamError, match="would exceed 2 parts"):
        with _writer(client) as writer:
            writer.write(b"p" * 48)

    assert store.aborted
    assert store.completed_body is None


def test_progress_callback_receives_part_sizes(
    client: S3Client, store: FakeStore
) -> None:
    reported: list[int] = []
    lock = threading.Lock()

    def on_progress(size: int) -> None:
        with lock:
            reported.append(size)

    with _writer(client, progress_callback=on_progress) as writer:
        writer.write(b"p" * 50)

    assert sorted(reported) == [2, 16, 16, 16]


def test_concurrent_writers_to_one_writer_keep_every_byte(
    client: S3Client, store: FakeStore
) -> None:
    writer = _writer(client)

    def produce(marker: bytes) -> None:
        for _ in range(25):
            writer.write(marker * 4)

    threads = [threading.Thread(target=produce, args=(m,)) for m in (b"a", b"b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    writer.close()

    data = store.data()
    assert len(data) == 200
    assert data.count(b"a") == 100
    assert data.count(b"b") == 100


@pytest.mark.parametrize(
    "options",
    [
        {"concurrency": 0},
        {"min_part_size": 0},
        {"min_part_size": 32, "max_part_size": 16},
    ],
)
def test_invalid_writer_options_rejected(client: S3Client, options: dict) -> None:
    with pytest.raises(ValueError):
        MultipartWriter(client, "key", **options)
