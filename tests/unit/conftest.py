from typing import Iterator

import pytest
import requests_mock

from s3stream.client import S3Client
from s3stream.config.s3_config import S3Config
from tests.unit.helpers import BUCKET, HOST, FakeStore


@pytest.fixture
def s3_config() -> S3Config:
    """Configuration with small parts so tests stay fast."""
    return S3Config(
        bucket=BUCKET,
        access_key="AKID",
        secret_key="secret",
        host=HOST,
        concurrency=3,
        min_part_size=16,
    )


@pytest.fixture
def client(s3_config: S3Config) -> Iterator[S3Client]:
    with S3Client(s3_config) as s3_client:
        yield s3_client


@pytest.fixture
def http_mock() -> Iterator[requests_mock.Mocker]:
    with requests_mock.Mocker() as m:
        yield m


@pytest.fixture
def store(http_mock: requests_mock.Mocker) -> FakeStore:
    return FakeStore(http_mock)
