import os

DEFAULT_HOST = os.getenv("S3STREAM_HOST", "s3.amazonaws.com")

# Limits defined by the store
MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PART_SIZE = 2**31 - 1  # store allows 5 GiB, capped to fit a signed 32-bit length
MAX_NUM_PARTS = 10000

DEFAULT_CONCURRENCY = 5
DEFAULT_PART_ATTEMPTS = 2
DEFAULT_TIMEOUT_SECONDS = 60.0

AMZ_HEADER_PREFIX = "x-amz-"
HTTP_DATE_FORMAT = "%a, %d %b %Y %H:%M:%S GMT"
POLICY_EXPIRATION_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

