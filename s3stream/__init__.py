"""Streaming multipart uploads to S3-compatible object stores."""

from .client import S3Client, S3Object
from .config import ConfigManager, ProfileManager, S3Config
from .core.headers import ObjectHead
from .core.policy import ACL, Policy
from .exceptions import ConfigError, InvalidStateError, S3Error, S3StreamError
from .upload.models import RetryPolicy, UploadState
from .upload.multipart_writer import MultipartWriter

__version__ = "0.1.0"

__all__ = [
    "ACL",
    "ConfigError",
    "ConfigManager",
    "InvalidStateError",
    "MultipartWriter",
    "ObjectHead",
    "Policy",
    "ProfileManager",
    "RetryPolicy",
    "S3Client",
    "S3Config",
    "S3Error",
    "S3Object",
    "S3StreamError",
    "UploadState",
]
