from .config_manager import ConfigManager
from .profiles import ProfileAlreadyExist, ProfileManager, ProfileNotFound
from .s3_config import S3Config

__all__ = [
    "ConfigManager",
    "ProfileAlreadyExist",
    "ProfileManager",
    "ProfileNotFound",
    "S3Config",
]
