"""ORM 模型导出集合。"""

from roadpress_admin.models.debug_log import DebugLog
from roadpress_admin.models.license import ApiKey, License, UsageStat
from roadpress_admin.models.trusted_device import TrustedDevice
from roadpress_admin.models.user import User

__all__ = [
    "ApiKey",
    "DebugLog",
    "License",
    "TrustedDevice",
    "UsageStat",
    "User",
]
