"""领域枚举定义。"""

from enum import StrEnum


class UserRole(StrEnum):
    """后台用户角色。"""

    ADMIN = "admin"  # 管理员，可访问全部后台功能。
    USER = "user"  # 普通后台用户。


class LicenseStatus(StrEnum):
    """许可证状态。"""

    ACTIVE = "ACTIVE"  # 生效中，插件接口可正常调用。
    INACTIVE = "INACTIVE"  # 已停用。
    EXPIRED = "EXPIRED"  # 超过有效期，校验时自动回写。
    SUSPENDED = "SUSPENDED"  # 人工暂停。


class LogCategory(StrEnum):
    """调试日志分类。"""

    AUTH = "AUTH"
    LICENSE = "LICENSE"
    API_KEYS = "API_KEYS"
    STATS = "STATS"
    SYSTEM = "SYSTEM"
    SECURITY = "SECURITY"


class LogStatus(StrEnum):
    """调试日志结果状态。"""

    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    INFO = "INFO"


class StatChannel(StrEnum):
    """插件上报的用量渠道。"""

    EMAIL = "email"
    SMS = "sms"
