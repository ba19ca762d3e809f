"""后台用户模型。"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roadpress_admin.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from roadpress_admin.models.enums import UserRole


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """后台账号，包含口令哈希与 2FA 配置。"""

    __tablename__ = "users"

    # 登录邮箱，全局唯一。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 展示名。
    name: Mapped[str | None] = mapped_column(String(128))
    # bcrypt 口令哈希，不存明文。
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    # 角色（admin/user）。
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=UserRole.USER)
    # 是否已启用 2FA。
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # TOTP 共享密钥（AES-GCM 密文）。
    two_factor_secret: Mapped[str | None] = mapped_column(Text)
    # 备用码集合（AES-GCM 密文，明文为 JSON 数组）。
    backup_codes: Mapped[str | None] = mapped_column(Text)
    # 备用码版本号，每次改写 +1，用于比较并交换。
    backup_codes_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # 最近一次登录时间。
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
