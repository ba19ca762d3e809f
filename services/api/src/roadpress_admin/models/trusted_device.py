"""受信设备模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roadpress_admin.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class TrustedDevice(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """完成第二因子时选择“记住设备”的浏览器。"""

    __tablename__ = "trusted_devices"

    # 所属用户（逻辑关联 users.id）。
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 写入 Cookie 的随机令牌，全局唯一。
    device_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    # 由 User-Agent 推断的可读名称，例如 "Chrome on Windows"。
    device_name: Mapped[str | None] = mapped_column(String(128))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 到期后首次出示时删除。
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
