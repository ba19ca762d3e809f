"""调试日志模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from roadpress_admin.models.base import Base, UUIDPrimaryKeyMixin
from roadpress_admin.models.enums import LogStatus


class DebugLog(Base, UUIDPrimaryKeyMixin):
    """认证、许可证与插件交互的持久化调试日志。"""

    __tablename__ = "debug_logs"

    # 分类，例如 AUTH/LICENSE。
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    # 动作标识，例如 LOGIN/COMPLETE_LOGIN。
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    method: Mapped[str | None] = mapped_column(String(16))
    endpoint: Mapped[str | None] = mapped_column(String(512))
    # 关联许可证（插件请求）。
    license_id: Mapped[UUID | None] = mapped_column()
    client_name: Mapped[str | None] = mapped_column(String(256))
    # 结果状态（SUCCESS/WARNING/ERROR/INFO）。
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=LogStatus.SUCCESS)
    message: Mapped[str | None] = mapped_column(Text)
    # 请求摘要，禁止写入口令与验证码。
    request_data: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    error_details: Mapped[str | None] = mapped_column(Text)
    duration_ms: Mapped[int | None] = mapped_column(Integer)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
