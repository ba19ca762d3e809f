"""许可证与插件相关模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from roadpress_admin.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from roadpress_admin.models.enums import LicenseStatus


class License(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """客户许可证，插件通过许可证密钥或 API 令牌认证。"""

    __tablename__ = "licenses"

    # 许可证密钥，全局唯一。
    license_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    # 插件 API 令牌，可为空。
    api_token: Mapped[str | None] = mapped_column(String(128), unique=True)
    # 客户名称。
    client_name: Mapped[str] = mapped_column(String(256), nullable=False)
    # 许可证状态（ACTIVE/INACTIVE/EXPIRED/SUSPENDED）。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=LicenseStatus.ACTIVE)
    # 有效期开始。
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 有效期结束。
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 已关联的客户站点。
    site_url: Mapped[str | None] = mapped_column(String(512))
    # 是否已关联站点。
    is_associated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 插件最近一次回写时间。
    last_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class ApiKey(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """下发给插件的第三方服务密钥。"""

    __tablename__ = "api_keys"

    # 服务标识，例如 openai/brevo/deepl。
    service: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    # 密钥原文。
    key: Mapped[str] = mapped_column(Text, nullable=False)
    # 是否下发给插件。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UsageStat(Base, UUIDPrimaryKeyMixin):
    """插件上报的邮件/短信用量。"""

    __tablename__ = "usage_stats"

    # 上报许可证 ID（逻辑关联 licenses.id）。
    license_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 渠道（email/sms）。
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    # 短信目的国家，邮件为空。
    country: Mapped[str | None] = mapped_column(String(8))
    # 发送条数。
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
