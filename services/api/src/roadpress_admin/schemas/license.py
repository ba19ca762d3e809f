"""许可证、API 密钥与插件上报结构。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from roadpress_admin.models.enums import LicenseStatus
from roadpress_admin.schemas.common import BaseSchema
from roadpress_admin.services.licenses import as_utc


class LicenseCreateRequest(BaseModel):
    """创建许可证请求。"""

    client_name: str = Field(min_length=1, max_length=256, description="客户名称。")
    start_date: datetime = Field(description="有效期开始。")
    end_date: datetime = Field(description="有效期结束。")
    status: LicenseStatus | None = Field(default=None, description="未到生效日期时的初始状态。")

    @model_validator(mode="after")
    def check_period(self):
        if as_utc(self.end_date) < as_utc(self.start_date):
            raise ValueError("end_date must not be earlier than start_date")
        return self


class LicenseUpdateRequest(BaseModel):
    """更新许可证请求，仅修改提供的字段。"""

    client_name: str | None = Field(default=None, min_length=1, max_length=256)
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: LicenseStatus | None = None
    site_url: str | None = Field(default=None, max_length=512)


class LicenseData(BaseSchema):
    """许可证详情。"""

    id: UUID
    license_key: str
    client_name: str
    status: str
    start_date: datetime
    end_date: datetime
    site_url: str | None = None
    is_associated: bool
    has_api_token: bool = Field(default=False, description="是否已签发插件 API 令牌。")
    last_update: datetime | None = None
    created_at: datetime | None = None


class LicenseTokenData(BaseSchema):
    license_id: UUID
    api_token: str = Field(description="新的插件 API 令牌，仅此一次明文返回。")


class LicenseVerifyData(BaseSchema):
    """插件校验许可证结果。"""

    valid: bool
    api_token: str | None = None
    license: dict[str, Any]


class PluginSiteRequest(BaseModel):
    """插件关联 / 解除关联站点请求。"""

    license_key: str | None = Field(default=None, max_length=64, description="许可证密钥。")
    site_url: str | None = Field(default=None, max_length=512, description="客户站点地址。")


class ApiKeyUpsertRequest(BaseModel):
    key: str = Field(min_length=1, max_length=1024, description="第三方服务密钥。")
    is_active: bool = Field(default=True, description="是否下发给插件。")


class ApiKeyData(BaseSchema):
    """后台展示用的密钥（已打码）。"""

    service: str
    masked_key: str
    is_active: bool
    updated_at: datetime | None = None


class SmsStatItem(BaseModel):
    country: str = Field(min_length=1, max_length=8)
    sms_count: int = Field(ge=0)


class UsageStatsRequest(BaseModel):
    """插件用量上报。"""

    email_stats: int | None = Field(default=None, ge=0, description="发送邮件数。")
    sms_stats: list[SmsStatItem] = Field(default_factory=list, description="按国家统计的短信数。")


class UsageStatsData(BaseSchema):
    recorded: int = Field(description="写入的统计条数。")
