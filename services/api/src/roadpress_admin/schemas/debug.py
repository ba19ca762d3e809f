"""调试日志结构。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from roadpress_admin.schemas.common import BaseSchema


class DebugLogData(BaseSchema):
    """调试日志条目。"""

    id: UUID
    category: str
    action: str
    method: str | None = None
    endpoint: str | None = None
    license_id: UUID | None = None
    client_name: str | None = None
    status: str
    message: str | None = None
    request_data: dict[str, Any] | None = None
    error_details: str | None = None
    duration_ms: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime


class DebugCleanRequest(BaseModel):
    days: int = Field(gt=0, le=3650, description="删除早于该天数的日志。")


class DebugCleanData(BaseSchema):
    deleted: int = Field(description="删除条数。")


class PingData(BaseSchema):
    status: str
    timestamp: datetime
