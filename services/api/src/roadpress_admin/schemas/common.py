"""响应包裹结构，仅用于接口文档与出参校验。"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class BaseSchema(BaseModel):
    """允许直接由 ORM 对象构造。"""

    model_config = ConfigDict(from_attributes=True)


class PageMeta(BaseSchema):
    page: int = Field(description="当前页码，从 1 开始。")
    page_size: int = Field(description="每页条数。")
    total: int = Field(description="筛选后的总条数。")
    pages: int = Field(description="总页数。")


class ErrorBody(BaseSchema):
    code: str = Field(description="错误码，例如 UNAUTHORIZED / NOT_FOUND。")
    message: str = Field(description="错误说明。插件接口保留其历史文案。")
    details: dict[str, Any] = Field(default_factory=dict, description="请求方法、路径、建议等附加信息。")


class ErrorResponse(BaseSchema):
    request_id: str = Field(description="请求追踪 ID，与响应头 X-Request-Id 一致。")
    error: ErrorBody


class SuccessResponse(BaseSchema, Generic[T]):
    request_id: str = Field(description="请求追踪 ID，与响应头 X-Request-Id 一致。")
    data: T
    meta: dict[str, Any] = Field(default_factory=dict, description="提示文案、耗时与分页信息。")


class OperationResult(BaseSchema):
    """无业务数据的操作结果。"""

    success: bool = True
