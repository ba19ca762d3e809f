"""响应包裹工具。

成功: `{request_id, data, meta}`；失败: `{request_id, error: {code, message, details}}`。
中间件在路由之前拦截的请求（准入拒绝）同样使用这里的结构。
"""

from datetime import datetime, timezone
from math import ceil
from time import perf_counter
from typing import Any

from fastapi import Request

DEFAULT_ERROR_MESSAGE = "server error"

_ACTION_BY_METHOD = {
    "GET": "查询成功。",
    "PUT": "保存成功。",
    "PATCH": "保存成功。",
    "DELETE": "删除成功。",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def request_id_of(request: Request) -> str:
    """读取请求追踪 ID，中间件未注入时返回空串。"""
    return getattr(request.state, "request_id", "")


def _elapsed_ms(request: Request) -> int | None:
    started_at = getattr(request.state, "request_started_at", None)
    if not isinstance(started_at, float):
        return None
    return int((perf_counter() - started_at) * 1000)


def page_meta(*, page: int, page_size: int, total: int) -> dict[str, int]:
    """列表接口的分页元信息。"""
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "pages": ceil(total / page_size) if page_size else 0,
    }


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    method = request.method.upper()
    envelope_meta: dict[str, Any] = {
        "message": _ACTION_BY_METHOD.get(method, "操作成功。"),
        "path": request.url.path,
        "timestamp": _timestamp(),
        "process_ms": _elapsed_ms(request),
    }
    envelope_meta.update(meta or {})
    return {"request_id": request_id_of(request), "data": data, "meta": envelope_meta}


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """构造错误响应；details 中同名键覆盖默认的 method/path/timestamp。"""
    merged = {"method": request.method.upper(), "path": request.url.path, "timestamp": _timestamp()}
    merged.update(details or {})
    return {
        "request_id": request_id_of(request),
        "error": {"code": code, "message": message, "details": merged},
    }
