"""调试日志服务。"""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy import delete
from sqlalchemy.orm import Session

from roadpress_admin.models.debug_log import DebugLog
from roadpress_admin.models.enums import LogStatus

# 这些字段永不落库。
_REDACTED_KEYS = frozenset({"password", "code", "secret", "token", "api_token", "backup_codes", "key"})
REDACTED = "[redacted]"


def client_ip(request: Request) -> str | None:
    """从代理头或连接信息中提取客户端 IP。"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def redact(data: dict[str, Any] | None) -> dict[str, Any] | None:
    """替换请求摘要中的敏感字段。"""
    if data is None:
        return None
    cleaned: dict[str, Any] = {}
    for field, value in data.items():
        if field.lower() in _REDACTED_KEYS:
            cleaned[field] = REDACTED
        elif isinstance(value, dict):
            cleaned[field] = redact(value)
        else:
            cleaned[field] = value
    return cleaned


def record_debug_log(
    db: Session,
    request: Request,
    *,
    category: str,
    action: str,
    status: str = LogStatus.SUCCESS,
    message: str | None = None,
    request_data: dict[str, Any] | None = None,
    license_id: UUID | None = None,
    client_name: str | None = None,
    error_details: str | None = None,
    duration_ms: int | None = None,
) -> DebugLog:
    """写入一条调试日志（调用方负责提交事务）。"""
    entry = DebugLog(
        category=category,
        action=action,
        method=request.method.upper(),
        endpoint=request.url.path,
        license_id=license_id,
        client_name=client_name,
        status=status,
        message=message,
        request_data=redact(request_data),
        error_details=error_details,
        duration_ms=duration_ms,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        timestamp=datetime.now(timezone.utc),
    )
    db.add(entry)
    return entry


def purge_debug_logs(db: Session, *, older_than_days: int) -> int:
    """删除早于指定天数的调试日志，返回删除条数。"""
    cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    result = db.execute(delete(DebugLog).where(DebugLog.timestamp < cutoff).execution_options(synchronize_session=False))
    db.commit()
    return result.rowcount or 0
