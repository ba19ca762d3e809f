"""调试日志查询与清理接口。

该前缀在准入中间件中属于公开路径，除 ping 外的接口在处理函数内校验会话。
"""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from roadpress_admin.core.security import SessionPrincipal
from roadpress_admin.db.session import get_db
from roadpress_admin.dependencies import get_current_session
from roadpress_admin.models.debug_log import DebugLog
from roadpress_admin.models.enums import LogCategory, LogStatus
from roadpress_admin.schemas.common import ErrorResponse, OperationResult, SuccessResponse
from roadpress_admin.schemas.debug import DebugCleanData, DebugCleanRequest, DebugLogData, PingData
from roadpress_admin.services.debug_log import purge_debug_logs
from roadpress_admin.utils.response import page_meta, success

router = APIRouter(prefix="/debug", tags=["debug"])


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="log not found")


def _split(value: str | None) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


@router.get(
    "/ping",
    summary="调试探活",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PingData],
)
def ping(request: Request):
    return success(request, {"status": "pong", "timestamp": datetime.now(timezone.utc)})


@router.get(
    "/logs",
    summary="查询调试日志",
    description="支持按分类、状态（逗号分隔多选）、许可证、客户、关键字与时间范围过滤，按时间倒序分页。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[DebugLogData]],
    responses={401: {"model": ErrorResponse}},
)
def list_logs(
    request: Request,
    categories: str | None = Query(default=None, description="分类，逗号分隔。"),
    statuses: str | None = Query(default=None, description="状态，逗号分隔。"),
    license_id: UUID | None = Query(default=None),
    client_name: str | None = Query(default=None, max_length=256),
    search: str | None = Query(default=None, max_length=128),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """分页查询调试日志。"""
    stmt = select(DebugLog)
    category_list = [item.upper() for item in _split(categories) if item.upper() in LogCategory.__members__]
    if category_list:
        stmt = stmt.where(DebugLog.category.in_(category_list))
    status_list = [item.upper() for item in _split(statuses) if item.upper() in LogStatus.__members__]
    if status_list:
        stmt = stmt.where(DebugLog.status.in_(status_list))
    if license_id is not None:
        stmt = stmt.where(DebugLog.license_id == license_id)
    if client_name:
        stmt = stmt.where(DebugLog.client_name == client_name)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                DebugLog.action.ilike(pattern),
                DebugLog.message.ilike(pattern),
                DebugLog.client_name.ilike(pattern),
                DebugLog.error_details.ilike(pattern),
            )
        )
    if date_from is not None:
        stmt = stmt.where(DebugLog.timestamp >= date_from)
    if date_to is not None:
        stmt = stmt.where(DebugLog.timestamp <= date_to)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = (
        db.execute(stmt.order_by(DebugLog.timestamp.desc()).offset((page - 1) * page_size).limit(page_size))
        .scalars()
        .all()
    )
    return success(
        request,
        [DebugLogData.model_validate(row).model_dump() for row in rows],
        meta=page_meta(page=page, page_size=page_size, total=total),
    )


@router.get(
    "/logs/{log_id}",
    summary="查询调试日志详情",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DebugLogData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_log(
    log_id: UUID,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    row = db.get(DebugLog, log_id)
    if row is None:
        raise _not_found()
    return success(request, DebugLogData.model_validate(row).model_dump())


@router.delete(
    "/logs/{log_id}",
    summary="删除调试日志",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_log(
    log_id: UUID,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    row = db.get(DebugLog, log_id)
    if row is None:
        raise _not_found()
    db.delete(row)
    db.commit()
    return success(request, {"success": True})


@router.post(
    "/clean",
    summary="清理过期调试日志",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DebugCleanData],
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def clean_logs(
    payload: DebugCleanRequest,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """删除早于指定天数的日志。"""
    return success(request, {"deleted": purge_debug_logs(db, older_than_days=payload.days)})
