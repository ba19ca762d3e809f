"""许可证管理与插件许可证接口。"""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from roadpress_admin.core.security import SessionPrincipal
from roadpress_admin.db.session import get_db
from roadpress_admin.dependencies import get_current_session
from roadpress_admin.models.enums import LicenseStatus, LogCategory, LogStatus
from roadpress_admin.models.license import License
from roadpress_admin.schemas.common import ErrorResponse, OperationResult, SuccessResponse
from roadpress_admin.schemas.license import (
    LicenseCreateRequest,
    LicenseData,
    LicenseTokenData,
    LicenseUpdateRequest,
    LicenseVerifyData,
    PluginSiteRequest,
)
from roadpress_admin.services.debug_log import record_debug_log
from roadpress_admin.services.licenses import (
    generate_api_token,
    initial_status,
    is_currently_valid,
    mark_expired_if_due,
    unique_license_key,
)
from roadpress_admin.utils.response import success

router = APIRouter(prefix="/licenses", tags=["licenses"])


def _not_found(message: str = "license not found") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _license_data(license_row: License) -> dict:
    return {
        "id": license_row.id,
        "license_key": license_row.license_key,
        "client_name": license_row.client_name,
        "status": license_row.status,
        "start_date": license_row.start_date,
        "end_date": license_row.end_date,
        "site_url": license_row.site_url,
        "is_associated": license_row.is_associated,
        "has_api_token": bool(license_row.api_token),
        "last_update": license_row.last_update,
        "created_at": license_row.created_at,
    }


def _get_license_or_404(db: Session, license_id: UUID) -> License:
    license_row = db.get(License, license_id)
    if license_row is None:
        raise _not_found()
    return license_row


def _find_by_key(db: Session, license_key: str | None) -> License:
    key = (license_key or "").strip()
    if not key:
        raise _bad_request("license_key is required")
    license_row = db.execute(select(License).where(License.license_key == key)).scalar_one_or_none()
    if license_row is None:
        raise _not_found()
    return license_row


@router.get(
    "/verify",
    summary="插件校验许可证",
    description="按 `license_key` 校验状态与有效期；已过期的许可证会被回写为 EXPIRED。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LicenseVerifyData],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def verify_license(
    request: Request,
    license_key: str | None = Query(default=None, max_length=64),
    db: Session = Depends(get_db),
):
    """插件启动时校验许可证。"""
    license_row = _find_by_key(db, license_key)
    now = datetime.now(timezone.utc)
    if not is_currently_valid(license_row, now):
        mark_expired_if_due(license_row, now)
        record_debug_log(
            db, request, category=LogCategory.LICENSE, action="LICENSE_VERIFY", status=LogStatus.WARNING,
            message="license inactive or expired", license_id=license_row.id, client_name=license_row.client_name,
        )
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "LICENSE_INACTIVE",
                "message": "licence inactive ou expirée",
                "details": {"license_status": license_row.status},
            },
        )

    record_debug_log(
        db, request, category=LogCategory.LICENSE, action="LICENSE_VERIFY",
        message="license valid", license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    return success(
        request,
        {
            "valid": True,
            "api_token": license_row.api_token,
            "license": {
                "key": license_row.license_key,
                "client_name": license_row.client_name,
                "status": license_row.status,
                "start_date": license_row.start_date,
                "end_date": license_row.end_date,
            },
        },
    )


@router.post(
    "/update",
    summary="插件关联站点",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def associate_site(payload: PluginSiteRequest, request: Request, db: Session = Depends(get_db)):
    """记录许可证所在站点并标记为已关联。"""
    site_url = (payload.site_url or "").strip()
    if not site_url:
        raise _bad_request("site_url is required")
    license_row = _find_by_key(db, payload.license_key)
    license_row.site_url = site_url
    license_row.is_associated = True
    license_row.last_update = datetime.now(timezone.utc)
    record_debug_log(
        db, request, category=LogCategory.LICENSE, action="LICENSE_ASSOCIATE",
        request_data={"site_url": site_url}, license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    return success(request, {"success": True})


@router.post(
    "/disassociate",
    summary="插件解除站点关联",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def disassociate_site(payload: PluginSiteRequest, request: Request, db: Session = Depends(get_db)):
    """清除站点关联。"""
    license_row = _find_by_key(db, payload.license_key)
    license_row.site_url = None
    license_row.is_associated = False
    license_row.last_update = datetime.now(timezone.utc)
    record_debug_log(
        db, request, category=LogCategory.LICENSE, action="LICENSE_DISASSOCIATE",
        license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    return success(request, {"success": True})


@router.get(
    "",
    summary="查询许可证列表",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[LicenseData]],
    responses={401: {"model": ErrorResponse}},
)
def list_licenses(
    request: Request,
    license_status: LicenseStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=128),
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """按状态与关键字筛选许可证。"""
    stmt = select(License).order_by(License.created_at.desc())
    if license_status is not None:
        stmt = stmt.where(License.status == license_status)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                License.client_name.ilike(pattern),
                License.license_key.ilike(pattern),
                License.site_url.ilike(pattern),
            )
        )
    rows = db.execute(stmt).scalars().all()
    return success(request, [_license_data(row) for row in rows], meta={"total": len(rows)})


@router.post(
    "",
    summary="创建许可证",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LicenseData],
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def create_license(
    payload: LicenseCreateRequest,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """生成唯一许可证密钥并按有效期确定初始状态。"""
    now = datetime.now(timezone.utc)
    license_row = License(
        license_key=unique_license_key(db),
        client_name=payload.client_name.strip(),
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=initial_status(payload.start_date, payload.end_date, payload.status, now),
    )
    db.add(license_row)
    db.flush()
    record_debug_log(
        db, request, category=LogCategory.LICENSE, action="LICENSE_CREATE",
        license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    db.refresh(license_row)
    return success(request, _license_data(license_row))


@router.get(
    "/{license_id}",
    summary="查询许可证详情",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LicenseData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_license(
    license_id: UUID,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return success(request, _license_data(_get_license_or_404(db, license_id)))


@router.patch(
    "/{license_id}",
    summary="更新许可证",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LicenseData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def update_license(
    license_id: UUID,
    payload: LicenseUpdateRequest,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """仅更新请求中提供的字段。"""
    license_row = _get_license_or_404(db, license_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(license_row, field, value)
    record_debug_log(
        db, request, category=LogCategory.LICENSE, action="LICENSE_UPDATE",
        request_data={"fields": sorted(changes)}, license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    db.refresh(license_row)
    return success(request, _license_data(license_row))


@router.delete(
    "/{license_id}",
    summary="删除许可证",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_license(
    license_id: UUID,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    license_row = _get_license_or_404(db, license_id)
    record_debug_log(
        db, request, category=LogCategory.LICENSE, action="LICENSE_DELETE",
        license_id=license_row.id, client_name=license_row.client_name,
    )
    db.delete(license_row)
    db.commit()
    return success(request, {"success": True})


@router.post(
    "/{license_id}/token",
    summary="轮换插件 API 令牌",
    description="签发新的 API 令牌，旧令牌立即失效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LicenseTokenData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def rotate_api_token(
    license_id: UUID,
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    license_row = _get_license_or_404(db, license_id)
    license_row.api_token = generate_api_token()
    record_debug_log(
        db, request, category=LogCategory.SECURITY, action="LICENSE_TOKEN_ROTATE",
        license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    return success(request, {"license_id": license_row.id, "api_token": license_row.api_token})
