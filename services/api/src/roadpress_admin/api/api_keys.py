"""第三方服务密钥管理与插件下发接口。"""

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from roadpress_admin.core.security import SessionPrincipal
from roadpress_admin.db.session import get_db
from roadpress_admin.dependencies import get_current_session, require_admin
from roadpress_admin.models.enums import LogCategory
from roadpress_admin.models.license import ApiKey, License
from roadpress_admin.schemas.common import ErrorResponse, SuccessResponse
from roadpress_admin.schemas.license import ApiKeyData, ApiKeyUpsertRequest
from roadpress_admin.services.debug_log import record_debug_log
from roadpress_admin.services.plugin_auth import require_plugin_license
from roadpress_admin.utils.response import success

router = APIRouter(prefix="/api-keys", tags=["api-keys"])

# 插件按固定字段名读取密钥。
PLUGIN_KEY_FIELDS = {
    "openai": "openai_api_key",
    "brevo": "brevo_api_key",
    "deepl": "deepl_api_key",
    "mapbox": "mapbox_client_key",
    "geonames": "geonames_username",
}


def mask_key(value: str) -> str:
    """仅保留末 4 位。"""
    if len(value) <= 4:
        return "*" * len(value)
    return f"{'*' * (len(value) - 4)}{value[-4:]}"


def _api_key_data(row: ApiKey) -> dict:
    return {
        "service": row.service,
        "masked_key": mask_key(row.key),
        "is_active": row.is_active,
        "updated_at": row.updated_at,
    }


@router.get(
    "/provide",
    summary="插件获取服务密钥",
    description="插件凭 Bearer API 令牌或 `license_key` 查询参数获取当前启用的服务密钥。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[dict[str, str]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def provide_api_keys(
    request: Request,
    license_row: License = Depends(require_plugin_license),
    db: Session = Depends(get_db),
):
    """向插件下发启用中的服务密钥，未配置的服务返回空串。"""
    rows = db.execute(select(ApiKey).where(ApiKey.is_active.is_(True))).scalars().all()
    keys = {row.service: row.key for row in rows}
    record_debug_log(
        db, request, category=LogCategory.API_KEYS, action="API_KEYS_PROVIDE",
        license_id=license_row.id, client_name=license_row.client_name,
    )
    db.commit()
    return success(request, {field: keys.get(service, "") for service, field in PLUGIN_KEY_FIELDS.items()})


@router.get(
    "",
    summary="查询服务密钥",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[ApiKeyData]],
    responses={401: {"model": ErrorResponse}},
)
def list_api_keys(
    request: Request,
    _: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    rows = db.execute(select(ApiKey).order_by(ApiKey.service)).scalars().all()
    return success(request, [_api_key_data(row) for row in rows])


@router.put(
    "/{service}",
    summary="设置服务密钥",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[ApiKeyData],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
def upsert_api_key(
    payload: ApiKeyUpsertRequest,
    request: Request,
    service: str = Path(min_length=1, max_length=64, pattern=r"^[a-z0-9_-]+$"),
    _: SessionPrincipal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """新建或覆盖某个服务的密钥（仅管理员）。"""
    row = db.execute(select(ApiKey).where(ApiKey.service == service)).scalar_one_or_none()
    if row is None:
        row = ApiKey(service=service, key=payload.key, is_active=payload.is_active)
        db.add(row)
    else:
        row.key = payload.key
        row.is_active = payload.is_active
    record_debug_log(
        db, request, category=LogCategory.API_KEYS, action="API_KEY_UPSERT",
        request_data={"service": service, "is_active": payload.is_active},
    )
    db.commit()
    db.refresh(row)
    return success(request, _api_key_data(row))
