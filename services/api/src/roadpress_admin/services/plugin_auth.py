"""插件（机器对机器）请求认证。

严格顺序:
1. Authorization Bearer 令牌，按 API 令牌查许可证。
2. 无 Bearer 时回退到 `license_key` 查询参数（旧版插件）。
3. 两者皆无返回 401；查不到或状态非 ACTIVE 返回 403；持久层故障返回 500。

与会话认证完全独立，不读取任何 Cookie。
"""

from dataclasses import dataclass
from enum import StrEnum

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roadpress_admin.core.logging import get_logger
from roadpress_admin.core.security import extract_bearer_token
from roadpress_admin.db.session import get_db
from roadpress_admin.models.enums import LicenseStatus
from roadpress_admin.models.license import License

logger = get_logger(__name__)

MISSING_CREDENTIAL = "missing token or key"
INVALID_TOKEN = "token invalide ou licence inactive"
INVALID_LICENSE_KEY = "license key invalid or inactive"
SERVER_ERROR = "server error"


class LookupFailure(StrEnum):
    """许可证查找失败原因，仅用于内部日志区分。"""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class LicenseLookup:
    """许可证查找结果：命中时 license 非空，否则 failure 给出原因。"""

    license: License | None = None
    failure: LookupFailure | None = None

    @property
    def ok(self) -> bool:
        return self.license is not None


@dataclass(frozen=True)
class Valid:
    license: License


@dataclass(frozen=True)
class Invalid:
    reason: str
    status_code: int


PluginAuthResult = Valid | Invalid


def _evaluate(license_row: License | None) -> LicenseLookup:
    if license_row is None:
        return LicenseLookup(failure=LookupFailure.NOT_FOUND)
    if license_row.status != LicenseStatus.ACTIVE:
        return LicenseLookup(failure=LookupFailure.INACTIVE)
    return LicenseLookup(license=license_row)


def find_license_by_token(db: Session, token: str) -> LicenseLookup:
    """按 API 令牌查找可用许可证。"""
    return _evaluate(db.execute(select(License).where(License.api_token == token)).scalar_one_or_none())


def find_license_by_key(db: Session, license_key: str) -> LicenseLookup:
    """按许可证密钥查找可用许可证。"""
    return _evaluate(db.execute(select(License).where(License.license_key == license_key)).scalar_one_or_none())


def validate_plugin_request(db: Session, request: Request) -> PluginAuthResult:
    """校验插件请求携带的凭据。"""
    token = extract_bearer_token(request.headers.get("Authorization"))
    try:
        if token:
            lookup = find_license_by_token(db, token)
            if not lookup.ok:
                logger.info("plugin token rejected path=%s failure=%s", request.url.path, lookup.failure)
                return Invalid(INVALID_TOKEN, status.HTTP_403_FORBIDDEN)
            return Valid(lookup.license)

        license_key = (request.query_params.get("license_key") or "").strip()
        if not license_key:
            return Invalid(MISSING_CREDENTIAL, status.HTTP_401_UNAUTHORIZED)
        lookup = find_license_by_key(db, license_key)
        if not lookup.ok:
            logger.info("plugin license key rejected path=%s failure=%s", request.url.path, lookup.failure)
            return Invalid(INVALID_LICENSE_KEY, status.HTTP_403_FORBIDDEN)
        return Valid(lookup.license)
    except SQLAlchemyError:
        logger.exception("plugin authentication lookup failed path=%s", request.url.path)
        return Invalid(SERVER_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR)


def require_plugin_license(request: Request, db: Session = Depends(get_db)) -> License:
    """插件接口依赖：认证失败时抛出对应状态码的协议异常。"""
    result = validate_plugin_request(db, request)
    if isinstance(result, Invalid):
        raise HTTPException(status_code=result.status_code, detail=result.reason)
    return result.license
