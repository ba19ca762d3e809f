"""登录流程与会话认证。

登录结果为三选一的标签类型:
- `Rejected`：未知邮箱与口令错误返回同一原因。
- `NeedsSecondFactor`：口令正确且已启用 2FA，由路由写入交接凭据。
- `Authenticated`：全部因子通过（或出示了本账号的受信设备令牌），已签发并登记会话。
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from fastapi import HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.logging import get_logger
from roadpress_admin.core.security import (
    SessionPrincipal,
    activate_user_session,
    extract_bearer_token,
    issue_session_token,
    parse_session_token,
    revoke_session,
)
from roadpress_admin.models.user import User
from roadpress_admin.services.passwords import verify_password
from roadpress_admin.services.two_factor import (
    TwoFactorCryptoError,
    consume_backup_code,
    open_backup_codes,
    verify_user_totp,
)
from roadpress_admin.services.trusted_devices import trusted_device_owner

logger = get_logger(__name__)

INVALID_CREDENTIALS = "invalid credentials"
INVALID_CODE = "invalid code"


@dataclass(frozen=True)
class Rejected:
    reason: str


@dataclass(frozen=True)
class NeedsSecondFactor:
    user_id: str


@dataclass(frozen=True)
class Authenticated:
    session: SessionPrincipal
    # 会话令牌原文，由路由写入 Cookie 并返回给接口调用方。
    token: str
    expires_at: datetime


LoginOutcome = Rejected | NeedsSecondFactor | Authenticated


def normalize_email(value: str) -> str:
    """标准化邮箱字段（去空格 + 小写）。"""
    return value.strip().lower()


def _server_fault() -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="server error")


def _load_user(db: Session, user_id: str) -> User | None:
    try:
        key = UUID(str(user_id))
    except ValueError:
        return None
    return db.get(User, key)


def _issue_session(user: User) -> Authenticated:
    """只签发令牌，不登记会话。"""
    token, principal = issue_session_token(user_id=str(user.id), email=user.email, role=user.role)
    return Authenticated(
        session=principal,
        token=token,
        expires_at=datetime.fromtimestamp(principal.exp, tz=timezone.utc),
    )


def _activate_session(db: Session, user: User, outcome: Authenticated) -> Authenticated:
    """登记为该用户唯一有效的会话。"""
    principal = outcome.session
    activate_user_session(user_id=principal.user_id, jti=principal.jti, exp_ts=principal.exp)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return outcome


def _open_session(db: Session, user: User) -> Authenticated:
    return _activate_session(db, user, _issue_session(user))


def login(db: Session, email: str, password: str, *, device_token: str | None = None) -> LoginOutcome:
    """校验邮箱口令，决定直接登录还是进入第二因子。

    已启用 2FA 时，若请求携带本账号的受信设备令牌则直接签发会话。
    """
    user = db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()
    # 账号不存在时同样执行一次哈希比对，两种失败耗时一致。
    if not verify_password(password, user.password_hash if user else None) or user is None:
        logger.info("login rejected")
        return Rejected(INVALID_CREDENTIALS)
    if user.two_factor_enabled:
        if device_token and trusted_device_owner(db, device_token) == user.id:
            logger.info("login authenticated via trusted device user_id=%s", user.id)
            return _open_session(db, user)
        logger.info("login needs second factor user_id=%s", user.id)
        return NeedsSecondFactor(user_id=str(user.id))
    logger.info("login authenticated user_id=%s", user.id)
    return _open_session(db, user)


def complete_two_factor(db: Session, handoff_user_id: str, code: str) -> LoginOutcome:
    """用 TOTP 或备用码完成第二因子。

    备用码路径先签发令牌，作废备用码成功后才登记会话。并发提交同一备用码时，
    失败的一方不触碰会话登记，胜出方的会话保持有效。
    """
    user = _load_user(db, handoff_user_id)
    if user is None or not user.two_factor_enabled:
        return Rejected(INVALID_CODE)

    try:
        if verify_user_totp(user, code):
            logger.info("second factor accepted via totp user_id=%s", user.id)
            return _open_session(db, user)
        if code not in open_backup_codes(user.backup_codes):
            logger.info("second factor rejected user_id=%s", user.id)
            return Rejected(INVALID_CODE)

        outcome = _issue_session(user)
        if not consume_backup_code(db, user.id, code):
            logger.warning("backup code already consumed user_id=%s", user.id)
            return Rejected(INVALID_CODE)
    except TwoFactorCryptoError as exc:
        logger.exception("two-factor payload unreadable user_id=%s", user.id)
        raise _server_fault() from exc

    logger.info("second factor accepted via backup code user_id=%s", user.id)
    return _activate_session(db, user, outcome)


def session_token_from_request(request: Request) -> str | None:
    """按 Cookie、Bearer 的顺序读取会话令牌。"""
    cookie_token = request.cookies.get(get_settings().auth_session_cookie)
    if cookie_token:
        return cookie_token
    return extract_bearer_token(request.headers.get("Authorization"))


def current_session(request: Request) -> SessionPrincipal | None:
    """返回请求携带的有效会话；缺失、过期或已登出时返回 None。"""
    token = session_token_from_request(request)
    if not token:
        return None
    try:
        return parse_session_token(token)
    except HTTPException:
        return None


def set_session_cookie(response: Response, outcome: Authenticated) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.auth_session_cookie,
        value=outcome.token,
        max_age=settings.auth_session_ttl_seconds,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=settings.auth_session_cookie,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )


def logout(request: Request, response: Response) -> bool:
    """吊销当前会话并清除 Cookie，返回是否确有会话被吊销。"""
    principal = current_session(request)
    clear_session_cookie(response)
    if principal is None:
        return False
    revoke_session(principal)
    logger.info("logout user_id=%s", principal.user_id)
    return True
