"""待完成 2FA 的登录交接凭据。

口令校验通过但尚未完成第二因子时，把用户 ID 写入单槽位 Cookie：
1. 载荷为会话密钥签名的 JWT，客户端无法伪造或篡改。
2. Cookie 自带 Max-Age，同时服务端按自身时钟校验 exp，重放过期 Cookie 同样无效。
3. 新的登录尝试直接覆盖旧交接，不需要服务端清理任务。
"""

import time
from collections.abc import Callable
from typing import Any

import jwt
from fastapi import HTTPException, Request, Response, status
from jwt import InvalidTokenError

from roadpress_admin.core.config import Settings, get_settings
from roadpress_admin.core.logging import get_logger

logger = get_logger(__name__)

PENDING_TOKEN_TYPE = "pending_2fa"


def _handoff_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no pending two-factor login")


class PendingAuthLedger:
    """基于 Cookie 的单槽位交接账本。"""

    def __init__(self, settings: Settings | None = None, clock: Callable[[], float] = time.time):
        self._settings = settings or get_settings()
        self._clock = clock

    @property
    def cookie_name(self) -> str:
        return self._settings.pending_2fa_cookie

    @property
    def ttl_seconds(self) -> int:
        return self._settings.pending_2fa_ttl_seconds

    def issue(self, user_id: str, *, password_verified: bool = False) -> str:
        """签发交接令牌原文。"""
        now = int(self._clock())
        claims: dict[str, Any] = {
            "sub": str(user_id),
            "typ": PENDING_TOKEN_TYPE,
            "pwd": password_verified,
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(claims, self._settings.auth_session_secret, algorithm=self._settings.auth_jwt_algorithm)

    def create(self, response: Response, user_id: str, *, password_verified: bool = False) -> str:
        """写入交接 Cookie，覆盖该客户端已有的交接。"""
        token = self.issue(user_id, password_verified=password_verified)
        response.set_cookie(
            key=self.cookie_name,
            value=token,
            max_age=self.ttl_seconds,
            path="/",
            secure=self._settings.is_production,
            httponly=True,
            samesite="lax",
        )
        return token

    def decode(self, token: str | None) -> dict[str, Any] | None:
        """校验签名、类型与过期时间，无效时返回 None。"""
        if not token:
            return None
        try:
            # 过期时间按账本时钟判断，便于与 Cookie 生命周期保持一致。
            claims = jwt.decode(
                token,
                key=self._settings.auth_session_secret,
                algorithms=[self._settings.auth_jwt_algorithm],
                options={"verify_exp": False, "require": ["sub", "exp", "iat"]},
            )
        except InvalidTokenError:
            logger.info("rejected pending two-factor token: bad signature or payload")
            return None
        if claims.get("typ") != PENDING_TOKEN_TYPE:
            return None
        exp = claims.get("exp")
        if not isinstance(exp, int) or self._clock() >= exp:
            return None
        if not str(claims.get("sub") or "").strip():
            return None
        return claims

    def read(self, request: Request, *, require_password: bool = False) -> str:
        """读取交接中的用户 ID；不存在或已过期时抛出 404。

        `require_password=True` 时只接受登录接口在口令校验后签发的交接。
        """
        claims = self.decode(request.cookies.get(self.cookie_name))
        if claims is None:
            raise _handoff_not_found()
        if require_password and claims.get("pwd") is not True:
            raise _handoff_not_found()
        return str(claims["sub"])

    def destroy(self, response: Response) -> None:
        """清除交接 Cookie；幂等。"""
        response.delete_cookie(
            key=self.cookie_name,
            path="/",
            secure=self._settings.is_production,
            httponly=True,
            samesite="lax",
        )


def get_pending_auth_ledger() -> PendingAuthLedger:
    """依赖注入入口，测试中可覆盖以注入时钟。"""
    return PendingAuthLedger()
