"""会话令牌与会话登记。

会话令牌是带 `typ=session` 的 JWT。令牌本身之外还有两份运行时状态:
- 登记表: 每个用户只保留最近一次登录的 jti，新登录顶掉旧会话。
- 黑名单: 登出的 jti 保留到令牌自然过期。

配置了 `RP_REDIS_URL` 时状态存放在 Redis，多进程共享；未配置或 Redis 故障时
退回进程内字典。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import re
from threading import Lock
from typing import Any
from uuid import uuid4

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError
from redis import Redis
from redis.exceptions import RedisError

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.logging import get_logger

logger = get_logger(__name__)

UNAUTHORIZED = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

SESSION_TOKEN_TYPE = "session"

_BEARER_PATTERN = re.compile(r"Bearer\s+([^,\s]+)", flags=re.IGNORECASE)


@dataclass(frozen=True)
class SessionPrincipal:
    """已通过全部认证因子的会话主体。"""

    user_id: str
    email: str
    role: str
    jti: str
    exp: int

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())


class LocalSessionStore:
    """进程内会话状态，条目按过期时间惰性清理。"""

    def __init__(self) -> None:
        self._lock = Lock()
        # user_id -> (jti, exp)
        self.by_user: dict[str, tuple[str, int]] = {}
        # jti -> exp
        self.revoked: dict[str, int] = {}

    def _purge(self, now_ts: int) -> None:
        for user_id in [key for key, (_, exp) in self.by_user.items() if exp <= now_ts]:
            del self.by_user[user_id]
        for jti in [key for key, exp in self.revoked.items() if exp <= now_ts]:
            del self.revoked[jti]

    def bind(self, user_id: str, jti: str, exp_ts: int) -> None:
        with self._lock:
            self._purge(_now_ts())
            self.by_user[user_id] = (jti, exp_ts)

    def unbind(self, user_id: str, jti: str) -> None:
        with self._lock:
            current = self.by_user.get(user_id)
            if current and current[0] == jti:
                del self.by_user[user_id]

    def current_jti(self, user_id: str) -> str | None:
        with self._lock:
            self._purge(_now_ts())
            current = self.by_user.get(user_id)
            return current[0] if current else None

    def revoke(self, jti: str, exp_ts: int) -> None:
        with self._lock:
            self._purge(_now_ts())
            self.revoked[jti] = exp_ts

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            self._purge(_now_ts())
            return jti in self.revoked

    def clear(self) -> None:
        with self._lock:
            self.by_user.clear()
            self.revoked.clear()


class RedisSessionStore:
    """Redis 会话状态，键随令牌过期自动失效。"""

    def __init__(self, client: Redis, *, session_prefix: str, blacklist_prefix: str) -> None:
        self.client = client
        self.session_prefix = session_prefix
        self.blacklist_prefix = blacklist_prefix

    def _user_key(self, user_id: str) -> str:
        return f"{self.session_prefix}user:{user_id}"

    def bind(self, user_id: str, jti: str, exp_ts: int) -> None:
        self.client.setex(self._user_key(user_id), max(1, exp_ts - _now_ts()), jti)

    def unbind(self, user_id: str, jti: str) -> None:
        key = self._user_key(user_id)
        if self.client.get(key) == jti:
            self.client.delete(key)

    def current_jti(self, user_id: str) -> str | None:
        return self.client.get(self._user_key(user_id))

    def revoke(self, jti: str, exp_ts: int) -> None:
        self.client.setex(f"{self.blacklist_prefix}{jti}", max(1, exp_ts - _now_ts()), "1")

    def is_revoked(self, jti: str) -> bool:
        return bool(self.client.exists(f"{self.blacklist_prefix}{jti}"))


_local_store = LocalSessionStore()
_redis_store: RedisSessionStore | None = None


def _remote_store() -> RedisSessionStore | None:
    global _redis_store
    settings = get_settings()
    if not settings.redis_url:
        return None
    if _redis_store is None:
        _redis_store = RedisSessionStore(
            Redis.from_url(settings.redis_url, decode_responses=True),
            session_prefix=settings.auth_token_session_prefix,
            blacklist_prefix=settings.auth_token_blacklist_prefix,
        )
    return _redis_store


def _with_store(operation: str, call):
    """优先在 Redis 上执行，Redis 未配置或故障时在本地状态上执行。"""
    remote = _remote_store()
    if remote is not None:
        try:
            return call(remote)
        except RedisError:
            logger.warning("redis unavailable during %s, using local session store", operation)
    return call(_local_store)


def session_store_backend() -> str:
    return "redis" if get_settings().redis_url else "local"


def reset_local_session_state() -> None:
    """清空进程内会话状态并丢弃 Redis 客户端（测试与进程重置使用）。"""
    global _redis_store
    _local_store.clear()
    _redis_store = None


def activate_user_session(*, user_id: str, jti: str, exp_ts: int) -> None:
    """登记用户当前会话，覆盖该用户此前的会话。"""
    _with_store("activate", lambda store: store.bind(user_id, jti, exp_ts))


def clear_user_session(*, user_id: str, jti: str) -> None:
    """仅当登记的仍是该 jti 时移除登记。"""
    _with_store("clear", lambda store: store.unbind(user_id, jti))


def active_session_jti(user_id: str) -> str | None:
    return _with_store("lookup", lambda store: store.current_jti(user_id))


def is_user_session_active(*, user_id: str, jti: str) -> bool:
    return active_session_jti(user_id) == jti


def revoke_token_jti(jti: str, exp_ts: int) -> None:
    _with_store("revoke", lambda store: store.revoke(jti, exp_ts))


def is_token_jti_revoked(jti: str) -> bool:
    return bool(_with_store("revocation check", lambda store: store.is_revoked(jti)))


def revoke_session(principal: SessionPrincipal) -> None:
    """登出：拉黑 jti 并移除会话登记。"""
    revoke_token_jti(principal.jti, principal.exp)
    clear_user_session(user_id=principal.user_id, jti=principal.jti)


def issue_session_token(*, user_id: str, email: str, role: str) -> tuple[str, SessionPrincipal]:
    """签发会话令牌，返回令牌原文与对应主体。调用方负责登记。"""
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    principal = SessionPrincipal(
        user_id=user_id,
        email=email,
        role=role,
        jti=str(uuid4()),
        exp=int((issued_at + timedelta(seconds=settings.auth_session_ttl_seconds)).timestamp()),
    )
    claims: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "role": role,
        "typ": SESSION_TOKEN_TYPE,
        "iss": settings.auth_session_issuer,
        "iat": int(issued_at.timestamp()),
        "exp": principal.exp,
        "jti": principal.jti,
    }
    return jwt.encode(claims, settings.auth_session_secret, algorithm=settings.auth_jwt_algorithm), principal


def _decode_session_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            key=settings.auth_session_secret,
            algorithms=[settings.auth_jwt_algorithm],
            issuer=settings.auth_session_issuer,
            options={"require": ["sub", "exp", "jti"]},
        )
    except InvalidTokenError as exc:
        raise UNAUTHORIZED from exc
    if claims.get("typ") != SESSION_TOKEN_TYPE:
        raise UNAUTHORIZED
    return claims


def extract_bearer_token(authorization: str | None) -> str | None:
    """取 Authorization 头中最后一个 Bearer 令牌（重复头会被逗号拼接）。"""
    if not authorization:
        return None
    tokens = _BEARER_PATTERN.findall(authorization)
    return tokens[-1] if tokens else None


def parse_session_token(token: str) -> SessionPrincipal:
    """校验签名、过期、黑名单与会话登记，返回会话主体。"""
    claims = _decode_session_token(token)
    jti = str(claims["jti"])
    user_id = str(claims.get("sub") or "").strip()
    if not user_id or is_token_jti_revoked(jti) or not is_user_session_active(user_id=user_id, jti=jti):
        raise UNAUTHORIZED

    email = claims.get("email")
    role = claims.get("role")
    return SessionPrincipal(
        user_id=user_id,
        email=email if isinstance(email, str) else "",
        role=role if isinstance(role, str) else "",
        jti=jti,
        exp=int(claims["exp"]),
    )
