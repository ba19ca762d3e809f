"""请求上下文依赖。

职责:
1. 读取准入中间件挂载的会话主体（未挂载时自行解析 Cookie / Bearer）。
2. 将会话主体映射为本地 User。
3. 提供管理员角色校验。
"""

from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from roadpress_admin.core.security import SessionPrincipal
from roadpress_admin.db.session import get_db
from roadpress_admin.models.user import User
from roadpress_admin.services.session_auth import current_session


def _unauthorized() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


def get_current_session(request: Request) -> SessionPrincipal:
    """返回当前会话主体，缺失时 401。"""
    principal = getattr(request.state, "session", None) or current_session(request)
    if principal is None:
        raise _unauthorized()
    return principal


def get_current_user(
    principal: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> User:
    """会话对应的本地用户；账号已被删除时按未登录处理。"""
    try:
        user_id = UUID(principal.user_id)
    except ValueError as exc:
        raise _unauthorized() from exc
    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized()
    return user


def require_admin(principal: SessionPrincipal = Depends(get_current_session)) -> SessionPrincipal:
    """仅管理员可访问。"""
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return principal
