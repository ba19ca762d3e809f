"""页面入口占位。

界面渲染由前端负责，这里只提供登录、2FA 挑战与后台首页的跳转语义，
供准入中间件的重定向与前端路由判断使用。
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from roadpress_admin.core.security import SessionPrincipal
from roadpress_admin.dependencies import get_current_session
from roadpress_admin.services.pending_auth import PendingAuthLedger, get_pending_auth_ledger
from roadpress_admin.services.session_auth import current_session
from roadpress_admin.utils.response import success

router = APIRouter(tags=["pages"], include_in_schema=False)

DASHBOARD_PATH = "/"


@router.get("/login")
def login_page(request: Request):
    """已登录时跳转后台首页。"""
    if current_session(request) is not None:
        return RedirectResponse(url=DASHBOARD_PATH, status_code=status.HTTP_303_SEE_OTHER)
    return success(request, {"page": "login"})


@router.get("/login/2fa")
def two_factor_page(request: Request, ledger: PendingAuthLedger = Depends(get_pending_auth_ledger)):
    """交接缺失、已过期或未经口令校验时回到登录页重新输入口令。"""
    claims = ledger.decode(request.cookies.get(ledger.cookie_name))
    if claims is None or claims.get("pwd") is not True:
        return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    return success(request, {"page": "two_factor", "userId": str(claims["sub"])})


@router.get("/")
def dashboard(request: Request, principal: SessionPrincipal = Depends(get_current_session)):
    return success(request, {"page": "dashboard", "email": principal.email, "role": principal.role})
