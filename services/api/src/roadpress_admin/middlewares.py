"""应用中间件注册。"""

from time import perf_counter
import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.logging import get_logger
from roadpress_admin.services.admission import Admission, build_admission_rules, classify_path
from roadpress_admin.services.session_auth import current_session
from roadpress_admin.utils.response import error_payload

logger = get_logger(__name__)

LOGIN_PATH = "/login"


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，并通过响应头返回。"""
    request.state.request_id = str(uuid.uuid4())
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request.state.request_id
    elapsed = perf_counter() - request.state.request_started_at
    response.headers["X-Process-Time-Ms"] = str(round(elapsed * 1000, 2))
    return response


def _is_api_path(path: str, api_prefix: str) -> bool:
    return path == api_prefix or path.startswith(f"{api_prefix}/")


def build_admission_middleware(api_prefix: str):
    """生成准入中间件：公开路径直接放行，其余路径必须携带有效会话。"""
    rules = build_admission_rules(api_prefix)

    async def admission_middleware(request: Request, call_next):
        path = request.url.path
        request.state.session = None
        admission = classify_path(path, rules)
        if admission is not Admission.PROTECTED:
            return await call_next(request)

        # 令牌解析与 Redis 查询均为同步调用，放入线程池执行。
        session = await run_in_threadpool(current_session, request)
        if session is None:
            logger.info("admission denied path=%s", path)
            if _is_api_path(path, api_prefix):
                return JSONResponse(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    content=error_payload(
                        request,
                        code="UNAUTHORIZED",
                        message="未登录或登录状态已失效。",
                        details={"status_code": status.HTTP_401_UNAUTHORIZED, "reason": "unauthorized"},
                    ),
                )
            return RedirectResponse(url=LOGIN_PATH, status_code=status.HTTP_303_SEE_OTHER)

        request.state.session = session
        return await call_next(request)

    return admission_middleware


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件（后注册者在外层，请求 ID 需最先注入）。"""
    app.middleware("http")(build_admission_middleware(get_settings().api_prefix))
    app.middleware("http")(request_id_middleware)
