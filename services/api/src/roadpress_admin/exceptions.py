"""异常到统一错误结构的映射。"""

from typing import NamedTuple

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from roadpress_admin.core.logging import get_logger
from roadpress_admin.services.two_factor import TwoFactorCryptoError
from roadpress_admin.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = get_logger(__name__)


class StatusText(NamedTuple):
    code: str
    message: str
    suggestion: str


_RETRY_LATER = "请稍后重试，若持续失败请联系管理员并提供 request_id。"

STATUS_TEXTS: dict[int, StatusText] = {
    status.HTTP_400_BAD_REQUEST: StatusText("BAD_REQUEST", "请求参数不合法。", "请检查必填字段后重试。"),
    status.HTTP_401_UNAUTHORIZED: StatusText(
        "UNAUTHORIZED",
        "未登录或登录状态已失效。",
        "请重新登录，或在插件请求中携带有效的 API 令牌 / 许可证密钥。",
    ),
    status.HTTP_403_FORBIDDEN: StatusText(
        "FORBIDDEN", "无权限访问该资源。", "请确认许可证状态为 ACTIVE 且凭据未被轮换。"
    ),
    status.HTTP_404_NOT_FOUND: StatusText("NOT_FOUND", "请求资源不存在。", "请确认资源 ID 是否正确。"),
    status.HTTP_409_CONFLICT: StatusText("CONFLICT", "请求与当前数据状态冲突。", "请刷新后重试。"),
    status.HTTP_422_UNPROCESSABLE_CONTENT: StatusText(
        "VALIDATION_ERROR", "请求参数校验失败。", "请根据错误字段提示修正请求参数。"
    ),
}

# 与客户端约定的固定文案；未知邮箱与口令错误共用同一句。
_MESSAGE_OVERRIDES = {
    "forbidden": STATUS_TEXTS[status.HTTP_403_FORBIDDEN].message,
    "unauthorized": STATUS_TEXTS[status.HTTP_401_UNAUTHORIZED].message,
    "invalid credentials": "邮箱或密码错误。",
}


def status_text(status_code: int) -> StatusText:
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return StatusText("INTERNAL_ERROR", DEFAULT_ERROR_MESSAGE, _RETRY_LATER)
    return STATUS_TEXTS.get(status_code, StatusText("HTTP_ERROR", "请求处理失败。", _RETRY_LATER))


def _describe(detail: object, status_code: int) -> tuple[str, str, dict[str, object]]:
    """把 HTTPException.detail（字符串或 {code,message,details} 字典）展开为错误三元组。"""
    text = status_text(status_code)
    details: dict[str, object] = {
        "status_code": status_code,
        "reason": text.code.lower(),
        "suggestion": text.suggestion,
    }

    if isinstance(detail, str):
        return text.code, _MESSAGE_OVERRIDES.get(detail.strip().lower(), detail), details

    if isinstance(detail, dict):
        extra = dict(detail)
        code = str(extra.pop("code", None) or text.code)
        message = str(extra.pop("message", None) or extra.pop("detail", None) or text.message)
        nested = extra.pop("details", None)
        if isinstance(nested, dict):
            details.update(nested)
        elif nested is not None:
            details["details"] = nested
        details.update(extra)
        return code, message, details

    if detail is not None:
        details["detail"] = detail
    return text.code, text.message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    code, message, details = _describe(exc.detail, exc.status_code)
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("http error path=%s status=%s code=%s", request.url.path, exc.status_code, code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    text = status_text(status.HTTP_422_UNPROCESSABLE_CONTENT)
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_payload(
            request,
            code=text.code,
            message=text.message,
            details={
                "status_code": status.HTTP_422_UNPROCESSABLE_CONTENT,
                "reason": "validation_error",
                "suggestion": text.suggestion,
                "errors": errors,
            },
        ),
    )


def _server_error(request: Request, reason: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            request,
            code="INTERNAL_ERROR",
            message=DEFAULT_ERROR_MESSAGE,
            details={"status_code": status.HTTP_500_INTERNAL_SERVER_ERROR, "reason": reason, "suggestion": _RETRY_LATER},
        ),
    )


async def crypto_exception_handler(request: Request, exc: TwoFactorCryptoError):
    """2FA 密文无法解密：密钥配置错误或数据损坏，不向客户端透露细节。"""
    logger.exception("two-factor payload unreadable path=%s", request.url.path, exc_info=exc)
    return _server_error(request, "crypto_failure")


async def unexpected_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled exception path=%s method=%s", request.url.path, request.method, exc_info=exc)
    return _server_error(request, "unexpected_exception")


def register_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(TwoFactorCryptoError)(crypto_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
