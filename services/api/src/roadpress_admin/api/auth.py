"""登录与双因子认证接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.security import SessionPrincipal
from roadpress_admin.db.session import get_db
from roadpress_admin.dependencies import get_current_session, get_current_user
from roadpress_admin.models.enums import LogCategory, LogStatus
from roadpress_admin.models.user import User
from roadpress_admin.schemas.auth import (
    BackupCodesData,
    LoginData,
    LoginRequest,
    LogoutData,
    PendingHandoffData,
    PendingHandoffRequest,
    SessionData,
    TwoFactorCodeRequest,
    TwoFactorDisableRequest,
    TwoFactorSetupData,
    TwoFactorStatusData,
    TrustedDeviceData,
    TwoFactorVerifyRequest,
)
from roadpress_admin.schemas.common import ErrorResponse, OperationResult, SuccessResponse
from roadpress_admin.services import two_factor, trusted_devices
from roadpress_admin.services.debug_log import record_debug_log
from roadpress_admin.services.pending_auth import PendingAuthLedger, get_pending_auth_ledger
from roadpress_admin.services.session_auth import (
    Authenticated,
    NeedsSecondFactor,
    Rejected,
    complete_two_factor,
    login,
    logout,
    normalize_email,
    set_session_cookie,
)
from roadpress_admin.utils.response import success

router = APIRouter(prefix="/auth", tags=["auth"])


def _invalid_credentials() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid credentials")


def _invalid_code() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid code")


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def _user_key(principal: SessionPrincipal) -> UUID:
    try:
        return UUID(principal.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized") from exc


def _authenticated_data(outcome: Authenticated) -> dict:
    return {
        "status": "authenticated",
        "user_id": outcome.session.user_id,
        "access_token": outcome.token,
        "token_type": "bearer",
        "expires_at": outcome.expires_at,
    }


@router.post(
    "/login",
    summary="邮箱口令登录",
    description="口令正确且未启用 2FA 时直接签发会话；已启用 2FA 时写入待验证交接 Cookie。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LoginData],
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def login_route(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    ledger: PendingAuthLedger = Depends(get_pending_auth_ledger),
):
    """邮箱口令登录。"""
    device_token = request.cookies.get(get_settings().trusted_device_cookie)
    outcome = login(db, payload.email, payload.password, device_token=device_token)
    log_data = {"email": normalize_email(payload.email)}

    if isinstance(outcome, Rejected):
        record_debug_log(
            db, request, category=LogCategory.AUTH, action="LOGIN", status=LogStatus.WARNING,
            message="login rejected", request_data=log_data,
        )
        db.commit()
        raise _invalid_credentials()

    if isinstance(outcome, NeedsSecondFactor):
        ledger.create(response, outcome.user_id, password_verified=True)
        record_debug_log(
            db, request, category=LogCategory.AUTH, action="LOGIN", status=LogStatus.INFO,
            message="second factor required", request_data=log_data,
        )
        db.commit()
        return success(request, {"status": "two_factor_required", "user_id": outcome.user_id})

    # 直接登录时顺带清理残留交接，保证会话与交接不并存。
    ledger.destroy(response)
    set_session_cookie(response, outcome)
    record_debug_log(db, request, category=LogCategory.AUTH, action="LOGIN", message="login succeeded", request_data=log_data)
    db.commit()
    return success(request, _authenticated_data(outcome))


@router.post(
    "/2fa/verify",
    summary="完成双因子登录",
    description="凭待验证交接 Cookie 提交 TOTP 或备用码；成功时签发会话并销毁交接，失败时交接保留可重试。勾选记住设备时额外写入受信设备 Cookie。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LoginData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def verify_second_factor(
    payload: TwoFactorVerifyRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    ledger: PendingAuthLedger = Depends(get_pending_auth_ledger),
):
    """完成第二因子校验。"""
    code = (payload.code or "").strip()
    if not code:
        raise _bad_request("code is required")
    user_id = ledger.read(request, require_password=True)

    outcome = complete_two_factor(db, user_id, code)
    if not isinstance(outcome, Authenticated):
        record_debug_log(
            db, request, category=LogCategory.AUTH, action="COMPLETE_LOGIN", status=LogStatus.WARNING,
            message="second factor rejected", request_data={"user_id": user_id},
        )
        db.commit()
        raise _invalid_code()

    ledger.destroy(response)
    set_session_cookie(response, outcome)
    if payload.rememberDevice:
        device_token = trusted_devices.remember_device(db, UUID(user_id), trusted_devices.extract_device_info(request))
        trusted_devices.set_trusted_device_cookie(response, device_token)
    record_debug_log(
        db, request, category=LogCategory.AUTH, action="COMPLETE_LOGIN",
        message="second factor accepted", request_data={"user_id": user_id, "remember_device": payload.rememberDevice},
    )
    db.commit()
    return success(request, _authenticated_data(outcome))


@router.post(
    "/logout",
    summary="登出",
    description="吊销当前会话令牌并清除会话 Cookie；没有会话时同样返回成功。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LogoutData],
)
def logout_route(request: Request, response: Response):
    """登出。"""
    revoked = logout(request, response)
    return success(request, {"logged_out": True, "revoked": revoked})


@router.get(
    "/me",
    summary="获取当前身份",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[SessionData],
    responses={401: {"model": ErrorResponse}},
)
def me(
    request: Request,
    principal: SessionPrincipal = Depends(get_current_session),
    user: User = Depends(get_current_user),
):
    """返回当前会话主体。"""
    return success(
        request,
        {
            "user_id": principal.user_id,
            "email": principal.email,
            "role": principal.role,
            "name": user.name,
            "two_factor_enabled": user.two_factor_enabled,
        },
    )


@router.post(
    "/2fa/pending",
    summary="写入待验证交接",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={400: {"model": ErrorResponse}},
)
def create_pending(
    payload: PendingHandoffRequest,
    request: Request,
    response: Response,
    ledger: PendingAuthLedger = Depends(get_pending_auth_ledger),
):
    """覆盖当前客户端的交接槽位。

    此接口写入的交接未经过口令校验，只能被读取，不能用于完成登录。
    """
    user_id = (payload.userId or "").strip()
    if not user_id:
        raise _bad_request("userId is required")
    ledger.create(response, user_id)
    return success(request, {"success": True})


@router.get(
    "/2fa/pending",
    summary="读取待验证交接",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PendingHandoffData],
    responses={404: {"model": ErrorResponse}},
)
def read_pending(request: Request, ledger: PendingAuthLedger = Depends(get_pending_auth_ledger)):
    """读取交接中的用户 ID。"""
    return success(request, {"userId": ledger.read(request)})


@router.delete(
    "/2fa/pending",
    summary="取消待验证交接",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
)
def delete_pending(request: Request, response: Response, ledger: PendingAuthLedger = Depends(get_pending_auth_ledger)):
    """清除交接 Cookie，不存在时同样成功。"""
    ledger.destroy(response)
    return success(request, {"success": True})


@router.get(
    "/2fa/status",
    summary="查询 2FA 状态",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TwoFactorStatusData],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def two_factor_status(
    request: Request,
    principal: SessionPrincipal = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """返回是否启用 2FA 与剩余备用码数量。"""
    user = db.get(User, _user_key(principal))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return success(
        request,
        {
            "enabled": user.two_factor_enabled,
            "backupCodesRemaining": two_factor.remaining_backup_codes(user) if user.two_factor_enabled else 0,
        },
    )


@router.post(
    "/2fa/setup",
    summary="开始登记 2FA",
    description="生成新的 TOTP 密钥与备用码并加密保存；首次校验通过前 2FA 不生效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TwoFactorSetupData],
    responses={401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def setup_two_factor(request: Request, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """开始 2FA 登记。"""
    secret, otpauth_url, codes = two_factor.begin_enrollment(db, user)
    return success(request, {"secret": secret, "otpauth_url": otpauth_url, "backup_codes": list(codes)})


@router.post(
    "/2fa/enable",
    summary="启用 2FA",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def enable_two_factor(
    payload: TwoFactorCodeRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """用首个 TOTP 验证码确认登记。"""
    if not payload.code:
        raise _bad_request("code is required")
    if not two_factor.confirm_enrollment(db, user, payload.code):
        raise _bad_request("invalid code")
    record_debug_log(db, request, category=LogCategory.SECURITY, action="2FA_ENABLE", request_data={"user_id": str(user.id)})
    db.commit()
    return success(request, {"success": True})


@router.post(
    "/2fa/disable",
    summary="关闭 2FA",
    description="需要当前密码，以及 6 位 TOTP 或 8 位备用码。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
def disable_two_factor(
    payload: TwoFactorDisableRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """关闭 2FA 并清除密钥、备用码与受信设备。"""
    if not two_factor.disable_two_factor(db, user, password=payload.password, code=payload.code):
        raise _bad_request("invalid password or code")
    trusted_devices.forget_user_devices(db, user.id)
    record_debug_log(db, request, category=LogCategory.SECURITY, action="2FA_DISABLE", request_data={"user_id": str(user.id)})
    db.commit()
    return success(request, {"success": True})


@router.post(
    "/2fa/backup-codes",
    summary="重新生成备用码",
    description="校验当前 TOTP 后整体替换备用码，旧备用码立即失效。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[BackupCodesData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def regenerate_backup_codes(
    payload: TwoFactorCodeRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """重新生成备用码。"""
    if not payload.code:
        raise _bad_request("code is required")
    codes = two_factor.regenerate_backup_codes(db, user, payload.code)
    if codes is None:
        raise _bad_request("invalid code")
    return success(request, {"backup_codes": list(codes)})


@router.get(
    "/2fa/devices",
    summary="列出受信设备",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[TrustedDeviceData]],
    responses={401: {"model": ErrorResponse}},
)
def list_devices(request: Request, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """返回当前账号未过期的受信设备。"""
    rows = trusted_devices.list_trusted_devices(db, user.id)
    return success(
        request,
        [
            {
                "id": row.id,
                "device_name": row.device_name,
                "ip_address": row.ip_address,
                "last_used_at": row.last_used_at,
                "expires_at": row.expires_at,
                "created_at": row.created_at,
            }
            for row in rows
        ],
    )


@router.delete(
    "/2fa/devices/{device_id}",
    summary="移除受信设备",
    description="移除后该设备下次登录需要重新完成第二因子。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[OperationResult],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def forget_device(
    device_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not trusted_devices.forget_device(db, device_id, user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="device not found")
    return success(request, {"success": True})
