"""首个管理员引导接口。"""

import hmac

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.logging import get_logger
from roadpress_admin.db.session import get_db
from roadpress_admin.models.enums import LogCategory, LogStatus, UserRole
from roadpress_admin.models.user import User
from roadpress_admin.schemas.auth import BootstrapAdminData, BootstrapAdminRequest
from roadpress_admin.schemas.common import ErrorResponse, SuccessResponse
from roadpress_admin.services.debug_log import record_debug_log
from roadpress_admin.services.passwords import hash_password
from roadpress_admin.services.session_auth import normalize_email
from roadpress_admin.utils.response import success

router = APIRouter(prefix="/admin", tags=["admin"])
logger = get_logger(__name__)


def _forbidden() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.post(
    "/bootstrap",
    summary="创建首个管理员",
    description="需提供与服务端配置一致的引导口令；未配置口令或已存在管理员时接口不可用。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[BootstrapAdminData],
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def bootstrap_admin(payload: BootstrapAdminRequest, request: Request, db: Session = Depends(get_db)):
    """一次性创建管理员账号。"""
    expected = get_settings().admin_bootstrap_secret
    if not expected or not hmac.compare_digest(payload.secret.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("admin bootstrap rejected: bad secret")
        record_debug_log(
            db, request, category=LogCategory.SECURITY, action="ADMIN_BOOTSTRAP", status=LogStatus.WARNING,
            message="bootstrap secret rejected",
        )
        db.commit()
        raise _forbidden()

    existing_admin = db.execute(select(User.id).where(User.role == UserRole.ADMIN).limit(1)).first()
    if existing_admin is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="admin already exists")

    email = normalize_email(payload.email)
    if db.execute(select(User.id).where(User.email == email)).first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="email already registered")

    user = User(
        email=email,
        name=payload.name or "Administrateur",
        password_hash=hash_password(payload.password),
        role=UserRole.ADMIN,
    )
    db.add(user)
    db.flush()
    record_debug_log(
        db, request, category=LogCategory.SECURITY, action="ADMIN_BOOTSTRAP",
        message="admin account created", request_data={"email": email},
    )
    db.commit()
    logger.info("admin account bootstrapped user_id=%s", user.id)
    return success(request, {"user_id": str(user.id), "email": user.email})
