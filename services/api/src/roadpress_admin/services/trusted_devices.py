"""记住设备。

完成第二因子时可选择记住当前浏览器：服务端保存随机令牌并写入长期 Cookie，
有效期内同一账号口令校验通过后直接签发会话，不再要求 TOTP。
令牌只对签发时的账号有效，过期记录在下次出示时删除。
"""

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import Request, Response
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.logging import get_logger
from roadpress_admin.models.trusted_device import TrustedDevice
from roadpress_admin.services.debug_log import client_ip
from roadpress_admin.services.licenses import as_utc

logger = get_logger(__name__)

_BROWSER_PATTERN = re.compile(r"(Chrome|Firefox|Safari|Edge|Opera)/[\d.]+")
_OS_PATTERN = re.compile(r"(Windows|Mac OS|Linux|Android|iOS)")


@dataclass(frozen=True)
class DeviceInfo:
    device_name: str | None
    ip_address: str | None
    user_agent: str | None


def extract_device_info(request: Request) -> DeviceInfo:
    """从请求头推断设备名称，浏览器与系统都识别出来时才命名。"""
    user_agent = request.headers.get("user-agent") or None
    device_name = None
    if user_agent:
        browser = _BROWSER_PATTERN.search(user_agent)
        system = _OS_PATTERN.search(user_agent)
        if browser and system:
            device_name = f"{browser.group(1)} on {system.group(1)}"
    return DeviceInfo(device_name=device_name, ip_address=client_ip(request), user_agent=user_agent)


def remember_device(db: Session, user_id: UUID, info: DeviceInfo, *, now: datetime | None = None) -> str:
    """登记受信设备并返回 Cookie 令牌；由调用方提交事务。"""
    now = now or datetime.now(timezone.utc)
    token = secrets.token_hex(32)
    db.add(
        TrustedDevice(
            user_id=user_id,
            device_token=token,
            device_name=info.device_name,
            ip_address=info.ip_address,
            user_agent=info.user_agent,
            last_used_at=now,
            expires_at=now + timedelta(days=get_settings().trusted_device_ttl_days),
        )
    )
    logger.info("trusted device registered user_id=%s", user_id)
    return token


def trusted_device_owner(db: Session, token: str | None, *, now: datetime | None = None) -> UUID | None:
    """返回受信令牌所属用户；未知或已过期时返回 None（过期记录随即删除）。"""
    if not token:
        return None
    device = db.execute(select(TrustedDevice).where(TrustedDevice.device_token == token)).scalar_one_or_none()
    if device is None:
        return None
    now = now or datetime.now(timezone.utc)
    if as_utc(device.expires_at) <= now:
        db.delete(device)
        db.commit()
        logger.info("trusted device expired user_id=%s", device.user_id)
        return None
    device.last_used_at = now
    db.commit()
    return device.user_id


def list_trusted_devices(db: Session, user_id: UUID, *, now: datetime | None = None) -> list[TrustedDevice]:
    """列出未过期的受信设备，最近使用的在前。"""
    now = now or datetime.now(timezone.utc)
    rows = db.execute(select(TrustedDevice).where(TrustedDevice.user_id == user_id)).scalars().all()
    active = [row for row in rows if as_utc(row.expires_at) > now]
    return sorted(active, key=lambda row: as_utc(row.last_used_at or row.created_at), reverse=True)


def forget_device(db: Session, device_id: UUID, user_id: UUID) -> bool:
    """删除属于该用户的受信设备，返回是否删除。"""
    result = db.execute(
        delete(TrustedDevice)
        .where(TrustedDevice.id == device_id, TrustedDevice.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def forget_user_devices(db: Session, user_id: UUID) -> int:
    """删除用户全部受信设备；由调用方提交事务。"""
    result = db.execute(
        delete(TrustedDevice).where(TrustedDevice.user_id == user_id).execution_options(synchronize_session=False)
    )
    return result.rowcount


def set_trusted_device_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.trusted_device_cookie,
        value=token,
        max_age=settings.trusted_device_ttl_days * 86400,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )
