"""许可证密钥生成与有效期判定。"""

import secrets
import string
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from roadpress_admin.models.enums import LicenseStatus
from roadpress_admin.models.license import License

LICENSE_KEY_LENGTH = 16
_LICENSE_KEY_ALPHABET = string.ascii_uppercase + string.digits


def as_utc(value: datetime) -> datetime:
    """补齐时区（SQLite 读回的时间不带时区，按 UTC 处理）。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_license_key() -> str:
    return "".join(secrets.choice(_LICENSE_KEY_ALPHABET) for _ in range(LICENSE_KEY_LENGTH))


def generate_api_token() -> str:
    return secrets.token_urlsafe(32)


def unique_license_key(db: Session, *, attempts: int = 10) -> str:
    """生成库内唯一的许可证密钥。"""
    for _ in range(attempts):
        candidate = generate_license_key()
        if db.execute(select(License.id).where(License.license_key == candidate)).first() is None:
            return candidate
    raise RuntimeError("unable to generate a unique license key")


def initial_status(start_date: datetime, end_date: datetime, requested: str | None, now: datetime) -> str:
    """创建时的初始状态：有效期内为 ACTIVE，已过期为 EXPIRED，否则取请求值或 INACTIVE。"""
    start, end = as_utc(start_date), as_utc(end_date)
    if end < now:
        return LicenseStatus.EXPIRED
    if start <= now:
        return LicenseStatus.ACTIVE
    return requested or LicenseStatus.INACTIVE


def is_currently_valid(license_row: License, now: datetime) -> bool:
    """状态为 ACTIVE 且当前时间处于有效期内。"""
    return (
        license_row.status == LicenseStatus.ACTIVE
        and as_utc(license_row.start_date) <= now <= as_utc(license_row.end_date)
    )


def mark_expired_if_due(license_row: License, now: datetime) -> bool:
    """超过结束日期的许可证回写为 EXPIRED，返回是否发生变更。"""
    if as_utc(license_row.end_date) < now and license_row.status != LicenseStatus.EXPIRED:
        license_row.status = LicenseStatus.EXPIRED
        return True
    return False
