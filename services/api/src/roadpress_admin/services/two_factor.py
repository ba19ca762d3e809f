"""双因子认证：TOTP、备用码与静态加密。

关键点:
1. TOTP 密钥与备用码集合均以 AES-GCM 密文落库，解密失败视为服务端配置错误。
2. 备用码集合整体作为一个密文块保存，使用 `backup_codes_version` 做比较并交换，
   保证同一备用码在并发提交下只有一次能成功。
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
import secrets
from dataclasses import dataclass
from uuid import UUID

import pyotp
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.logging import get_logger
from roadpress_admin.models.user import User
from roadpress_admin.services.passwords import verify_password

logger = get_logger(__name__)

_NONCE_BYTES = 12
TOTP_DIGITS = 6
BACKUP_CODE_LENGTH = 8


class TwoFactorCryptoError(RuntimeError):
    """密文无法解密或内容损坏（服务端故障，不是认证失败）。"""


def _aead() -> AESGCM:
    key = hashlib.sha256(get_settings().encryption_key.encode("utf-8")).digest()
    return AESGCM(key)


def encrypt(plaintext: str) -> str:
    """AES-GCM 加密，输出 base64url(nonce || ciphertext)。"""
    nonce = os.urandom(_NONCE_BYTES)
    sealed = _aead().encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.urlsafe_b64encode(nonce + sealed).decode("ascii")


def decrypt(ciphertext: str) -> str:
    """解密 `encrypt` 的输出。"""
    try:
        raw = base64.urlsafe_b64decode(ciphertext.encode("ascii"))
        if len(raw) <= _NONCE_BYTES:
            raise ValueError("ciphertext too short")
        plain = _aead().decrypt(raw[:_NONCE_BYTES], raw[_NONCE_BYTES:], None)
        return plain.decode("utf-8")
    except (InvalidTag, ValueError, binascii.Error, UnicodeError) as exc:
        raise TwoFactorCryptoError("unable to decrypt two-factor payload") from exc


def generate_secret() -> str:
    """生成 base32 TOTP 共享密钥。"""
    return pyotp.random_base32(length=32)


def provisioning_uri(secret: str, email: str) -> str:
    """生成供认证器应用扫码的 otpauth URI。"""
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=get_settings().totp_issuer)


def verify_code(secret: str, code: str) -> bool:
    """校验 6 位 TOTP，允许前后各一个时间窗口的时钟偏差。"""
    candidate = code.strip().replace(" ", "")
    if len(candidate) != TOTP_DIGITS or not candidate.isdigit():
        return False
    return pyotp.TOTP(secret).verify(candidate, valid_window=get_settings().totp_valid_window)


def normalize_backup_code(code: str) -> str:
    return code.strip().replace("-", "").replace(" ", "").upper()


@dataclass(frozen=True)
class BackupCodeSet:
    """有序、一次性的备用码集合。"""

    codes: tuple[str, ...] = ()

    @classmethod
    def generate(cls, count: int) -> BackupCodeSet:
        return cls(tuple(secrets.token_hex(BACKUP_CODE_LENGTH // 2).upper() for _ in range(count)))

    @classmethod
    def from_json(cls, raw: str) -> BackupCodeSet:
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TwoFactorCryptoError("backup code payload is not valid JSON") from exc
        if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
            raise TwoFactorCryptoError("backup code payload must be a list of strings")
        return cls(tuple(normalize_backup_code(item) for item in items))

    def to_json(self) -> str:
        return json.dumps(list(self.codes))

    def without(self, code: str) -> BackupCodeSet:
        """返回移除指定备用码后的新集合。"""
        target = normalize_backup_code(code)
        return BackupCodeSet(tuple(item for item in self.codes if item != target))

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalize_backup_code(code) in self.codes

    def __len__(self) -> int:
        return len(self.codes)

    def __iter__(self):
        return iter(self.codes)


def generate_backup_codes(count: int | None = None) -> BackupCodeSet:
    """生成一组 8 位十六进制备用码（默认 10 个）。"""
    return BackupCodeSet.generate(count if count is not None else get_settings().backup_code_count)


def seal_backup_codes(codes: BackupCodeSet) -> str:
    return encrypt(codes.to_json())


def open_backup_codes(blob: str | None) -> BackupCodeSet:
    if not blob:
        return BackupCodeSet()
    return BackupCodeSet.from_json(decrypt(blob))


def remaining_backup_codes(user: User) -> int:
    """统计剩余可用备用码数量。"""
    return len(open_backup_codes(user.backup_codes))


def verify_user_totp(user: User, code: str) -> bool:
    """使用用户已加密保存的密钥校验 TOTP。"""
    if not user.two_factor_secret:
        return False
    return verify_code(decrypt(user.two_factor_secret), code)


@dataclass(frozen=True)
class BackupCodeSnapshot:
    """某一时刻读取到的备用码密文与版本号。"""

    blob: str | None
    version: int


def load_backup_snapshot(db: Session, user_id: UUID) -> BackupCodeSnapshot | None:
    row = db.execute(
        select(User.backup_codes, User.backup_codes_version).where(User.id == user_id)
    ).one_or_none()
    if row is None:
        return None
    return BackupCodeSnapshot(blob=row[0], version=row[1])


def swap_backup_codes(db: Session, user_id: UUID, *, expected_version: int, blob: str | None) -> bool:
    """仅当版本号未变化时写入新密文，返回是否写入成功。"""
    result = db.execute(
        update(User)
        .where(User.id == user_id)
        .where(User.backup_codes_version == expected_version)
        .values(backup_codes=blob, backup_codes_version=User.backup_codes_version + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def consume_backup_code(db: Session, user_id: UUID, code: str, *, max_attempts: int = 3) -> bool:
    """校验并作废一个备用码。

    读取快照 -> 检查是否包含 -> 比较并交换写回；交换失败说明集合被并发修改，
    重新读取后再判断，因此同一个备用码并发提交时只有一次返回 True。
    """
    for _ in range(max_attempts):
        snapshot = load_backup_snapshot(db, user_id)
        if snapshot is None:
            return False
        codes = open_backup_codes(snapshot.blob)
        if code not in codes:
            return False
        remaining = codes.without(code)
        if swap_backup_codes(db, user_id, expected_version=snapshot.version, blob=seal_backup_codes(remaining)):
            logger.info("backup code consumed user_id=%s remaining=%s", user_id, len(remaining))
            return True
        logger.info("backup code set changed concurrently, retrying user_id=%s", user_id)
    return False


def _conflict(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message)


def begin_enrollment(db: Session, user: User) -> tuple[str, str, BackupCodeSet]:
    """生成新密钥与备用码并加密保存，2FA 保持未启用直到首次校验成功。"""
    if user.two_factor_enabled:
        raise _conflict("two-factor already enabled")
    secret = generate_secret()
    codes = generate_backup_codes()
    user.two_factor_secret = encrypt(secret)
    user.backup_codes = seal_backup_codes(codes)
    user.backup_codes_version = (user.backup_codes_version or 0) + 1
    db.commit()
    return secret, provisioning_uri(secret, user.email), codes


def confirm_enrollment(db: Session, user: User, code: str) -> bool:
    """首次 TOTP 校验通过后启用 2FA。"""
    if user.two_factor_enabled:
        raise _conflict("two-factor already enabled")
    if not user.two_factor_secret:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="two-factor setup not started")
    if not verify_user_totp(user, code):
        return False
    user.two_factor_enabled = True
    db.commit()
    return True


def disable_two_factor(db: Session, user: User, *, password: str, code: str | None) -> bool:
    """校验口令与当前 TOTP（或备用码）后关闭 2FA 并清除密钥。"""
    if not verify_password(password, user.password_hash):
        return False
    if user.two_factor_enabled:
        if not code:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="two-factor code required")
        if not (verify_user_totp(user, code) or code in open_backup_codes(user.backup_codes)):
            return False
    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.backup_codes = None
    user.backup_codes_version = (user.backup_codes_version or 0) + 1
    db.commit()
    return True


def regenerate_backup_codes(db: Session, user: User, code: str) -> BackupCodeSet | None:
    """校验 TOTP 后整体替换备用码集合；校验失败返回 None。"""
    if not user.two_factor_enabled:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="two-factor not enabled")
    if not verify_user_totp(user, code):
        return None
    codes = generate_backup_codes()
    if not swap_backup_codes(db, user.id, expected_version=user.backup_codes_version, blob=seal_backup_codes(codes)):
        raise _conflict("backup codes changed concurrently")
    return codes
