"""口令哈希与校验。"""

import bcrypt

from roadpress_admin.core.config import get_settings

# 未知账号时参与比对的固定哈希，使其耗时与口令错误一致。
_DUMMY_HASH = bcrypt.hashpw(b"roadpress-dummy-password", bcrypt.gensalt(rounds=10))


def hash_password(password: str) -> str:
    """使用 bcrypt 生成带盐口令哈希。"""
    settings = get_settings()
    salt = bcrypt.gensalt(rounds=settings.password_bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def verify_password(password: str, password_hash: str | None) -> bool:
    """校验口令是否匹配；哈希缺失或格式错误时按不匹配处理。"""
    try:
        candidate = password_hash.encode("ascii") if password_hash else _DUMMY_HASH
        matched = bcrypt.checkpw(password.encode("utf-8"), candidate)
    except (ValueError, UnicodeEncodeError):
        return False
    return matched and bool(password_hash)
