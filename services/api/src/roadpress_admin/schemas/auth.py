"""登录、2FA 与管理员引导请求结构。"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from roadpress_admin.schemas.common import BaseSchema

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class LoginRequest(BaseModel):
    """邮箱口令登录请求。"""

    email: str = Field(min_length=3, max_length=256, description="登录邮箱。", examples=["admin@roadpress.fr"])
    # bcrypt 仅使用前 72 字节。
    password: str = Field(min_length=1, max_length=72, description="登录密码。")


class TwoFactorCodeRequest(BaseModel):
    """6 位 TOTP 或 8 位备用码。"""

    # 缺失时由接口返回 400。
    code: str | None = Field(default=None, max_length=16, description="认证器验证码或备用码。", examples=["123456"])


class TwoFactorVerifyRequest(TwoFactorCodeRequest):
    """登录第二步，可选记住当前设备。"""

    rememberDevice: bool = Field(default=False, description="是否记住当前设备，有效期内登录跳过第二因子。")


class PendingHandoffRequest(BaseModel):
    """写入待完成 2FA 交接。"""

    userId: str | None = Field(default=None, max_length=64, description="待完成第二因子的用户 ID。")


class TwoFactorDisableRequest(BaseModel):
    """关闭 2FA 请求。"""

    password: str = Field(min_length=1, max_length=72, description="当前登录密码。")
    code: str | None = Field(default=None, min_length=6, max_length=16, description="TOTP 或备用码。")


class BootstrapAdminRequest(BaseModel):
    """首个管理员创建请求。"""

    secret: str = Field(min_length=1, max_length=256, description="引导口令。")
    email: str = Field(min_length=5, max_length=256, pattern=EMAIL_PATTERN, description="管理员邮箱。")
    password: str = Field(min_length=8, max_length=72, description="管理员密码。")
    name: str | None = Field(default=None, max_length=128, description="展示名。")


class LoginData(BaseSchema):
    """登录结果：`authenticated` 或 `two_factor_required`。"""

    status: str = Field(description="登录阶段。")
    user_id: str | None = Field(default=None, description="用户 ID。")
    access_token: str | None = Field(default=None, description="会话令牌（同时写入 Cookie）。")
    token_type: str | None = Field(default=None, description="令牌类型。")
    expires_at: datetime | None = Field(default=None, description="会话过期时间（UTC）。")


class SessionData(BaseSchema):
    """当前会话主体。"""

    user_id: str = Field(description="用户 ID。")
    email: str = Field(description="登录邮箱。")
    role: str = Field(description="角色。")
    name: str | None = Field(default=None, description="展示名。")
    two_factor_enabled: bool = Field(default=False, description="是否已启用 2FA。")


class PendingHandoffData(BaseSchema):
    userId: str = Field(description="待完成第二因子的用户 ID。")


class TwoFactorStatusData(BaseSchema):
    enabled: bool = Field(description="是否已启用 2FA。")
    backupCodesRemaining: int = Field(description="剩余备用码数量。")


class TwoFactorSetupData(BaseSchema):
    """2FA 登记结果，密钥与备用码仅在此时明文返回一次。"""

    secret: str = Field(description="base32 共享密钥。")
    otpauth_url: str = Field(description="供认证器扫码的 otpauth URI。")
    backup_codes: list[str] = Field(description="一次性备用码。")


class BackupCodesData(BaseSchema):
    backup_codes: list[str] = Field(description="新的一次性备用码。")


class LogoutData(BaseSchema):
    logged_out: bool = Field(description="是否已完成登出。")
    revoked: bool = Field(description="是否确有会话被吊销。")


class BootstrapAdminData(BaseSchema):
    user_id: str = Field(description="管理员用户 ID。")
    email: str = Field(description="管理员邮箱。")


class TrustedDeviceData(BaseSchema):
    """受信设备摘要，不含 Cookie 令牌。"""

    id: UUID = Field(description="设备 ID。")
    device_name: str | None = Field(default=None, description="设备名称。")
    ip_address: str | None = Field(default=None, description="登记时的客户端 IP。")
    last_used_at: datetime | None = Field(default=None, description="最近使用时间。")
    expires_at: datetime = Field(description="过期时间。")
    created_at: datetime = Field(description="登记时间。")
