from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from starlette.requests import Request

from roadpress_admin.core.config import get_settings
from roadpress_admin.core.security import reset_local_session_state
from roadpress_admin.db.base import Base
from roadpress_admin.db.session import get_db
from roadpress_admin.main import app
from roadpress_admin.models.enums import LicenseStatus, UserRole
from roadpress_admin.models.license import License
from roadpress_admin.models.user import User
from roadpress_admin.services.passwords import hash_password
from roadpress_admin.services.two_factor import encrypt, generate_backup_codes, seal_backup_codes

TEST_PASSWORD = "CorrectHorse9!"


@dataclass
class SeededUser:
    """测试账号及其明文凭据。"""

    id: str
    email: str
    password: str
    role: str
    totp_secret: str | None = None
    backup_codes: list[str] = field(default_factory=list)

    def totp_now(self) -> str:
        assert self.totp_secret is not None
        return pyotp.TOTP(self.totp_secret).now()


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RP_AUTH_SESSION_SECRET", "unit-test-session-secret-at-least-32-bytes")
    monkeypatch.setenv("RP_ENCRYPTION_KEY", "unit-test-encryption-key")
    monkeypatch.setenv("RP_PASSWORD_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("RP_APP_ENV", "dev")
    monkeypatch.delenv("RP_REDIS_URL", raising=False)
    monkeypatch.delenv("RP_ADMIN_BOOTSTRAP_SECRET", raising=False)
    get_settings.cache_clear()
    reset_local_session_state()
    yield
    reset_local_session_state()
    get_settings.cache_clear()


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    sqlite_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=sqlite_engine)
    yield sessionmaker(bind=sqlite_engine, autoflush=False, autocommit=False, class_=Session)
    Base.metadata.drop_all(bind=sqlite_engine)
    sqlite_engine.dispose()


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def api_client(session_factory: sessionmaker) -> Generator[TestClient, None, None]:
    app.dependency_overrides.clear()

    def override_get_db() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory: sessionmaker) -> Callable[..., SeededUser]:
    """写入一个已提交的账号，可选直接启用 2FA。"""

    def _make(
        email: str = "admin@roadpress.fr",
        *,
        password: str = TEST_PASSWORD,
        role: str = UserRole.ADMIN,
        two_factor: bool = False,
    ) -> SeededUser:
        secret = pyotp.random_base32() if two_factor else None
        codes = generate_backup_codes() if two_factor else None
        with session_factory() as db:
            user = User(
                email=email,
                name="Test",
                password_hash=hash_password(password),
                role=role,
                two_factor_enabled=two_factor,
                two_factor_secret=encrypt(secret) if secret else None,
                backup_codes=seal_backup_codes(codes) if codes else None,
                backup_codes_version=1 if two_factor else 0,
            )
            db.add(user)
            db.commit()
            user_id = str(user.id)
        return SeededUser(
            id=user_id,
            email=email,
            password=password,
            role=role,
            totp_secret=secret,
            backup_codes=list(codes) if codes else [],
        )

    return _make


@pytest.fixture
def make_license(session_factory: sessionmaker) -> Callable[..., str]:
    """写入许可证并返回其 ID。"""

    def _make(
        license_key: str = "ROADPRESSKEY0001",
        *,
        api_token: str | None = "plugin-token-0001",
        status: str = LicenseStatus.ACTIVE,
        starts_in_days: int = -30,
        ends_in_days: int = 335,
        client_name: str = "Office de Tourisme",
    ) -> str:
        now = datetime.now(timezone.utc)
        with session_factory() as db:
            license_row = License(
                license_key=license_key,
                api_token=api_token,
                client_name=client_name,
                status=status,
                start_date=now + timedelta(days=starts_in_days),
                end_date=now + timedelta(days=ends_in_days),
            )
            db.add(license_row)
            db.commit()
            return str(license_row.id)

    return _make


@pytest.fixture
def request_factory() -> Callable[..., Request]:
    """构造不经过服务器的请求对象，供纯服务层测试使用。"""

    def _build(
        path: str = "/",
        *,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
        query: dict[str, str] | None = None,
    ) -> Request:
        raw_headers = [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in (headers or {}).items()]
        if cookies:
            cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
            raw_headers.append((b"cookie", cookie_header.encode("latin-1")))
        scope = {
            "type": "http",
            "http_version": "1.1",
            "method": method,
            "scheme": "http",
            "path": path,
            "raw_path": path.encode("latin-1"),
            "query_string": urlencode(query or {}).encode("latin-1"),
            "headers": raw_headers,
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        return Request(scope)

    return _build


@pytest.fixture
def login_as(api_client: TestClient) -> Callable[[SeededUser], dict]:
    """完成口令（及 2FA）登录，返回最终登录数据；会话 Cookie 留在客户端上。"""

    def _login(user: SeededUser) -> dict:
        response = api_client.post("/api/auth/login", json={"email": user.email, "password": user.password})
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        if data["status"] == "two_factor_required":
            response = api_client.post("/api/auth/2fa/verify", json={"code": user.totp_now()})
            assert response.status_code == 200, response.text
            data = response.json()["data"]
        assert data["status"] == "authenticated"
        return data

    return _login
