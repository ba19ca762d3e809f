import jwt
import pytest
from fastapi import HTTPException, Response

from roadpress_admin.core.config import get_settings
from roadpress_admin.services.pending_auth import PendingAuthLedger

COOKIE = "pending_2fa_user"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _set_cookie_header(response: Response) -> str:
    headers = [value for name, value in response.raw_headers if name == b"set-cookie"]
    assert len(headers) == 1
    return headers[0].decode("latin-1")


def test_create_sets_single_slot_cookie_with_expected_attributes():
    ledger = PendingAuthLedger(clock=FakeClock())
    response = Response()
    token = ledger.create(response, "u1")

    header = _set_cookie_header(response)
    assert header.startswith(f"{COOKIE}={token};")
    assert "HttpOnly" in header
    assert "Max-Age=300" in header
    assert "Path=/" in header
    assert "SameSite=lax" in header
    assert "Secure" not in header


def test_cookie_is_secure_in_production(monkeypatch):
    monkeypatch.setenv("RP_APP_ENV", "production")
    get_settings.cache_clear()
    response = Response()
    PendingAuthLedger(clock=FakeClock()).create(response, "u1")
    assert "Secure" in _set_cookie_header(response)


def test_read_returns_user_id(request_factory):
    ledger = PendingAuthLedger(clock=FakeClock())
    token = ledger.issue("u1")
    assert ledger.read(request_factory(cookies={COOKIE: token})) == "u1"


def test_read_without_cookie_is_not_found(request_factory):
    with pytest.raises(HTTPException) as exc:
        PendingAuthLedger().read(request_factory())
    assert exc.value.status_code == 404


def test_handoff_expires_after_ttl(request_factory):
    clock = FakeClock()
    ledger = PendingAuthLedger(clock=clock)
    request = request_factory(cookies={COOKIE: ledger.issue("u1")})

    clock.now += 299
    assert ledger.read(request) == "u1"

    clock.now += 2
    with pytest.raises(HTTPException) as exc:
        ledger.read(request)
    assert exc.value.status_code == 404


def test_forged_handoff_is_rejected(request_factory):
    settings = get_settings()
    clock = FakeClock()
    forged = jwt.encode(
        {"sub": "victim", "typ": "pending_2fa", "pwd": True, "iat": int(clock.now), "exp": int(clock.now) + 300},
        "attacker-secret",
        algorithm=settings.auth_jwt_algorithm,
    )
    ledger = PendingAuthLedger(clock=clock)
    for value in (forged, "u1", ""):
        with pytest.raises(HTTPException):
            ledger.read(request_factory(cookies={COOKIE: value}))


def test_session_token_is_not_accepted_as_handoff(request_factory):
    settings = get_settings()
    clock = FakeClock()
    session_like = jwt.encode(
        {"sub": "u1", "typ": "session", "iat": int(clock.now), "exp": int(clock.now) + 300},
        settings.auth_session_secret,
        algorithm=settings.auth_jwt_algorithm,
    )
    with pytest.raises(HTTPException):
        PendingAuthLedger(clock=clock).read(request_factory(cookies={COOKIE: session_like}))


def test_require_password_only_accepts_login_issued_handoff(request_factory):
    ledger = PendingAuthLedger(clock=FakeClock())
    plain = request_factory(cookies={COOKIE: ledger.issue("u1")})
    verified = request_factory(cookies={COOKIE: ledger.issue("u1", password_verified=True)})

    assert ledger.read(plain) == "u1"
    with pytest.raises(HTTPException):
        ledger.read(plain, require_password=True)
    assert ledger.read(verified, require_password=True) == "u1"


def test_destroy_is_idempotent():
    ledger = PendingAuthLedger()
    response = Response()
    ledger.destroy(response)
    ledger.destroy(response)
    headers = [value.decode("latin-1") for name, value in response.raw_headers if name == b"set-cookie"]
    assert headers
    assert all(header.startswith(f'{COOKIE}="";') and "Max-Age=0" in header for header in headers)
