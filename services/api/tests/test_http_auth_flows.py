import pyotp

from roadpress_admin.core.config import get_settings

PENDING_COOKIE = "pending_2fa_user"
SESSION_COOKIE = "rp_session"
DEVICE_COOKIE = "trusted_device_token"


def _login(api_client, email: str, password: str):
    return api_client.post("/api/auth/login", json={"email": email, "password": password})


def test_pending_handoff_create_read_delete(api_client):
    created = api_client.post("/api/auth/2fa/pending", json={"userId": "u1"})
    assert created.status_code == 200
    assert created.json()["data"] == {"success": True}
    assert PENDING_COOKIE in created.headers["set-cookie"]

    read = api_client.get("/api/auth/2fa/pending")
    assert read.status_code == 200
    assert read.json()["data"] == {"userId": "u1"}

    deleted = api_client.delete("/api/auth/2fa/pending")
    assert deleted.status_code == 200

    missing = api_client.get("/api/auth/2fa/pending")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"


def test_pending_handoff_requires_user_id(api_client):
    response = api_client.post("/api/auth/2fa/pending", json={})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "userId is required"


def test_pending_handoff_is_single_slot(api_client):
    api_client.post("/api/auth/2fa/pending", json={"userId": "u1"})
    api_client.post("/api/auth/2fa/pending", json={"userId": "u2"})
    assert api_client.get("/api/auth/2fa/pending").json()["data"] == {"userId": "u2"}


def test_delete_pending_without_handoff_succeeds(api_client):
    assert api_client.delete("/api/auth/2fa/pending").status_code == 200


def test_login_without_two_factor_sets_session_cookie(api_client, make_user):
    user = make_user()
    response = _login(api_client, user.email, user.password)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "authenticated"
    assert data["user_id"] == user.id
    assert data["token_type"] == "bearer"
    assert api_client.cookies.get(SESSION_COOKIE) == data["access_token"]

    me = api_client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["data"]["email"] == user.email
    assert me.json()["data"]["two_factor_enabled"] is False


def test_two_factor_login_keeps_handoff_until_correct_code(api_client, make_user):
    user = make_user(two_factor=True)

    first = _login(api_client, user.email, user.password)
    assert first.status_code == 200
    assert first.json()["data"] == {
        "status": "two_factor_required",
        "user_id": user.id,
        "access_token": None,
        "token_type": None,
        "expires_at": None,
    }
    assert api_client.cookies.get(SESSION_COOKIE) is None
    assert api_client.get("/api/auth/2fa/pending").json()["data"] == {"userId": user.id}
    assert api_client.get("/api/licenses").status_code == 401

    page = api_client.get("/login/2fa", follow_redirects=False)
    assert page.status_code == 200
    assert page.json()["data"]["userId"] == user.id

    wrong = str((int(user.totp_now()) + 500000) % 1000000).zfill(6)
    rejected = api_client.post("/api/auth/2fa/verify", json={"code": wrong})
    assert rejected.status_code == 401
    assert rejected.json()["error"]["message"] == "invalid code"
    assert api_client.get("/api/auth/2fa/pending").status_code == 200

    accepted = api_client.post("/api/auth/2fa/verify", json={"code": user.totp_now()})
    assert accepted.status_code == 200
    assert accepted.json()["data"]["status"] == "authenticated"
    assert api_client.cookies.get(SESSION_COOKIE)
    assert api_client.get("/api/auth/2fa/pending").status_code == 404
    assert api_client.get("/api/licenses").status_code == 200


def test_two_factor_login_with_backup_code(api_client, make_user):
    user = make_user(two_factor=True)
    _login(api_client, user.email, user.password)

    response = api_client.post("/api/auth/2fa/verify", json={"code": user.backup_codes[0]})
    assert response.status_code == 200

    status = api_client.get("/api/auth/2fa/status")
    assert status.json()["data"] == {"enabled": True, "backupCodesRemaining": 9}

    api_client.post("/api/auth/logout")
    _login(api_client, user.email, user.password)
    reused = api_client.post("/api/auth/2fa/verify", json={"code": user.backup_codes[0]})
    assert reused.status_code == 401


def test_verify_without_code_or_handoff(api_client, make_user):
    assert api_client.post("/api/auth/2fa/verify", json={}).status_code == 400
    assert api_client.post("/api/auth/2fa/verify", json={"code": "123456"}).status_code == 404


def test_handoff_written_directly_cannot_complete_login(api_client, make_user):
    user = make_user(two_factor=True)
    api_client.post("/api/auth/2fa/pending", json={"userId": user.id})

    response = api_client.post("/api/auth/2fa/verify", json={"code": user.totp_now()})
    assert response.status_code == 404
    assert api_client.cookies.get(SESSION_COOKIE) is None


def test_login_failures_are_indistinguishable(api_client, make_user):
    user = make_user()

    wrong_password = _login(api_client, user.email, "not-the-password")
    unknown_email = _login(api_client, "nobody@roadpress.fr", user.password)

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json()["error"] == unknown_email.json()["error"]
    assert wrong_password.json()["error"]["message"] == "邮箱或密码错误。"
    assert PENDING_COOKIE not in wrong_password.headers.get("set-cookie", "")


def test_login_payload_validation(api_client):
    response = api_client.post("/api/auth/login", json={"email": "a@b.fr"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_logout_invalidates_session_token(api_client, make_user, login_as):
    data = login_as(make_user())
    token = data["access_token"]

    response = api_client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json()["data"] == {"logged_out": True, "revoked": True}

    assert api_client.get("/api/auth/me").status_code == 401
    reused = api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert reused.status_code == 401


def test_logout_without_session_succeeds(api_client):
    response = api_client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json()["data"] == {"logged_out": True, "revoked": False}


def test_new_login_replaces_previous_session(api_client, make_user, login_as):
    user = make_user()
    first = login_as(user)["access_token"]
    second = login_as(user)["access_token"]

    assert api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {second}"}).status_code == 200
    api_client.cookies.clear()
    assert api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {first}"}).status_code == 401


def test_two_factor_enrollment_lifecycle(api_client, make_user, login_as):
    user = make_user()
    login_as(user)

    assert api_client.get("/api/auth/2fa/status").json()["data"] == {"enabled": False, "backupCodesRemaining": 0}

    setup = api_client.post("/api/auth/2fa/setup")
    assert setup.status_code == 200
    setup_data = setup.json()["data"]
    totp = pyotp.TOTP(setup_data["secret"])
    assert setup_data["otpauth_url"].startswith("otpauth://totp/")
    assert len(setup_data["backup_codes"]) == 10
    assert api_client.get("/api/auth/2fa/status").json()["data"]["enabled"] is False

    wrong = str((int(totp.now()) + 500000) % 1000000).zfill(6)
    assert api_client.post("/api/auth/2fa/enable", json={"code": wrong}).status_code == 400
    assert api_client.post("/api/auth/2fa/enable", json={"code": totp.now()}).status_code == 200
    assert api_client.get("/api/auth/2fa/status").json()["data"] == {"enabled": True, "backupCodesRemaining": 10}
    assert api_client.post("/api/auth/2fa/setup").status_code == 409

    regenerated = api_client.post("/api/auth/2fa/backup-codes", json={"code": totp.now()})
    assert regenerated.status_code == 200
    new_codes = regenerated.json()["data"]["backup_codes"]
    assert len(new_codes) == 10
    assert not set(new_codes) & set(setup_data["backup_codes"])

    denied = api_client.post("/api/auth/2fa/disable", json={"password": "wrong-password", "code": totp.now()})
    assert denied.status_code == 400
    disabled = api_client.post("/api/auth/2fa/disable", json={"password": user.password, "code": totp.now()})
    assert disabled.status_code == 200
    assert api_client.get("/api/auth/2fa/status").json()["data"] == {"enabled": False, "backupCodesRemaining": 0}


def test_two_factor_management_requires_session(api_client):
    assert api_client.get("/api/auth/2fa/status").status_code == 401
    assert api_client.post("/api/auth/2fa/setup").status_code == 401


def test_bootstrap_admin_guards(api_client, monkeypatch):
    body = {"secret": "bootstrap-secret", "email": "Owner@RoadPress.fr", "password": "Sup3rSecret!"}
    assert api_client.post("/api/admin/bootstrap", json=body).status_code == 403

    monkeypatch.setenv("RP_ADMIN_BOOTSTRAP_SECRET", "bootstrap-secret")
    get_settings.cache_clear()

    wrong = api_client.post("/api/admin/bootstrap", json={**body, "secret": "guess"})
    assert wrong.status_code == 403

    created = api_client.post("/api/admin/bootstrap", json=body)
    assert created.status_code == 200
    assert created.json()["data"]["email"] == "owner@roadpress.fr"

    again = api_client.post("/api/admin/bootstrap", json={**body, "email": "second@roadpress.fr"})
    assert again.status_code == 409

    login = _login(api_client, "owner@roadpress.fr", "Sup3rSecret!")
    assert login.json()["data"]["status"] == "authenticated"


def test_remembered_device_skips_second_factor_on_next_login(api_client, make_user):
    user = make_user(two_factor=True)
    _login(api_client, user.email, user.password)

    verified = api_client.post("/api/auth/2fa/verify", json={"code": user.totp_now(), "rememberDevice": True})
    assert verified.status_code == 200
    assert api_client.cookies.get(DEVICE_COOKIE)

    api_client.post("/api/auth/logout")
    again = _login(api_client, user.email, user.password)
    assert again.json()["data"]["status"] == "authenticated"
    assert api_client.get("/api/auth/2fa/pending").status_code == 404

    devices = api_client.get("/api/auth/2fa/devices")
    assert devices.status_code == 200
    assert len(devices.json()["data"]) == 1
    assert "device_token" not in devices.json()["data"][0]


def test_verify_without_remember_sets_no_device_cookie(api_client, make_user):
    user = make_user(two_factor=True)
    _login(api_client, user.email, user.password)

    api_client.post("/api/auth/2fa/verify", json={"code": user.totp_now()})
    assert api_client.cookies.get(DEVICE_COOKIE) is None


def test_forgotten_device_requires_second_factor_again(api_client, make_user):
    user = make_user(two_factor=True)
    _login(api_client, user.email, user.password)
    api_client.post("/api/auth/2fa/verify", json={"code": user.totp_now(), "rememberDevice": True})

    device_id = api_client.get("/api/auth/2fa/devices").json()["data"][0]["id"]
    assert api_client.delete(f"/api/auth/2fa/devices/{device_id}").status_code == 200
    assert api_client.delete(f"/api/auth/2fa/devices/{device_id}").status_code == 404

    api_client.post("/api/auth/logout")
    assert _login(api_client, user.email, user.password).json()["data"]["status"] == "two_factor_required"


def test_disabling_two_factor_forgets_devices(api_client, make_user):
    user = make_user(two_factor=True)
    _login(api_client, user.email, user.password)
    api_client.post("/api/auth/2fa/verify", json={"code": user.totp_now(), "rememberDevice": True})

    disabled = api_client.post("/api/auth/2fa/disable", json={"password": user.password, "code": user.totp_now()})
    assert disabled.status_code == 200
    assert api_client.get("/api/auth/2fa/devices").json()["data"] == []
