from uuid import UUID

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError

from roadpress_admin.models.enums import LicenseStatus
from roadpress_admin.models.license import ApiKey, License
from roadpress_admin.services.plugin_auth import (
    INVALID_LICENSE_KEY,
    INVALID_TOKEN,
    MISSING_CREDENTIAL,
    SERVER_ERROR,
    Invalid,
    LookupFailure,
    Valid,
    find_license_by_key,
    find_license_by_token,
    require_plugin_license,
    validate_plugin_request,
)


class BrokenSession:
    """任意查询都抛出持久层异常。"""

    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is gone"))


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_active_token_is_valid_until_license_is_deactivated(db_session, make_license, request_factory):
    license_id = make_license()
    request = request_factory("/api/api-keys/provide", headers=_bearer("plugin-token-0001"))

    result = validate_plugin_request(db_session, request)
    assert isinstance(result, Valid)
    assert str(result.license.id) == license_id

    db_session.get(License, UUID(license_id)).status = LicenseStatus.INACTIVE
    db_session.commit()

    assert validate_plugin_request(db_session, request) == Invalid(INVALID_TOKEN, 403)


def test_missing_credentials_is_unauthorized(db_session, request_factory):
    assert validate_plugin_request(db_session, request_factory()) == Invalid(MISSING_CREDENTIAL, 401)
    blank = request_factory(headers={"Authorization": "Bearer   "}, query={"license_key": "  "})
    assert validate_plugin_request(db_session, blank) == Invalid(MISSING_CREDENTIAL, 401)


def test_license_key_query_is_fallback(db_session, make_license, request_factory):
    make_license("LEGACYKEY0000001", api_token=None)

    result = validate_plugin_request(db_session, request_factory(query={"license_key": "LEGACYKEY0000001"}))
    assert isinstance(result, Valid)
    assert result.license.license_key == "LEGACYKEY0000001"

    unknown = validate_plugin_request(db_session, request_factory(query={"license_key": "UNKNOWN"}))
    assert unknown == Invalid(INVALID_LICENSE_KEY, 403)


def test_bearer_takes_precedence_over_license_key(db_session, make_license, request_factory):
    make_license("ROADPRESSKEY0001", api_token="plugin-token-0001")
    request = request_factory(headers=_bearer("revoked-token"), query={"license_key": "ROADPRESSKEY0001"})
    # 错误的 Bearer 不会回退到有效的 license_key。
    assert validate_plugin_request(db_session, request) == Invalid(INVALID_TOKEN, 403)


def test_non_bearer_authorization_falls_back_to_license_key(db_session, make_license, request_factory):
    make_license("ROADPRESSKEY0001")
    request = request_factory(headers={"Authorization": "Basic Zm9vOmJhcg=="}, query={"license_key": "ROADPRESSKEY0001"})
    assert isinstance(validate_plugin_request(db_session, request), Valid)


def test_lookup_failure_reasons(db_session, make_license):
    make_license("SUSPENDEDKEY0001", api_token="suspended-token", status=LicenseStatus.SUSPENDED)

    assert find_license_by_token(db_session, "nope").failure is LookupFailure.NOT_FOUND
    assert find_license_by_token(db_session, "suspended-token").failure is LookupFailure.INACTIVE
    assert find_license_by_key(db_session, "SUSPENDEDKEY0001").failure is LookupFailure.INACTIVE
    assert not find_license_by_key(db_session, "SUSPENDEDKEY0001").ok


def test_persistence_failure_is_server_error(request_factory):
    result = validate_plugin_request(BrokenSession(), request_factory(headers=_bearer("plugin-token-0001")))
    assert result == Invalid(SERVER_ERROR, 500)


def test_require_plugin_license_raises_with_result_status(db_session, request_factory):
    with pytest.raises(HTTPException) as exc:
        require_plugin_license(request_factory(), db_session)
    assert exc.value.status_code == 401
    assert exc.value.detail == MISSING_CREDENTIAL


def test_provide_endpoint_status_codes(api_client, make_license, session_factory):
    make_license()
    make_license("INACTIVEKEY00001", api_token="inactive-token", status=LicenseStatus.INACTIVE)
    with session_factory() as db:
        db.add_all([ApiKey(service="openai", key="sk-live"), ApiKey(service="deepl", key="dl-off", is_active=False)])
        db.commit()

    ok = api_client.get("/api/api-keys/provide", headers=_bearer("plugin-token-0001"))
    assert ok.status_code == 200
    assert ok.json()["data"]["openai_api_key"] == "sk-live"
    assert ok.json()["data"]["deepl_api_key"] == ""

    by_key = api_client.get("/api/api-keys/provide", params={"license_key": "ROADPRESSKEY0001"})
    assert by_key.status_code == 200

    forbidden = api_client.get("/api/api-keys/provide", headers=_bearer("inactive-token"))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["message"] == INVALID_TOKEN

    assert api_client.get("/api/api-keys/provide").status_code == 401


def test_plugin_endpoints_ignore_session_cookie(api_client, make_user, login_as):
    login_as(make_user())
    response = api_client.get("/api/api-keys/provide")
    assert response.status_code == 401
