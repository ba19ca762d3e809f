from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import select

from roadpress_admin.core.security import active_session_jti
from roadpress_admin.models.trusted_device import TrustedDevice
from roadpress_admin.services.session_auth import Authenticated, NeedsSecondFactor, Rejected, login
from roadpress_admin.services.trusted_devices import (
    DeviceInfo,
    extract_device_info,
    forget_device,
    list_trusted_devices,
    remember_device,
    trusted_device_owner,
)

CHROME_ON_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"


def _remember(db, user_id: str, *, now: datetime | None = None) -> str:
    token = remember_device(db, UUID(user_id), DeviceInfo(device_name=None, ip_address=None, user_agent=None), now=now)
    db.commit()
    return token


def test_trusted_device_skips_second_factor(db_session, make_user):
    user = make_user(two_factor=True)
    token = _remember(db_session, user.id)

    outcome = login(db_session, user.email, user.password, device_token=token)

    assert isinstance(outcome, Authenticated)
    assert active_session_jti(user.id) == outcome.session.jti


def test_trusted_device_does_not_replace_password(db_session, make_user):
    user = make_user(two_factor=True)
    token = _remember(db_session, user.id)

    assert login(db_session, user.email, "not-the-password", device_token=token) == Rejected("invalid credentials")


def test_expired_device_is_removed_and_requires_second_factor(db_session, make_user):
    user = make_user(two_factor=True)
    token = _remember(db_session, user.id, now=datetime.now(timezone.utc) - timedelta(days=31))

    outcome = login(db_session, user.email, user.password, device_token=token)

    assert outcome == NeedsSecondFactor(user_id=user.id)
    assert db_session.execute(select(TrustedDevice)).scalars().all() == []


def test_device_of_another_user_is_not_trusted(db_session, make_user):
    owner = make_user("owner@roadpress.fr", two_factor=True)
    other = make_user("other@roadpress.fr", two_factor=True)
    token = _remember(db_session, owner.id)

    outcome = login(db_session, other.email, other.password, device_token=token)

    assert outcome == NeedsSecondFactor(user_id=other.id)
    assert trusted_device_owner(db_session, token) == UUID(owner.id)


def test_unknown_device_token_requires_second_factor(db_session, make_user):
    user = make_user(two_factor=True)
    assert login(db_session, user.email, user.password, device_token="f" * 64) == NeedsSecondFactor(user_id=user.id)


def test_list_and_forget_devices(db_session, make_user):
    user = make_user(two_factor=True)
    other = make_user("other@roadpress.fr")
    user_id = UUID(user.id)
    _remember(db_session, user.id, now=datetime.now(timezone.utc) - timedelta(days=40))
    _remember(db_session, user.id)

    devices = list_trusted_devices(db_session, user_id)
    assert len(devices) == 1

    assert not forget_device(db_session, devices[0].id, UUID(other.id))
    assert forget_device(db_session, devices[0].id, user_id)
    assert list_trusted_devices(db_session, user_id) == []


def test_extract_device_info_names_browser_and_system(request_factory):
    request = request_factory(headers={"User-Agent": CHROME_ON_WINDOWS, "X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

    info = extract_device_info(request)

    assert info.device_name == "Chrome on Windows"
    assert info.ip_address == "203.0.113.7"
    assert extract_device_info(request_factory(headers={"User-Agent": "curl/8.5.0"})).device_name is None
