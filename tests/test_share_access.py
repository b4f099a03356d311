"""Accessibility flags of a share and the reason reported when it is blocked."""
from datetime import timedelta

import pytest

from nutrivault.domain.documents.public_service import (
    MSG_EXPIRED,
    MSG_LIMIT_REACHED,
    MSG_REVOKED,
    evaluate_access,
    inaccessible_reason,
)
from nutrivault.models import DocumentShare, utc_now


def share(**fields):
    defaults = {"is_active": True, "download_count": 0, "expires_at": None, "max_downloads": None}
    defaults.update(fields)
    return DocumentShare(token="a" * 64, **defaults)


PAST = utc_now() - timedelta(days=1)
FUTURE = utc_now() + timedelta(days=1)


@pytest.mark.parametrize(
    "fields",
    [
        {},
        {"expires_at": FUTURE},
        {"max_downloads": 10, "download_count": 5},
        {"expires_at": FUTURE, "max_downloads": 10, "download_count": 9},
    ],
)
def test_accessible_shares(fields):
    assert evaluate_access(share(**fields))["is_accessible"] is True


@pytest.mark.parametrize(
    "fields",
    [
        {},
        {"expires_at": FUTURE},
        {"expires_at": PAST},
        {"max_downloads": 1, "download_count": 1},
        {"expires_at": PAST, "max_downloads": 1, "download_count": 3},
    ],
)
def test_revoked_share_is_never_accessible(fields):
    flags = evaluate_access(share(is_active=False, **fields))

    assert flags["is_active"] is False
    assert flags["is_accessible"] is False


def test_expiry_is_checked_against_now():
    assert share(expires_at=PAST).is_expired() is True
    assert share(expires_at=FUTURE).is_expired() is False
    assert share().is_expired() is False


def test_download_limit():
    assert share(max_downloads=None, download_count=100).has_reached_download_limit() is False
    assert share(max_downloads=10, download_count=9).has_reached_download_limit() is False
    assert share(max_downloads=10, download_count=10).has_reached_download_limit() is True
    assert share(max_downloads=10, download_count=15).has_reached_download_limit() is True


def test_reason_precedence():
    assert inaccessible_reason(evaluate_access(share(is_active=False))) == MSG_REVOKED
    assert inaccessible_reason(evaluate_access(share(is_active=False, expires_at=PAST))) == MSG_EXPIRED
    assert (
        inaccessible_reason(
            evaluate_access(share(is_active=False, expires_at=PAST, max_downloads=1, download_count=1))
        )
        == MSG_LIMIT_REACHED
    )
