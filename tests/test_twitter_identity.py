from unittest.mock import MagicMock, patch

import httpx
import pytest
from starlette.requests import Request

from giverep.auth import twitter_identity
from giverep.auth.token import create_access_token
from giverep.auth.twitter_identity import verify_twitter_identity
from giverep.models.twitter_token import TwitterToken


@pytest.fixture(autouse=True)
def clear_identity_cache():
    twitter_identity._verified_usernames.clear()
    yield
    twitter_identity._verified_usernames.clear()


@pytest.fixture
def session_request(db):
    db.add(TwitterToken(twitter_id="42", twitter_handle="alice", access_token="user-access-token"))
    db.commit()
    token = create_access_token({"sub": "42", "handle": "alice"})
    return Request({"type": "http", "headers": [(b"authorization", f"Bearer {token}".encode())]})


def _users_me(status_code=200, username="Alice"):
    res = MagicMock()
    res.status_code = status_code
    res.json.return_value = {"data": {"id": "42", "username": username}}
    return res


def test_verified_handle_is_cached(db, session_request):
    with patch("giverep.auth.twitter_identity.httpx.get", return_value=_users_me()) as get:
        first = verify_twitter_identity(session_request, db, "@alice")
        second = verify_twitter_identity(session_request, db, "ALICE")

    assert first.success and second.success
    assert first.twitter_handle == "Alice"
    assert get.call_count == 1
    assert get.call_args.kwargs["headers"] == {"Authorization": "Bearer user-access-token"}


def test_handle_mismatch(db, session_request):
    with patch("giverep.auth.twitter_identity.httpx.get", return_value=_users_me(username="mallory")):
        result = verify_twitter_identity(session_request, db, "alice")
    assert result.success is False
    assert result.error == "You can only perform actions for your own Twitter account"


@pytest.mark.parametrize(
    "status_code, message",
    [
        (401, "Twitter session expired. Please log in again."),
        (429, "Twitter API rate limit exceeded. Please try again later."),
        (500, "Failed to verify Twitter identity"),
    ],
)
def test_twitter_api_failures(db, session_request, status_code, message):
    with patch("giverep.auth.twitter_identity.httpx.get", return_value=_users_me(status_code=status_code)):
        result = verify_twitter_identity(session_request, db, "alice")
    assert result.success is False
    assert result.error == message


def test_transport_failure(db, session_request):
    with patch("giverep.auth.twitter_identity.httpx.get", side_effect=httpx.ConnectError("down")):
        result = verify_twitter_identity(session_request, db, "alice")
    assert result.error == "Failed to verify Twitter identity"


def test_missing_session(db):
    anonymous = Request({"type": "http", "headers": []})
    assert verify_twitter_identity(anonymous, db, "alice").error == (
        "Twitter authentication required. Please login with Twitter first."
    )
    assert verify_twitter_identity(anonymous, db, "").error == "Twitter username is required for verification"


def test_auth_me(client, db):
    db.add(TwitterToken(twitter_id="42", twitter_handle="alice", access_token="tok"))
    db.commit()
    token = create_access_token({"sub": "42", "handle": "alice"})

    assert client.get("/auth/me").status_code == 401
    res = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    assert res.json()["twitter_handle"] == "alice"
