"""Check that the caller's Twitter session belongs to the handle they act for."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request
from sqlalchemy.orm import Session

from giverep.auth.token import read_session_payload
from giverep.core.config import settings
from giverep.core.logging import get_logger
from giverep.models.twitter_token import TwitterToken
from giverep.utils.cache import TTLCache

logger = get_logger(__name__)

VERIFICATION_TTL_SECONDS = 2 * 24 * 60 * 60

_verified_usernames = TTLCache(VERIFICATION_TTL_SECONDS)


class TwitterAuthError(Exception):
    pass


@dataclass
class VerificationResult:
    success: bool
    error: Optional[str] = None
    twitter_handle: Optional[str] = None


def _cache_key(access_token: str) -> str:
    return hashlib.sha256(access_token.encode()).hexdigest()


def fetch_twitter_username(access_token: str) -> str:
    """Resolve the username that owns ``access_token`` via GET /2/users/me."""
    cached = _verified_usernames.get(_cache_key(access_token))
    if cached:
        return cached

    try:
        res = httpx.get(
            f"{settings.TWITTER_API_BASE_URL}/users/me",
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=10.0,
        )
    except httpx.HTTPError as exc:
        logger.warning("Twitter identity request failed: %s", exc)
        raise TwitterAuthError("Failed to verify Twitter identity") from exc

    if res.status_code == 401:
        raise TwitterAuthError("Twitter session expired. Please log in again.")
    if res.status_code == 429:
        raise TwitterAuthError("Twitter API rate limit exceeded. Please try again later.")
    if res.status_code != 200:
        logger.warning("Twitter identity check returned %s", res.status_code)
        raise TwitterAuthError("Failed to verify Twitter identity")

    username = res.json().get("data", {}).get("username")
    if not username:
        raise TwitterAuthError("Failed to verify Twitter identity")

    _verified_usernames.set(_cache_key(access_token), username)
    return username


def verify_twitter_identity(request: Request, db: Session, claimed_handle: Optional[str]) -> VerificationResult:
    if not claimed_handle:
        return VerificationResult(False, "Twitter username is required for verification")

    payload = read_session_payload(request)
    session = None
    if payload and payload.get("sub"):
        session = db.query(TwitterToken).filter(TwitterToken.twitter_id == str(payload["sub"])).first()
    if not session or not session.access_token:
        return VerificationResult(False, "Twitter authentication required. Please login with Twitter first.")

    try:
        username = fetch_twitter_username(session.access_token)
    except TwitterAuthError as exc:
        return VerificationResult(False, str(exc))

    if username.lower() != claimed_handle.lstrip("@").lower():
        logger.warning(
            "Twitter identity mismatch",
            extra={"claimed_handle": claimed_handle, "session_handle": username},
        )
        return VerificationResult(False, "You can only perform actions for your own Twitter account")

    return VerificationResult(True, twitter_handle=username)
