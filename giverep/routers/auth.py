import base64
import hashlib
import secrets
from datetime import datetime, timedelta
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from giverep.auth.token import create_access_token, get_current_user
from giverep.core.config import settings
from giverep.core.logging import get_logger
from giverep.database import get_db
from giverep.models.twitter_token import TwitterToken
from giverep.utils.cache import TTLCache

logger = get_logger(__name__)

router = APIRouter()

TWITTER_AUTHORIZE_URL = "https://twitter.com/i/oauth2/authorize"
TWITTER_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"

# state -> code_verifier, only needs to outlive the consent screen
verifier_store = TTLCache(10 * 60)


def _code_challenge(verifier: str) -> str:
    return base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")


@router.get("/auth/twitter/login")
def twitter_login():
    verifier = secrets.token_urlsafe(64)
    state = secrets.token_urlsafe(16)
    verifier_store.set(state, verifier)

    query = urlencode({
        "response_type": "code",
        "client_id": settings.TWITTER_CLIENT_ID,
        "redirect_uri": settings.TWITTER_CALLBACK_URL,
        "scope": "users.read tweet.read offline.access",
        "state": state,
        "code_challenge": _code_challenge(verifier),
        "code_challenge_method": "S256",
    })
    return RedirectResponse(f"{TWITTER_AUTHORIZE_URL}?{query}")


@router.get("/auth/twitter/callback")
async def twitter_callback(code: str, state: str, db: Session = Depends(get_db)):
    verifier = verifier_store.get(state)
    if not verifier:
        raise HTTPException(status_code=400, detail="Missing code_verifier for state.")
    verifier_store.delete(state)

    basic_auth = base64.b64encode(
        f"{settings.TWITTER_CLIENT_ID}:{settings.TWITTER_CLIENT_SECRET}".encode()
    ).decode()
    headers = {
        "Authorization": f"Basic {basic_auth}",
        "Content-Type": "application/x-www-form-urlencoded",
    }

    async with httpx.AsyncClient(timeout=15.0) as client:
        # 1. Exchange code for access token
        res = await client.post(
            TWITTER_TOKEN_URL,
            data={
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": settings.TWITTER_CALLBACK_URL,
                "code_verifier": verifier,
            },
            headers=headers,
        )
        token_data = res.json()
        access_token = token_data.get("access_token")
        if not access_token:
            logger.warning("Twitter token exchange failed", extra={"status": res.status_code})
            raise HTTPException(status_code=400, detail="Failed to retrieve access token.")

        # 2. Resolve the account behind the token
        user_res = await client.get(
            f"{settings.TWITTER_API_BASE_URL}/users/me",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        user_data = user_res.json().get("data", {})
        twitter_id = user_data.get("id")
        twitter_username = user_data.get("username")
        if not twitter_id:
            raise HTTPException(status_code=400, detail="Failed to fetch Twitter profile.")

    # 3. Save or update token
    expires_in = token_data.get("expires_in")
    expires_at = datetime.utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
    existing_token = db.query(TwitterToken).filter_by(twitter_id=twitter_id).first()
    if existing_token:
        existing_token.access_token = access_token
        existing_token.refresh_token = token_data.get("refresh_token")
        existing_token.twitter_handle = twitter_username
        existing_token.expires_at = expires_at
    else:
        db.add(TwitterToken(
            twitter_id=twitter_id,
            twitter_handle=twitter_username,
            access_token=access_token,
            refresh_token=token_data.get("refresh_token"),
            expires_at=expires_at,
        ))
    db.commit()
    logger.info("Twitter login", extra={"twitter_handle": twitter_username})

    # 4. Session cookie + redirect to frontend
    jwt_token = create_access_token(data={"sub": str(twitter_id), "handle": twitter_username})
    response = RedirectResponse(
        f"{settings.FRONTEND_URL.rstrip('/')}/oauth-success?{urlencode({'username': twitter_username})}"
    )
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=jwt_token,
        max_age=settings.ACCESS_TOKEN_EXPIRES_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite=settings.SESSION_COOKIE_SAMESITE,
        domain=settings.SESSION_COOKIE_DOMAIN,
    )
    return response


@router.get("/auth/me")
def me(session: TwitterToken = Depends(get_current_user)):
    return {"twitter_id": session.twitter_id, "twitter_handle": session.twitter_handle}


@router.post("/auth/logout")
def logout():
    response = RedirectResponse(settings.FRONTEND_URL, status_code=303)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, domain=settings.SESSION_COOKIE_DOMAIN)
    return response
