# giverep/auth/token.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from giverep.database import get_db
from giverep.models.twitter_token import TwitterToken
from giverep.core.config import settings

SECRET_KEY = settings.JWT_SECRET
ALGORITHM = settings.JWT_ALG
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRES_MINUTES

security = HTTPBearer(auto_error=False)  # don't auto-fail if no header


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def read_session_payload(request: Request) -> Optional[dict]:
    """
    Decode the session JWT from:
      1) Cookie: settings.SESSION_COOKIE_NAME (browser session)
      2) Authorization: Bearer <token>  (manual testing)
    Returns None when there is no usable token.
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.lower().startswith("bearer "):
            token = auth_header[7:].strip()
    if not token:
        return None
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> TwitterToken:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME) or (credentials.credentials if credentials else None)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=403, detail="Could not validate credentials")

    twitter_id = payload.get("sub")
    if twitter_id is None:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    session = db.query(TwitterToken).filter(TwitterToken.twitter_id == str(twitter_id)).first()
    if not session:
        raise HTTPException(status_code=404, detail="User not found")
    return session
