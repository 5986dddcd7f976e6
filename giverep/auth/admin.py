# giverep/auth/admin.py
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from giverep.core.config import settings
from giverep.database import get_db
from giverep.models.project import LoyaltyProject


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def check_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def _password_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return request.headers.get("X-Admin-Password") or request.headers.get("X-Loyalty-Password")


def _is_admin_password(password: str) -> bool:
    return bool(settings.ADMIN_PASSWORD) and password == settings.ADMIN_PASSWORD


def require_admin(request: Request) -> None:
    password = _password_from_request(request)
    if not password:
        raise HTTPException(status_code=401, detail="Admin authentication required")
    if not _is_admin_password(password):
        raise HTTPException(status_code=403, detail="Invalid admin password")


def require_admin_or_loyalty_manager(request: Request, db: Session = Depends(get_db)) -> None:
    """Admins pass everywhere; a loyalty manager only for the project in the path."""
    password = _password_from_request(request)
    if not password:
        raise HTTPException(status_code=401, detail="Admin authentication required")
    if _is_admin_password(password):
        return

    raw_id = request.path_params.get("id") or request.path_params.get("project_id")
    try:
        project_id = int(raw_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=403, detail="Invalid admin password")

    project = db.query(LoyaltyProject).filter(LoyaltyProject.id == project_id).first()
    if not project or not check_password(password, project.password_hash):
        raise HTTPException(status_code=403, detail="Invalid admin password")
