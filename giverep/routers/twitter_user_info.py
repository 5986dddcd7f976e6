from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from giverep.database import get_db
from giverep.services import twitter_user_info as user_info_service

router = APIRouter(prefix="/api/twitter-user-info", tags=["Twitter User Info"])

MAX_BATCH_SIZE = 100
CACHE_CONTROL = "public, max-age=86400"


@router.get("/batch")
def get_batch(response: Response, handles: str = "", db: Session = Depends(get_db)):
    handle_list = [h.strip() for h in handles.split(",") if h.strip()]
    if not handle_list:
        raise HTTPException(status_code=400, detail="handles query parameter is required")
    if len(handle_list) > MAX_BATCH_SIZE:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_BATCH_SIZE} handles per request")

    found = user_info_service.get_batch(db, handle_list)
    response.headers["Cache-Control"] = CACHE_CONTROL
    return {handle: user_info_service.to_dict(info) for handle, info in found.items()}


# registered before /{handle} so "legacy" is never taken as a handle
@router.get("/legacy/{handle}")
def get_legacy(handle: str, response: Response, db: Session = Depends(get_db)):
    info = user_info_service.get_user_info(db, handle)
    if not info:
        raise HTTPException(status_code=404, detail="User not found")
    response.headers["Cache-Control"] = CACHE_CONTROL
    return user_info_service.to_legacy_dict(info)


@router.get("/{handle}")
def get_user_info(handle: str, response: Response, db: Session = Depends(get_db)):
    info = user_info_service.get_user_info(db, handle)
    if not info:
        raise HTTPException(status_code=404, detail="User not found")
    response.headers["Cache-Control"] = CACHE_CONTROL
    return user_info_service.to_dict(info)
