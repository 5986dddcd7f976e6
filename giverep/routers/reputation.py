from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from giverep.auth.twitter_identity import verify_twitter_identity
from giverep.database import get_db
from giverep.schemas.reputation_schema import GiveReputationRequest
from giverep.services import reputation as reputation_service

router = APIRouter(prefix="/api/reputation", tags=["Reputation"])


@router.get("/leaderboard")
def leaderboard(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return reputation_service.get_leaderboard(db, limit, offset)


@router.get("/users/{handle}")
def get_user(handle: str, db: Session = Depends(get_db)):
    user = reputation_service.get_user(db, handle)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.post("/give")
def give(payload: GiveReputationRequest, request: Request, db: Session = Depends(get_db)):
    verification = verify_twitter_identity(request, db, payload.from_handle)
    if not verification.success:
        raise HTTPException(status_code=401, detail=verification.error)

    return reputation_service.give_reputation(
        db, payload.from_handle, payload.to_handle, payload.tweet_id, payload.tweet_url
    )
