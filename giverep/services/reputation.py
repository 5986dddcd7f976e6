from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from giverep.core.errors import ServiceError
from giverep.core.logging import get_logger
from giverep.models.reputation import RepPoint, RepUser

logger = get_logger(__name__)

VIEWS_PER_POINT = 100


class ReputationError(ServiceError):
    pass


def _normalize(handle: Optional[str]) -> str:
    return (handle or "").strip().lstrip("@").lower()


def get_or_create_rep_user(db: Session, handle: str) -> RepUser:
    handle = _normalize(handle)
    user = db.query(RepUser).filter(RepUser.twitter_handle == handle).first()
    if user is None:
        user = RepUser(
            twitter_handle=handle,
            total_reputation=0,
            daily_quota=3,
            points_used=0,
            quota_date=datetime.utcnow(),
            multiplier=1,
        )
        db.add(user)
        db.flush()
    return user


def _reset_quota_if_new_day(user: RepUser, now: datetime) -> None:
    if not user.quota_date or user.quota_date.date() != now.date():
        user.points_used = 0
        user.quota_date = now


def give_reputation(
    db: Session,
    from_handle: str,
    to_handle: str,
    tweet_id: str,
    tweet_url: Optional[str] = None,
) -> dict:
    giver_handle = _normalize(from_handle)
    receiver_handle = _normalize(to_handle)
    if not giver_handle or not receiver_handle or not tweet_id:
        raise ReputationError(400, "fromHandle, toHandle and tweetId are required")
    if giver_handle == receiver_handle:
        raise ReputationError(400, "You cannot give reputation to yourself")

    duplicate = (
        db.query(RepPoint)
        .filter(
            RepPoint.from_handle == giver_handle,
            RepPoint.to_handle == receiver_handle,
            RepPoint.tweet_id == str(tweet_id),
        )
        .first()
    )
    if duplicate:
        raise ReputationError(409, "Reputation already given for this tweet")

    now = datetime.utcnow()
    giver = get_or_create_rep_user(db, giver_handle)
    _reset_quota_if_new_day(giver, now)
    quota = giver.daily_quota or 0
    if (giver.points_used or 0) >= quota:
        raise ReputationError(400, "Daily reputation quota exhausted", dailyQuota=quota)

    points = giver.multiplier or 1
    receiver = get_or_create_rep_user(db, receiver_handle)
    db.add(RepPoint(
        from_handle=giver_handle,
        to_handle=receiver_handle,
        tweet_id=str(tweet_id),
        tweet_url=tweet_url,
        points=points,
        influencer_bonus=bool(giver.is_influencer),
    ))
    giver.points_used = (giver.points_used or 0) + 1
    receiver.total_reputation = (receiver.total_reputation or 0) + points
    db.commit()

    logger.info(
        "Reputation given",
        extra={"from_handle": giver_handle, "to_handle": receiver_handle, "points": points},
    )
    return {
        "success": True,
        "points": points,
        "influencerBonus": bool(giver.is_influencer),
        "remainingQuota": max(quota - giver.points_used, 0),
        "receiverTotal": receiver.total_reputation,
    }


def award_reputation_for_views(
    db: Session,
    handle: str,
    views: int,
    project_id: int,
    previous_views: int = 0,
) -> int:
    """Credit one point per 100 views; only the hundreds crossed since ``previous_views`` count."""
    points = int(views or 0) // VIEWS_PER_POINT - int(previous_views or 0) // VIEWS_PER_POINT
    if points <= 0:
        return 0

    receiver = get_or_create_rep_user(db, handle)
    db.add(RepPoint(
        from_handle=f"loyalty-{project_id}",
        to_handle=receiver.twitter_handle,
        tweet_id=f"views-{project_id}-{datetime.utcnow():%Y%m%d%H%M%S%f}",
        points=points,
        from_loyalty_program_id=project_id,
    ))
    receiver.total_reputation = (receiver.total_reputation or 0) + points
    db.flush()
    return points


def user_to_dict(user: RepUser, rank: Optional[int] = None) -> dict:
    return {
        "twitter_handle": user.twitter_handle,
        "twitter_id": user.twitter_id,
        "profile_image_url": user.profile_image_url,
        "follower_count": user.follower_count or 0,
        "total_reputation": user.total_reputation or 0,
        "is_influencer": bool(user.is_influencer),
        "multiplier": user.multiplier or 1,
        "daily_quota": user.daily_quota or 0,
        "points_used": user.points_used or 0,
        "rank": rank,
    }


def get_leaderboard(db: Session, limit: int = 100, offset: int = 0) -> list[dict]:
    users = (
        db.query(RepUser)
        .filter(RepUser.total_reputation > 0)
        .order_by(RepUser.total_reputation.desc(), RepUser.twitter_handle.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [user_to_dict(user, rank=offset + i + 1) for i, user in enumerate(users)]


def get_user(db: Session, handle: str) -> Optional[dict]:
    user = db.query(RepUser).filter(RepUser.twitter_handle == _normalize(handle)).first()
    if user is None:
        return None

    ahead = (
        db.query(func.count(RepUser.id))
        .filter(RepUser.total_reputation > (user.total_reputation or 0))
        .scalar()
    )
    received = (
        db.query(RepPoint)
        .filter(RepPoint.to_handle == user.twitter_handle)
        .order_by(RepPoint.created_at.desc())
        .limit(20)
        .all()
    )
    data = user_to_dict(user, rank=ahead + 1)
    data["recent_points"] = [
        {
            "from_handle": p.from_handle,
            "tweet_id": p.tweet_id,
            "tweet_url": p.tweet_url,
            "points": p.points,
            "influencer_bonus": p.influencer_bonus,
            "from_loyalty_program_id": p.from_loyalty_program_id,
            "created_at": p.created_at.isoformat() if p.created_at else None,
        }
        for p in received
    ]
    return data
