from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from giverep.core.logging import get_logger
from giverep.models.twitter_user_info import TwitterUserInfo
from giverep.services.fxtwitter import get_user_profile
from giverep.utils.tweet_validation import validate_follower_count

logger = get_logger(__name__)

STALE_AFTER = timedelta(days=1)
RETENTION_DAYS = 90


def normalize_handle(handle: Optional[str]) -> str:
    return (handle or "").strip().lstrip("@").lower()


def is_stale(info: TwitterUserInfo, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    if not info.last_updated_at or now - info.last_updated_at > STALE_AFTER:
        return True
    return not info.profile_image_url or not info.banner_url


def refresh_user_info(db: Session, handle: str, existing: Optional[TwitterUserInfo] = None) -> Optional[TwitterUserInfo]:
    profile = get_user_profile(handle)
    if not profile:
        return None

    profile["follower_count"] = validate_follower_count(profile.get("follower_count"), handle)
    info = existing or db.query(TwitterUserInfo).filter(TwitterUserInfo.handle == handle).first()
    if info is None:
        info = TwitterUserInfo(handle=handle)
        db.add(info)
    for key, value in profile.items():
        setattr(info, key, value)
    info.last_updated_at = datetime.utcnow()
    db.commit()
    db.refresh(info)
    return info


def get_user_info(db: Session, handle: str) -> Optional[TwitterUserInfo]:
    """Cached profile; refreshed from FXTwitter when stale, falling back to the cached row."""
    handle = normalize_handle(handle)
    if not handle:
        return None

    info = db.query(TwitterUserInfo).filter(TwitterUserInfo.handle == handle).first()
    if info and not is_stale(info):
        return info

    refreshed = refresh_user_info(db, handle, info)
    return refreshed or info


def get_batch(db: Session, handles: list[str]) -> dict[str, TwitterUserInfo]:
    normalized = list(dict.fromkeys(h for h in (normalize_handle(h) for h in handles) if h))
    if not normalized:
        return {}

    rows = db.query(TwitterUserInfo).filter(TwitterUserInfo.handle.in_(normalized)).all()
    found = {row.handle: row for row in rows}
    for handle in normalized:
        row = found.get(handle)
        if row is None or is_stale(row):
            refreshed = refresh_user_info(db, handle, row)
            if refreshed:
                found[handle] = refreshed
    return found


def cleanup_old(db: Session, days: int = RETENTION_DAYS) -> int:
    cutoff = datetime.utcnow() - timedelta(days=days)
    deleted = (
        db.query(TwitterUserInfo)
        .filter(TwitterUserInfo.last_updated_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Removed %s stale twitter_user_info rows", deleted)
    return deleted


def to_dict(info: TwitterUserInfo) -> dict:
    return {
        "handle": info.handle,
        "twitter_id": info.twitter_id,
        "username": info.username,
        "display_name": info.display_name,
        "profile_image_url": info.profile_image_url,
        "banner_url": info.banner_url,
        "profile_url": info.profile_url,
        "description": info.description,
        "location": info.location,
        "follower_count": info.follower_count,
        "following_count": info.following_count,
        "tweet_count": info.tweet_count,
        "is_verified": info.is_verified,
        "is_blue_verified": info.is_blue_verified,
        "last_updated_at": info.last_updated_at.isoformat() if info.last_updated_at else None,
    }


def to_legacy_dict(info: TwitterUserInfo) -> dict:
    return {
        "username": info.username or info.handle,
        "name": info.display_name,
        "profilePicture": info.profile_image_url,
        "coverPicture": info.banner_url,
        "description": info.description,
        "followers": info.follower_count,
        "following": info.following_count,
        "isVerified": info.is_verified,
        "isBlueVerified": info.is_blue_verified,
        "location": info.location,
        "url": info.profile_url,
    }
