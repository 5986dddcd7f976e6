from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from giverep.core.errors import ServiceError
from giverep.core.logging import get_logger
from giverep.models.loyalty_member import LoyaltyMember, LoyaltyMetrics
from giverep.models.project import LoyaltyProject
from giverep.models.reward import ProjectCreatorScore
from giverep.models.tweet import Tweet, TweetMention
from giverep.models.twitter_user_info import TwitterUserInfo
from giverep.services.reputation import award_reputation_for_views
from giverep.services.twitter_search import search_tweets
from giverep.services.twitter_user_info import get_user_info, normalize_handle
from giverep.utils.tweet_validation import validate_tweet_metrics

logger = get_logger(__name__)

DATE_FORMAT = "%Y-%m-%d"


class LoyaltyError(ServiceError):
    pass


def parse_date_range(start_date: Optional[str], end_date: Optional[str]):
    """``YYYY-MM-DD`` strings to an inclusive [00:00, 23:59:59.999999] window."""
    try:
        start = datetime.strptime(start_date, DATE_FORMAT) if start_date else None
        end = datetime.strptime(end_date, DATE_FORMAT) if end_date else None
    except ValueError:
        raise ValueError("Invalid date format. Use YYYY-MM-DD.")
    if end is not None:
        end = end.replace(hour=23, minute=59, second=59, microsecond=999999)
    return start, end


def project_handle(project: LoyaltyProject) -> str:
    return normalize_handle(project.twitter_handle)


def is_expired(project: LoyaltyProject, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return project.end_time is not None and project.end_time < now


# ---------- Leaderboard ----------

def _mention_stats_subquery(
    db: Session,
    project: LoyaltyProject,
    start: Optional[datetime],
    end: Optional[datetime],
):
    author = func.lower(Tweet.author_handle)
    query = (
        db.query(
            author.label("handle"),
            func.count(Tweet.id).label("tweet_count"),
            func.coalesce(func.sum(Tweet.views), 0).label("views"),
            func.coalesce(func.sum(Tweet.likes), 0).label("likes"),
            func.coalesce(func.sum(Tweet.retweets), 0).label("retweets"),
            func.coalesce(func.sum(Tweet.replies), 0).label("replies"),
        )
        .join(TweetMention, TweetMention.tweet_pk == Tweet.id)
        .filter(TweetMention.handle == project_handle(project))
    )
    if start is not None:
        query = query.filter(Tweet.created_at >= start)
    if end is not None:
        query = query.filter(Tweet.created_at <= end)

    hashtags = [tag.strip().lstrip("#") for tag in project.hashtags or [] if tag and tag.strip("# ")]
    if hashtags:
        query = query.filter(or_(*[Tweet.content.ilike(f"%#{tag}%") for tag in hashtags]))

    return query.group_by(author).subquery()


def get_project_leaderboard(
    db: Session,
    project: LoyaltyProject,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[dict]:
    stats = _mention_stats_subquery(db, project, start, end)
    member_handle = func.lower(LoyaltyMember.twitter_handle)

    views = func.coalesce(stats.c.views, 0)
    rows = (
        db.query(
            LoyaltyMember.twitter_handle,
            LoyaltyMember.joined_at,
            func.coalesce(stats.c.tweet_count, 0).label("tweet_count"),
            views.label("views"),
            func.coalesce(stats.c.likes, 0).label("likes"),
            func.coalesce(stats.c.retweets, 0).label("retweets"),
            func.coalesce(stats.c.replies, 0).label("replies"),
            TwitterUserInfo.profile_image_url,
            TwitterUserInfo.follower_count,
        )
        .outerjoin(stats, stats.c.handle == member_handle)
        .outerjoin(TwitterUserInfo, TwitterUserInfo.handle == member_handle)
        .filter(LoyaltyMember.project_id == project.id, LoyaltyMember.is_active.is_(True))
        .order_by(views.desc(), LoyaltyMember.twitter_handle.asc())
        .all()
    )
    return [
        {
            "twitter_handle": row.twitter_handle,
            "joined_at": row.joined_at.isoformat() if row.joined_at else None,
            "tweet_count": int(row.tweet_count),
            "views": int(row.views),
            "likes": int(row.likes),
            "retweets": int(row.retweets),
            "replies": int(row.replies),
            "profile_image_url": row.profile_image_url,
            "follower_count": row.follower_count or 0,
        }
        for row in rows
    ]


def get_user_position(db: Session, project: LoyaltyProject, handle: str) -> Optional[dict]:
    handle = normalize_handle(handle)
    start, end = project.start_time, project.end_time
    for rank, entry in enumerate(get_project_leaderboard(db, project, start, end), start=1):
        if entry["twitter_handle"].lower() == handle:
            return {"rank": rank, **entry}
    return None


# ---------- Membership ----------

def join_project(db: Session, project: LoyaltyProject, twitter_handle: str) -> LoyaltyMember:
    handle = normalize_handle(twitter_handle)
    if not project.is_active:
        raise LoyaltyError(400, "This loyalty program is not active")
    if is_expired(project):
        raise LoyaltyError(400, "This loyalty program has ended")

    member = (
        db.query(LoyaltyMember)
        .filter(LoyaltyMember.project_id == project.id, func.lower(LoyaltyMember.twitter_handle) == handle)
        .first()
    )
    if member and member.is_active:
        raise LoyaltyError(400, "Already a member")

    required = project.min_follower_count or 0
    if required > 0:
        info = get_user_info(db, handle)
        followers = info.follower_count if info else 0
        if (followers or 0) < required:
            raise LoyaltyError(
                400,
                f"You need at least {required} followers to join this program",
                requiredFollowers=required,
                currentFollowers=followers or 0,
            )

    if member:
        member.is_active = True
        member.joined_at = datetime.utcnow()
    else:
        member = LoyaltyMember(project_id=project.id, twitter_handle=handle, is_active=True)
        db.add(member)
    db.commit()
    db.refresh(member)
    logger.info("Member joined loyalty program", extra={"project_id": project.id, "twitter_handle": handle})
    return member


def leave_project(db: Session, project: LoyaltyProject, twitter_handle: str) -> LoyaltyMember:
    handle = normalize_handle(twitter_handle)
    member = (
        db.query(LoyaltyMember)
        .filter(
            LoyaltyMember.project_id == project.id,
            func.lower(LoyaltyMember.twitter_handle) == handle,
            LoyaltyMember.is_active.is_(True),
        )
        .first()
    )
    if not member:
        raise LoyaltyError(404, "Not a member of this program")
    member.is_active = False
    db.commit()
    return member


def member_counts(db: Session, project_ids: list[int]) -> dict:
    if not project_ids:
        return {}
    rows = (
        db.query(LoyaltyMember.project_id, func.count(LoyaltyMember.id))
        .filter(LoyaltyMember.project_id.in_(project_ids), LoyaltyMember.is_active.is_(True))
        .group_by(LoyaltyMember.project_id)
        .all()
    )
    return {project_id: count for project_id, count in rows}


def get_members(db: Session, project: LoyaltyProject) -> list[dict]:
    rows = (
        db.query(LoyaltyMember, TwitterUserInfo)
        .outerjoin(TwitterUserInfo, TwitterUserInfo.handle == func.lower(LoyaltyMember.twitter_handle))
        .filter(LoyaltyMember.project_id == project.id, LoyaltyMember.is_active.is_(True))
        .order_by(LoyaltyMember.joined_at.asc())
        .all()
    )
    return [
        {
            "twitter_handle": member.twitter_handle,
            "joined_at": member.joined_at.isoformat() if member.joined_at else None,
            "display_name": info.display_name if info else None,
            "profile_image_url": info.profile_image_url if info else None,
            "follower_count": info.follower_count if info else 0,
        }
        for member, info in rows
    ]


def get_user_memberships(db: Session, twitter_handle: str) -> list[dict]:
    handle = normalize_handle(twitter_handle)
    rows = (
        db.query(LoyaltyMember, LoyaltyProject)
        .join(LoyaltyProject, LoyaltyProject.id == LoyaltyMember.project_id)
        .filter(func.lower(LoyaltyMember.twitter_handle) == handle, LoyaltyMember.is_active.is_(True))
        .order_by(LoyaltyMember.joined_at.desc())
        .all()
    )
    return [
        {
            "project_id": project.id,
            "project_name": project.name,
            "logo_url": project.logo_url,
            "twitter_handle": project.twitter_handle,
            "is_project_active": project.is_active,
            "joined_at": member.joined_at.isoformat() if member.joined_at else None,
        }
        for member, project in rows
    ]


# ---------- Tweets ----------

def _mentions_query(db: Session, project: LoyaltyProject):
    return (
        db.query(Tweet)
        .join(TweetMention, TweetMention.tweet_pk == Tweet.id)
        .filter(TweetMention.handle == project_handle(project))
    )


def tweet_to_dict(tweet: Tweet) -> dict:
    return {
        "tweet_id": tweet.tweet_id,
        "author_handle": tweet.author_handle,
        "author_name": tweet.author_name,
        "content": tweet.content,
        "tweet_link": tweet.tweet_link,
        "views": tweet.views or 0,
        "likes": tweet.likes or 0,
        "retweets": tweet.retweets or 0,
        "replies": tweet.replies or 0,
        "created_at": tweet.created_at.isoformat() if tweet.created_at else None,
    }


def get_project_tweets(db: Session, project: LoyaltyProject, page: int = 1, limit: int = 50) -> dict:
    query = _mentions_query(db, project)
    total = query.count()
    tweets = (
        query.order_by(Tweet.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "tweets": [tweet_to_dict(t) for t in tweets],
        "pagination": {"page": page, "limit": limit, "total": total},
    }


def get_user_project_tweets(db: Session, project: LoyaltyProject, twitter_handle: str) -> list[dict]:
    if not project_handle(project):
        raise LoyaltyError(400, "Project does not have a Twitter handle configured")
    tweets = (
        _mentions_query(db, project)
        .filter(func.lower(Tweet.author_handle) == normalize_handle(twitter_handle))
        .order_by(Tweet.views.desc())
        .all()
    )
    return [
        {
            "id": t.tweet_id,
            "text": t.content,
            "created_at": t.created_at.isoformat() if t.created_at else None,
            "like_count": t.likes or 0,
            "retweet_count": t.retweets or 0,
            "reply_count": t.replies or 0,
            "view_count": t.views or 0,
            "tweet_url": t.tweet_link or f"https://x.com/{t.author_handle}/status/{t.tweet_id}",
            "user_handle": t.author_handle,
            "user_name": t.author_name,
        }
        for t in tweets
    ]


def get_project_stats(db: Session, project: LoyaltyProject) -> dict:
    leaderboard = get_project_leaderboard(db, project, project.start_time, project.end_time)
    participants = [e for e in leaderboard if e["tweet_count"] > 0]
    return {
        "project_id": project.id,
        "member_count": len(leaderboard),
        "active_participants": len(participants),
        "tweet_count": sum(e["tweet_count"] for e in leaderboard),
        "views": sum(e["views"] for e in leaderboard),
        "likes": sum(e["likes"] for e in leaderboard),
        "retweets": sum(e["retweets"] for e in leaderboard),
        "replies": sum(e["replies"] for e in leaderboard),
        "incentive_budget": float(project.incentive_budget or 0),
        "total_incentive_spent": float(project.total_incentive_spent or 0),
    }


def collect_loyalty_tweets(db: Session, project: LoyaltyProject, days: int = 7) -> dict:
    handle = project_handle(project)
    if not handle:
        raise LoyaltyError(400, "Project has no Twitter handle")

    since = datetime.utcnow() - timedelta(days=days)
    results = search_tweets(f"@{handle}", since)

    collected = new_tweets = 0
    for item in results:
        if not item["tweet_id"] or not item["user_handle"]:
            continue
        metrics = validate_tweet_metrics(item, item["tweet_id"])

        tweet = db.query(Tweet).filter(Tweet.tweet_id == item["tweet_id"]).first()
        if tweet is None:
            tweet = Tweet(
                tweet_id=item["tweet_id"],
                author_handle=item["user_handle"],
                author_id=item["user_id"],
                author_name=item["user_name"],
                content=item["text"],
                tweet_link=item["url"] or f"https://x.com/{item['user_handle']}/status/{item['tweet_id']}",
                created_at=item["created_at"],
                collected_at=datetime.utcnow(),
            )
            db.add(tweet)
            new_tweets += 1
        for field in ("views", "likes", "retweets", "replies"):
            if metrics[field] > (getattr(tweet, field) or 0):
                setattr(tweet, field, metrics[field])

        if not any(m.handle == handle for m in tweet.mentions):
            tweet.mentions.append(TweetMention(handle=handle))
        db.flush()
        collected += 1

    db.commit()
    logger.info(
        "Collected loyalty tweets",
        extra={"project_id": project.id, "tweets_collected": collected, "new_tweets": new_tweets},
    )
    return {"tweetsCollected": collected, "newTweets": new_tweets}


# ---------- Metrics ----------

def calculate_project_metrics(db: Session, project: LoyaltyProject) -> dict:
    leaderboard = get_project_leaderboard(db, project, project.start_time, project.end_time)
    existing = {
        row.twitter_handle.lower(): row
        for row in db.query(LoyaltyMetrics).filter(LoyaltyMetrics.project_id == project.id).all()
    }
    price = Decimal(str(project.price_per_view or 0))

    view_growth = 0
    reputation_awarded = 0
    for entry in leaderboard:
        key = entry["twitter_handle"].lower()
        row = existing.get(key)
        if row is None:
            row = LoyaltyMetrics(project_id=project.id, twitter_handle=entry["twitter_handle"], views=0)
            db.add(row)

        previous_views = int(row.views or 0)
        growth = max(entry["views"] - previous_views, 0)
        view_growth += growth
        if growth:
            reputation_awarded += award_reputation_for_views(
                db, entry["twitter_handle"], entry["views"], project.id, previous_views
            )

        row.tweet_count = entry["tweet_count"]
        row.views = entry["views"]
        row.likes = entry["likes"]
        row.retweets = entry["retweets"]
        row.replies = entry["replies"]
        row.last_updated = datetime.utcnow()

    spent = Decimal(0)
    if project.is_incentivized and view_growth:
        spent = Decimal(view_growth) * price
        project.total_incentive_spent = Decimal(str(project.total_incentive_spent or 0)) + spent

    db.commit()
    logger.info(
        "Calculated loyalty metrics",
        extra={"project_id": project.id, "members": len(leaderboard), "view_growth": view_growth},
    )
    return {
        "membersProcessed": len(leaderboard),
        "viewGrowth": view_growth,
        "incentiveSpent": float(spent),
        "reputationAwarded": reputation_awarded,
    }


def deactivate_expired_projects(db: Session) -> int:
    updated = (
        db.query(LoyaltyProject)
        .filter(
            LoyaltyProject.is_active.is_(True),
            LoyaltyProject.end_time.isnot(None),
            LoyaltyProject.end_time < datetime.utcnow(),
        )
        .update({LoyaltyProject.is_active: False}, synchronize_session=False)
    )
    db.commit()
    if updated:
        logger.info("Deactivated %s expired loyalty programs", updated)
    return updated


def delete_project(db: Session, project: LoyaltyProject) -> None:
    db.query(LoyaltyMetrics).filter(LoyaltyMetrics.project_id == project.id).delete(synchronize_session=False)
    db.query(ProjectCreatorScore).filter(ProjectCreatorScore.project_id == project.id).delete(
        synchronize_session=False
    )
    db.delete(project)
    db.commit()


def project_to_dict(project: LoyaltyProject, member_count: Optional[int] = None) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "logo_url": project.logo_url,
        "banner_url": project.banner_url,
        "website_url": project.website_url,
        "twitter_handle": project.twitter_handle,
        "is_active": project.is_active,
        "is_featured": project.is_featured,
        "is_incentivized": project.is_incentivized,
        "price_per_view": float(project.price_per_view or 0),
        "incentive_budget": float(project.incentive_budget or 0),
        "total_incentive_spent": float(project.total_incentive_spent or 0),
        "min_follower_count": project.min_follower_count or 0,
        "hashtags": project.hashtags or [],
        "tag_ids": project.tag_ids or [],
        "start_time": project.start_time.isoformat() if project.start_time else None,
        "end_time": project.end_time.isoformat() if project.end_time else None,
        "has_password": bool(project.password_hash),
        "member_count": member_count,
        "created_at": project.created_at.isoformat() if project.created_at else None,
    }
