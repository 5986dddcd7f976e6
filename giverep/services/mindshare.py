import re
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from giverep.core.logging import get_logger
from giverep.models.mindshare import MindshareKeyword, MindshareMetrics, MindshareProject, MindshareTweet
from giverep.models.project import ProjectTag
from giverep.services.fxtwitter import get_tweet_metrics
from giverep.services.twitter_search import RECENT_WINDOW, search_tweets
from giverep.utils.tweet_validation import validate_tweet_metrics

logger = get_logger(__name__)

MAX_CONTENT_LENGTH = 1000
MAX_EXISTING_OLD_TWEETS = 3
METRICS_BATCH_SIZE = 40
RECENTLY_COLLECTED = timedelta(minutes=30)

TIMEFRAME_DAYS = {"day": 1, "week": 7, "month": 30}

_URL_RE = re.compile(r"https?://\S+")


def clean_tweet_text(text: Optional[str]) -> str:
    cleaned = _URL_RE.sub("", text or "").strip()
    if len(cleaned) > MAX_CONTENT_LENGTH:
        cleaned = cleaned[: MAX_CONTENT_LENGTH - 3] + "..."
    return cleaned


def _engagement(likes, retweets, replies) -> int:
    return int(likes or 0) + int(retweets or 0) + int(replies or 0)


def engagement_rate(likes, retweets, replies, views) -> float:
    views = int(views or 0)
    if views <= 0:
        return 0.0
    return round(_engagement(likes, retweets, replies) / views * 100, 2)


# ---------- Projects & keywords ----------

def handle_keyword(twitter_handle: Optional[str]) -> Optional[str]:
    handle = (twitter_handle or "").strip().lstrip("@")
    return f"@{handle}" if handle else None


def create_project(db: Session, data: dict) -> MindshareProject:
    project = MindshareProject(**data)
    keyword = handle_keyword(project.twitter_handle)
    if keyword:
        project.keywords.append(MindshareKeyword(keyword=keyword))
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def update_project(db: Session, project: MindshareProject, data: dict) -> MindshareProject:
    for key, value in data.items():
        setattr(project, key, value)

    keyword = handle_keyword(project.twitter_handle)
    if keyword and not any(k.keyword.lower() == keyword.lower() for k in project.keywords):
        project.keywords.append(MindshareKeyword(keyword=keyword))

    db.commit()
    db.refresh(project)
    return project


# ---------- Collection ----------

def _refresh_recent_metrics(db: Session, tweet: MindshareTweet) -> bool:
    """Raise stored counters to the FXTwitter values; counters never go down."""
    fx_metrics = get_tweet_metrics(tweet.tweet_id)
    if not fx_metrics:
        return False
    fx_metrics = validate_tweet_metrics(fx_metrics, tweet.tweet_id)

    changed = False
    for field in ("views", "likes", "retweets", "replies"):
        if fx_metrics[field] > (getattr(tweet, field) or 0):
            setattr(tweet, field, fx_metrics[field])
            changed = True
    return changed


def collect_project_tweets(db: Session, project: MindshareProject, days: int = 7) -> dict:
    keywords = [k for k in project.keywords if k.is_active]
    if not keywords:
        logger.info("Project %s has no active keywords, skipping", project.id)
        return {"tweetsCollected": 0, "newTweets": 0}

    since = datetime.utcnow() - timedelta(days=days)
    collected = 0
    new_tweets = 0
    existing_old = 0

    for keyword in keywords:
        if existing_old >= MAX_EXISTING_OLD_TWEETS:
            break

        tweets = search_tweets(keyword.keyword, since, project_id=project.id, db=db)
        for item in tweets:
            if existing_old >= MAX_EXISTING_OLD_TWEETS:
                break
            if not item["tweet_id"] or not item["text"] or not item["created_at"]:
                continue

            existing = (
                db.query(MindshareTweet)
                .filter(MindshareTweet.project_id == project.id, MindshareTweet.tweet_id == item["tweet_id"])
                .first()
            )
            if existing:
                if item["created_at"] >= datetime.utcnow() - RECENT_WINDOW:
                    _refresh_recent_metrics(db, existing)
                    collected += 1
                else:
                    existing_old += 1
                continue

            metrics = validate_tweet_metrics(item, item["tweet_id"])
            db.add(MindshareTweet(
                project_id=project.id,
                keyword_id=keyword.id,
                tweet_id=item["tweet_id"],
                user_handle=item["user_handle"],
                user_name=item["user_name"],
                user_profile_image=item["user_profile_image"],
                content=clean_tweet_text(item["text"]),
                views=metrics["views"],
                likes=metrics["likes"],
                retweets=metrics["retweets"],
                replies=metrics["replies"],
                created_at=item["created_at"],
                collected_at=datetime.utcnow(),
            ))
            db.flush()
            existing_old = 0
            collected += 1
            new_tweets += 1

        db.commit()

    logger.info(
        "Collected tweets for project",
        extra={"project_id": project.id, "tweets_collected": collected, "new_tweets": new_tweets},
    )
    return {"tweetsCollected": collected, "newTweets": new_tweets}


def collect_all_project_tweets(db: Session, days: int = 7) -> dict:
    projects = db.query(MindshareProject).filter(MindshareProject.is_active.is_(True)).all()
    total = {"projectsProcessed": 0, "tweetsCollected": 0, "newTweets": 0}
    for project in projects:
        try:
            result = collect_project_tweets(db, project, days)
        except Exception:
            logger.exception("Tweet collection failed for project %s", project.id)
            db.rollback()
            continue
        total["projectsProcessed"] += 1
        total["tweetsCollected"] += result["tweetsCollected"]
        total["newTweets"] += result["newTweets"]
    return total


def update_recent_tweet_metrics(db: Session, days: int = 2) -> dict:
    now = datetime.utcnow()
    tweets = (
        db.query(MindshareTweet)
        .filter(MindshareTweet.created_at >= now - timedelta(days=days))
        .order_by(MindshareTweet.created_at.desc())
        .all()
    )

    checked = updated = skipped = 0
    for start in range(0, len(tweets), METRICS_BATCH_SIZE):
        for tweet in tweets[start:start + METRICS_BATCH_SIZE]:
            if tweet.collected_at and now - tweet.collected_at < RECENTLY_COLLECTED:
                skipped += 1
                continue
            checked += 1
            if _refresh_recent_metrics(db, tweet):
                updated += 1
        db.commit()

    logger.info("Refreshed recent tweet metrics", extra={"checked": checked, "updated": updated, "skipped": skipped})
    return {"tweetsChecked": checked, "tweetsUpdated": updated, "skippedNewlyCollected": skipped}


# ---------- Metrics ----------

def _aggregate_by_project(db: Session, project_ids: list[int], start: datetime, end: datetime) -> dict:
    if not project_ids:
        return {}
    rows = (
        db.query(
            MindshareTweet.project_id,
            func.count(MindshareTweet.id).label("tweet_count"),
            func.coalesce(func.sum(MindshareTweet.views), 0).label("views"),
            func.coalesce(func.sum(MindshareTweet.likes), 0).label("likes"),
            func.coalesce(func.sum(MindshareTweet.retweets), 0).label("retweets"),
            func.coalesce(func.sum(MindshareTweet.replies), 0).label("replies"),
        )
        .filter(
            MindshareTweet.project_id.in_(project_ids),
            MindshareTweet.created_at >= start,
            MindshareTweet.created_at <= end,
        )
        .group_by(MindshareTweet.project_id)
        .all()
    )
    return {
        row.project_id: {
            "tweet_count": int(row.tweet_count),
            "views": int(row.views),
            "likes": int(row.likes),
            "retweets": int(row.retweets),
            "replies": int(row.replies),
        }
        for row in rows
    }


def share_percentages(engagement_by_project: dict) -> dict:
    total = sum(engagement_by_project.values())
    if total <= 0:
        return {project_id: 0.0 for project_id in engagement_by_project}
    return {
        project_id: round(engagement / total * 100, 2)
        for project_id, engagement in engagement_by_project.items()
    }


def calculate_mindshare_metrics(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list:
    end = end or datetime.utcnow()
    start = start or end - timedelta(days=30)

    projects = db.query(MindshareProject).filter(MindshareProject.is_active.is_(True)).all()
    aggregates = _aggregate_by_project(db, [p.id for p in projects], start, end)
    shares = share_percentages({
        project_id: _engagement(a["likes"], a["retweets"], a["replies"]) for project_id, a in aggregates.items()
    })

    results = []
    for project_id, agg in aggregates.items():
        row = (
            db.query(MindshareMetrics)
            .filter(
                MindshareMetrics.project_id == project_id,
                MindshareMetrics.start_date == start,
                MindshareMetrics.end_date == end,
            )
            .first()
        )
        if row is None:
            row = MindshareMetrics(project_id=project_id, start_date=start, end_date=end)
            db.add(row)
        row.tweet_count = agg["tweet_count"]
        row.views = agg["views"]
        row.likes = agg["likes"]
        row.retweets = agg["retweets"]
        row.replies = agg["replies"]
        row.engagement_rate = engagement_rate(agg["likes"], agg["retweets"], agg["replies"], agg["views"])
        row.share_percentage = shares.get(project_id, 0.0)
        results.append(row)

    db.commit()
    logger.info("Calculated mindshare metrics for %s projects", len(results))
    return results


def metrics_window(timeframe: str = "week", days: Optional[int] = None, now: Optional[datetime] = None):
    now = now or datetime.utcnow()
    end = now.replace(hour=23, minute=59, second=59, microsecond=999999)
    span = days if days is not None else TIMEFRAME_DAYS.get(timeframe, 30)
    start = (end - timedelta(days=span)).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, end


def project_to_dict(project: MindshareProject) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "logo_url": project.logo_url,
        "banner_url": project.banner_url,
        "website_url": project.website_url,
        "twitter_handle": project.twitter_handle,
        "is_active": project.is_active,
        "tag_ids": project.tag_ids or [],
        "created_at": project.created_at.isoformat() if project.created_at else None,
    }


def get_all_projects_with_metrics(
    db: Session,
    timeframe: str = "week",
    days: Optional[int] = None,
    tag_ids: Optional[list[int]] = None,
) -> list[dict]:
    start, end = metrics_window(timeframe, days)

    projects = (
        db.query(MindshareProject)
        .filter(MindshareProject.is_active.is_(True))
        .order_by(MindshareProject.created_at.desc())
        .all()
    )
    if tag_ids:
        wanted = set(tag_ids)
        projects = [p for p in projects if wanted.intersection(p.tag_ids or [])]
    if not projects:
        return []

    tag_map = {tag.id: tag for tag in db.query(ProjectTag).all()}
    aggregates = _aggregate_by_project(db, [p.id for p in projects], start, end)
    empty = {"tweet_count": 0, "views": 0, "likes": 0, "retweets": 0, "replies": 0}

    engagement_by_project = {}
    for project in projects:
        agg = aggregates.get(project.id, empty)
        engagement_by_project[project.id] = _engagement(agg["likes"], agg["retweets"], agg["replies"])
    shares = share_percentages(engagement_by_project)

    results = []
    for project in projects:
        agg = aggregates.get(project.id, empty)
        item = project_to_dict(project)
        item.update({
            "timeframe": timeframe,
            "tweet_count": agg["tweet_count"],
            "keyword_count": sum(1 for k in project.keywords if k.is_active),
            "tags": [
                {"id": tag_map[t].id, "name": tag_map[t].name}
                for t in project.tag_ids or [] if t in tag_map
            ],
            "metrics": {
                "project_id": project.id,
                "tweet_count": agg["tweet_count"],
                "views": agg["views"],
                "likes": agg["likes"],
                "retweets": agg["retweets"],
                "replies": agg["replies"],
                "total_views": agg["views"],
                "total_engagement": engagement_by_project[project.id],
                "engagement_rate": engagement_rate(agg["likes"], agg["retweets"], agg["replies"], agg["views"]),
                "share_percentage": shares[project.id],
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            },
        })
        results.append(item)

    results.sort(key=lambda p: p["metrics"]["total_engagement"], reverse=True)
    return results


def get_project_time_series(db: Session, project_id: int, days: int = 30) -> list[dict]:
    start, end = metrics_window(days=days)
    rows = (
        db.query(MindshareTweet.created_at)
        .filter(
            MindshareTweet.project_id == project_id,
            MindshareTweet.created_at >= start,
            MindshareTweet.created_at <= end,
        )
        .all()
    )

    counts = {}
    current = start
    while current <= end:
        counts[current.strftime("%Y-%m-%d")] = 0
        current += timedelta(days=1)
    for row in rows:
        key = row.created_at.strftime("%Y-%m-%d")
        if key in counts:
            counts[key] += 1

    return [{"date": day, "count": count} for day, count in sorted(counts.items())]


# ---------- Tweets ----------

def tweet_to_dict(tweet: MindshareTweet) -> dict:
    return {
        "id": tweet.id,
        "project_id": tweet.project_id,
        "keyword_id": tweet.keyword_id,
        "tweet_id": tweet.tweet_id,
        "user_handle": tweet.user_handle,
        "user_name": tweet.user_name,
        "user_profile_image": tweet.user_profile_image,
        "content": tweet.content,
        "views": tweet.views or 0,
        "likes": tweet.likes or 0,
        "retweets": tweet.retweets or 0,
        "replies": tweet.replies or 0,
        "created_at": tweet.created_at.isoformat() if tweet.created_at else None,
        "collected_at": tweet.collected_at.isoformat() if tweet.collected_at else None,
    }


def get_project_tweets(
    db: Session,
    project_id: int,
    days: int = 2,
    limit: int = 50,
    sort_by: str = "views",
    include_all: bool = False,
) -> list[dict]:
    query = db.query(MindshareTweet).filter(MindshareTweet.project_id == project_id)
    if include_all:
        query = query.order_by(MindshareTweet.created_at.desc())
    else:
        end = datetime.utcnow()
        query = query.filter(
            MindshareTweet.created_at >= end - timedelta(days=days),
            MindshareTweet.created_at <= end,
        )
        if sort_by == "views":
            query = query.order_by(MindshareTweet.views.desc())
        else:
            query = query.order_by(MindshareTweet.created_at.desc())
    return [tweet_to_dict(t) for t in query.limit(limit).all()]


def get_top_tweet(db: Session, project_id: int, days: int = 2) -> Optional[dict]:
    """Most liked tweet in the window; retweets then views break ties."""
    start, end = metrics_window(days=days)
    tweet = (
        db.query(MindshareTweet)
        .filter(
            MindshareTweet.project_id == project_id,
            MindshareTweet.created_at >= start,
            MindshareTweet.created_at <= end,
        )
        .order_by(MindshareTweet.likes.desc(), MindshareTweet.retweets.desc(), MindshareTweet.views.desc())
        .first()
    )
    return tweet_to_dict(tweet) if tweet else None


def keyword_exists(db: Session, project_id: int, keyword: str) -> bool:
    return (
        db.query(MindshareKeyword)
        .filter(
            MindshareKeyword.project_id == project_id,
            func.lower(MindshareKeyword.keyword) == keyword.strip().lower(),
        )
        .first()
        is not None
    )
