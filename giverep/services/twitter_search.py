"""
Keyword search against the twitterapi.io advanced search endpoint.

Results are paged with a cursor. Paging stops early to save API credits:
  - no cursor / empty page,
  - a page made only of tweets already seen in this run,
  - three consecutive tweets we already stored that are older than two days,
  - a page made only of tweets we already stored.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import requests
from sqlalchemy.orm import Session

from giverep.core.config import settings
from giverep.core.logging import get_logger
from giverep.models.mindshare import MindshareTweet

logger = get_logger(__name__)

SEARCH_PATH = "/twitter/tweet/advanced_search"
MAX_PAGES = 50
DEFAULT_MAX_TWEETS = 1000
MAX_CONSECUTIVE_EXISTING = 3
RECENT_WINDOW = timedelta(days=2)


class TwitterSearchError(Exception):
    pass


def build_search_query(keyword: str, since: datetime, until: Optional[datetime] = None) -> str:
    date_range = f"since:{since:%Y-%m-%d}"
    if until:
        date_range += f" until:{until:%Y-%m-%d}"
    query = f"{keyword} min_faves:5 min_replies:3 -filter:replies -filter:nativeretweets"
    if keyword.startswith("@"):
        query += f" -from:{keyword[1:]}"
    return f"{query} {date_range}"


def parse_twitter_date(value) -> Optional[datetime]:
    """Parse 'Tue Dec 10 07:00:30 +0000 2024' or ISO strings into naive UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        try:
            parsed = datetime.strptime(text, "%a %b %d %H:%M:%S %z %Y")
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def normalize_search_tweet(raw: dict) -> dict:
    author = raw.get("author") or {}
    return {
        "tweet_id": str(raw.get("id") or ""),
        "text": raw.get("text") or "",
        "url": raw.get("url"),
        "created_at": parse_twitter_date(raw.get("createdAt")),
        "user_handle": author.get("userName") or "",
        "user_name": author.get("name"),
        "user_id": str(author["id"]) if author.get("id") else None,
        "user_profile_image": author.get("profilePicture"),
        "views": raw.get("viewCount") or 0,
        "likes": raw.get("likeCount") or 0,
        "retweets": raw.get("retweetCount") or 0,
        "replies": raw.get("replyCount") or 0,
        "is_reply": bool(raw.get("isReply")),
        "is_retweet": bool(raw.get("retweeted_tweet")),
    }


def _fetch_page(query: str, cursor: Optional[str]) -> dict:
    if not settings.TWITTER_API_IO_KEY:
        raise TwitterSearchError("Twitter API.IO key is not configured")

    params = {"queryType": "Latest", "query": query}
    if cursor:
        params["cursor"] = cursor
    response = requests.get(
        f"{settings.TWITTER_API_IO_BASE_URL}{SEARCH_PATH}",
        params=params,
        headers={"x-api-key": settings.TWITTER_API_IO_KEY, "Content-Type": "application/json"},
        timeout=30,
    )
    if response.status_code != 200:
        raise TwitterSearchError(f"Twitter API returned {response.status_code}: {response.text[:200]}")
    data = response.json()
    if not isinstance(data, dict):
        raise TwitterSearchError(f"Unexpected Twitter API payload: {type(data).__name__}")
    if data.get("errors"):
        raise TwitterSearchError(f"Twitter API error: {data['errors']}")
    return data


def _existing_tweet_ids(db: Session, project_id: int, tweet_ids: list[str]) -> set[str]:
    if not tweet_ids:
        return set()
    rows = (
        db.query(MindshareTweet.tweet_id)
        .filter(MindshareTweet.project_id == project_id, MindshareTweet.tweet_id.in_(tweet_ids))
        .all()
    )
    return {row.tweet_id for row in rows}


def search_tweets(
    keyword: str,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    max_tweets: int = DEFAULT_MAX_TWEETS,
    project_id: Optional[int] = None,
    db: Optional[Session] = None,
) -> list[dict]:
    since = since or datetime.utcnow() - timedelta(days=7)
    query = build_search_query(keyword, since, until)
    logger.info("Searching tweets", extra={"keyword": keyword, "query": query})

    collected: list[dict] = []
    seen_ids: set[str] = set()
    cursor: Optional[str] = None
    consecutive_existing = 0
    pages = 0

    try:
        while pages < MAX_PAGES:
            if consecutive_existing >= MAX_CONSECUTIVE_EXISTING:
                logger.info("Stopping search after %s consecutive stored tweets", consecutive_existing)
                break

            pages += 1
            data = _fetch_page(query, cursor)
            cursor = data.get("next_cursor") or None

            page = [normalize_search_tweet(t) for t in data.get("tweets") or []]
            page = [t for t in page if t["tweet_id"] and not t["is_reply"] and not t["is_retweet"]]

            new_in_page = 0
            for tweet in page:
                if tweet["tweet_id"] not in seen_ids:
                    seen_ids.add(tweet["tweet_id"])
                    new_in_page += 1
            if page and new_in_page == 0:
                logger.info("Page %s only repeats earlier pages, stopping", pages)
                break

            if project_id is not None and db is not None:
                existing = _existing_tweet_ids(db, project_id, [t["tweet_id"] for t in page])
                recent_cutoff = datetime.utcnow() - RECENT_WINDOW
                for tweet in page:
                    if tweet["tweet_id"] not in existing:
                        consecutive_existing = 0
                        continue
                    created_at = tweet["created_at"] or datetime.utcnow()
                    if created_at < recent_cutoff:
                        consecutive_existing += 1
                        if consecutive_existing >= MAX_CONSECUTIVE_EXISTING:
                            break

                if page and len(existing) == len(page):
                    collected.extend(page)
                    logger.info("All %s tweets on page %s already stored, stopping", len(page), pages)
                    break

            collected.extend(page)

            if not page or not cursor:
                break
            if len(collected) >= max_tweets:
                logger.info("Reached max tweet count (%s)", max_tweets)
                break
    except (requests.RequestException, TwitterSearchError, ValueError) as e:
        logger.error("Error searching tweets for %r: %s", keyword, e)
        return collected[:max_tweets]
    except Exception:
        logger.exception("Unexpected error searching tweets for %r", keyword)
        if db is not None:
            db.rollback()
        return collected[:max_tweets]

    logger.info("Search finished", extra={"keyword": keyword, "pages": pages, "tweets": len(collected)})
    return collected[:max_tweets]
