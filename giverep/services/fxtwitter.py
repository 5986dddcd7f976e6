import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from giverep.core.config import settings
from giverep.core.logging import get_logger

logger = get_logger(__name__)

FX_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "GiveRep/1.0",
}


@retry(
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    stop=stop_after_attempt(3),
    reraise=True,
)
def _get(path: str) -> requests.Response:
    return requests.get(f"{settings.FXTWITTER_BASE_URL}/{path}", headers=FX_HEADERS, timeout=10)


def get_tweet_metrics(tweet_id: str):
    """Current engagement counters for a tweet, or None when FXTwitter has nothing."""
    try:
        response = _get(f"status/{tweet_id}")
    except requests.RequestException as e:
        logger.warning("FXTwitter tweet lookup failed for %s: %s", tweet_id, e)
        return None

    if response.status_code != 200:
        return None

    tweet = response.json().get("tweet") or {}
    if not tweet:
        return None
    return {
        "views": tweet.get("views") or 0,
        "likes": tweet.get("likes") or 0,
        "retweets": tweet.get("retweets") or 0,
        "replies": tweet.get("replies") or 0,
    }


def get_user_profile(handle: str):
    """Profile fields for ``handle`` in our column names, or None."""
    try:
        response = _get(handle)
    except requests.RequestException as e:
        logger.warning("FXTwitter profile lookup failed for %s: %s", handle, e)
        return None

    if response.status_code != 200:
        return None

    user = response.json().get("user") or {}
    if not user:
        return None

    verification = user.get("verification") or {}
    screen_name = user.get("screen_name") or handle
    avatar = user.get("avatar_url")
    if avatar:
        avatar = avatar.replace("_normal", "")  # High-res image
    return {
        "twitter_id": str(user["id"]) if user.get("id") else None,
        "username": screen_name,
        "display_name": user.get("name"),
        "profile_image_url": avatar,
        "banner_url": user.get("banner_url"),
        "profile_url": user.get("url") or f"https://x.com/{screen_name}",
        "description": user.get("description"),
        "location": user.get("location"),
        "follower_count": user.get("followers") or 0,
        "following_count": user.get("following") or 0,
        "tweet_count": user.get("tweets") or 0,
        "is_verified": bool(verification.get("verified")),
        "is_blue_verified": verification.get("type") == "individual",
    }
