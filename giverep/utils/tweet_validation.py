"""Sanity limits for engagement counters coming from third-party APIs.

Scraped counters occasionally arrive corrupted (negative, NaN, or absurdly
large). Every metric is clamped into ``[0, cap]`` before it is stored.
"""

from __future__ import annotations

import math
from typing import Any

from giverep.core.logging import get_logger

logger = get_logger(__name__)

MAX_VIEWS = 1_000_000_000
MAX_LIKES = 10_000_000
MAX_RETWEETS = 5_000_000
MAX_REPLIES = 1_000_000
MAX_FOLLOWERS = 500_000_000

METRIC_CAPS = {
    "views": MAX_VIEWS,
    "likes": MAX_LIKES,
    "retweets": MAX_RETWEETS,
    "replies": MAX_REPLIES,
    "followers": MAX_FOLLOWERS,
}


def validate_metric(value: Any, cap: int, field: str = "metric", tweet_id: str | None = None) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or number < 0:
        return 0
    if number > cap:
        logger.warning(
            "Suspicious %s value clamped", field,
            extra={"tweet_id": tweet_id, "value": number, "cap": cap},
        )
        return cap
    return int(math.floor(number))


def validate_tweet_metrics(metrics: dict, tweet_id: str | None = None) -> dict:
    """Return a copy of ``metrics`` with views/likes/retweets/replies clamped."""
    cleaned = dict(metrics)
    for field in ("views", "likes", "retweets", "replies"):
        cleaned[field] = validate_metric(metrics.get(field), METRIC_CAPS[field], field, tweet_id)
    return cleaned


def validate_follower_count(value: Any, handle: str | None = None) -> int:
    return validate_metric(value, MAX_FOLLOWERS, "followers", handle)
