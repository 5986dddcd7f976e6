from giverep.utils.tweet_validation import (
    MAX_FOLLOWERS,
    MAX_LIKES,
    validate_follower_count,
    validate_metric,
    validate_tweet_metrics,
)


def test_validate_metric_clamps_bad_values():
    assert validate_metric("12", 100) == 12
    assert validate_metric(12.9, 100) == 12
    assert validate_metric(-5, 100) == 0
    assert validate_metric(float("nan"), 100) == 0
    assert validate_metric("abc", 100) == 0
    assert validate_metric(None, 100) == 0
    assert validate_metric(10**12, 100) == 100


def test_validate_tweet_metrics_keeps_other_fields():
    cleaned = validate_tweet_metrics({"tweet_id": "1", "views": "900", "likes": 10**9, "retweets": None})
    assert cleaned == {"tweet_id": "1", "views": 900, "likes": MAX_LIKES, "retweets": 0, "replies": 0}


def test_validate_follower_count():
    assert validate_follower_count(10**10) == MAX_FOLLOWERS
    assert validate_follower_count("2500") == 2500
