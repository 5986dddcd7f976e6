from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import requests

from giverep.models.mindshare import MindshareProject, MindshareTweet
from giverep.services.twitter_search import (
    build_search_query,
    normalize_search_tweet,
    parse_twitter_date,
    search_tweets,
)


def _raw(tweet_id, created_at="Tue Dec 10 07:00:30 +0000 2024", **extra):
    raw = {
        "id": tweet_id,
        "text": f"tweet {tweet_id}",
        "createdAt": created_at,
        "author": {"userName": "fan", "name": "Fan", "id": 42},
        "viewCount": 100,
        "likeCount": 10,
    }
    raw.update(extra)
    return raw


def _page(tweets, cursor=None, status_code=200):
    res = MagicMock()
    res.status_code = status_code
    res.text = "error body"
    res.json.return_value = {"tweets": tweets, "next_cursor": cursor}
    return res


def test_build_search_query_excludes_handle_author():
    since = datetime(2025, 1, 1)
    assert build_search_query("@walrus", since) == (
        "@walrus min_faves:5 min_replies:3 -filter:replies -filter:nativeretweets -from:walrus since:2025-01-01"
    )
    query = build_search_query("$WAL", since, until=datetime(2025, 1, 8))
    assert "-from:" not in query
    assert query.endswith("since:2025-01-01 until:2025-01-08")


def test_parse_twitter_date():
    assert parse_twitter_date("Tue Dec 10 07:00:30 +0000 2024") == datetime(2024, 12, 10, 7, 0, 30)
    assert parse_twitter_date("2024-12-10T09:00:30+02:00") == datetime(2024, 12, 10, 7, 0, 30)
    assert parse_twitter_date("not a date") is None
    assert parse_twitter_date(None) is None


def test_normalize_search_tweet():
    tweet = normalize_search_tweet(_raw(7, retweeted_tweet={"id": 1}))
    assert tweet["tweet_id"] == "7"
    assert tweet["user_id"] == "42"
    assert tweet["views"] == 100
    assert tweet["replies"] == 0
    assert tweet["is_retweet"] is True


def test_search_follows_cursor_and_filters_replies():
    pages = [
        _page([_raw(1), _raw(2, isReply=True)], cursor="c1"),
        _page([_raw(3)], cursor=None),
    ]
    with patch("giverep.services.twitter_search.requests.get", side_effect=pages) as get:
        tweets = search_tweets("$WAL", datetime(2025, 1, 1))

    assert [t["tweet_id"] for t in tweets] == ["1", "3"]
    assert get.call_args_list[1].kwargs["params"]["cursor"] == "c1"
    assert get.call_args.kwargs["headers"]["x-api-key"] == "test-key"


def test_search_stops_on_repeated_page():
    pages = [_page([_raw(1)], cursor="c1"), _page([_raw(1)], cursor="c2")]
    with patch("giverep.services.twitter_search.requests.get", side_effect=pages) as get:
        tweets = search_tweets("$WAL")
    assert [t["tweet_id"] for t in tweets] == ["1"]
    assert get.call_count == 2


def test_search_respects_max_tweets():
    pages = [_page([_raw(i) for i in range(5)], cursor="c1")]
    with patch("giverep.services.twitter_search.requests.get", side_effect=pages):
        tweets = search_tweets("$WAL", max_tweets=3)
    assert len(tweets) == 3


def test_search_returns_gathered_tweets_on_error():
    pages = [_page([_raw(1)], cursor="c1"), requests.ConnectionError("down")]
    with patch("giverep.services.twitter_search.requests.get", side_effect=pages):
        tweets = search_tweets("$WAL")
    assert [t["tweet_id"] for t in tweets] == ["1"]

    with patch("giverep.services.twitter_search.requests.get", return_value=_page([], status_code=500)):
        assert search_tweets("$WAL") == []


def test_search_returns_gathered_tweets_on_malformed_page():
    bad = MagicMock()
    bad.status_code = 200
    bad.json.return_value = [{"id": 2}]
    pages = [_page([_raw(1)], cursor="c1"), bad]
    with patch("giverep.services.twitter_search.requests.get", side_effect=pages):
        tweets = search_tweets("$WAL")
    assert [t["tweet_id"] for t in tweets] == ["1"]


def test_search_rolls_back_on_unexpected_error():
    db = MagicMock()
    pages = [_page([_raw(1)], cursor="c1")]
    with patch("giverep.services.twitter_search.requests.get", side_effect=pages), patch(
        "giverep.services.twitter_search._existing_tweet_ids", side_effect=RuntimeError("db gone")
    ):
        tweets = search_tweets("$WAL", project_id=1, db=db)
    assert tweets == []
    db.rollback.assert_called_once()


def test_search_stops_when_page_is_already_stored(db):
    project = MindshareProject(name="Stored")
    db.add(project)
    db.commit()
    old = datetime.utcnow() - timedelta(days=5)
    db.add(MindshareTweet(project_id=project.id, tweet_id="1", user_handle="fan", created_at=old))
    db.commit()

    pages = [_page([_raw(1, created_at=old.isoformat())], cursor="c1"), _page([_raw(2)])]
    with patch("giverep.services.twitter_search.requests.get", side_effect=pages) as get:
        tweets = search_tweets("$WAL", project_id=project.id, db=db)

    assert get.call_count == 1
    assert [t["tweet_id"] for t in tweets] == ["1"]
