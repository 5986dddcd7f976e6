from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from giverep.auth.twitter_identity import VerificationResult
from giverep.models.reputation import RepPoint, RepUser
from giverep.services.reputation import (
    ReputationError,
    award_reputation_for_views,
    get_or_create_rep_user,
    give_reputation,
)


def test_give_reputation_updates_both_users(db):
    result = give_reputation(db, "@Alice", "Bob", "111", "https://x.com/bob/status/111")

    assert result == {
        "success": True,
        "points": 1,
        "influencerBonus": False,
        "remainingQuota": 2,
        "receiverTotal": 1,
    }
    point = db.query(RepPoint).one()
    assert (point.from_handle, point.to_handle) == ("alice", "bob")


def test_give_reputation_rejects_self_and_duplicates(db):
    with pytest.raises(ReputationError) as exc:
        give_reputation(db, "alice", "@ALICE", "1")
    assert exc.value.status_code == 400

    give_reputation(db, "alice", "bob", "1")
    with pytest.raises(ReputationError) as exc:
        give_reputation(db, "alice", "bob", "1")
    assert exc.value.status_code == 409


def test_daily_quota_and_reset(db):
    for tweet_id in ("1", "2", "3"):
        give_reputation(db, "alice", "bob", tweet_id)

    with pytest.raises(ReputationError) as exc:
        give_reputation(db, "alice", "bob", "4")
    assert exc.value.to_content() == {"error": "Daily reputation quota exhausted", "dailyQuota": 3}

    giver = db.query(RepUser).filter_by(twitter_handle="alice").one()
    giver.quota_date = datetime.utcnow() - timedelta(days=1)
    db.commit()

    assert give_reputation(db, "alice", "bob", "4")["remainingQuota"] == 2


def test_influencer_multiplier(db):
    giver = get_or_create_rep_user(db, "whale")
    giver.is_influencer = True
    giver.multiplier = 5
    db.commit()

    result = give_reputation(db, "whale", "bob", "1")
    assert result["points"] == 5
    assert result["influencerBonus"] is True


def test_award_reputation_for_views_counts_hundreds_crossed(db):
    assert award_reputation_for_views(db, "alice", 99, project_id=1) == 0
    assert award_reputation_for_views(db, "alice", 250, project_id=1) == 2
    assert award_reputation_for_views(db, "alice", 310, project_id=1, previous_views=250) == 1
    db.commit()
    assert db.query(RepUser).filter_by(twitter_handle="alice").one().total_reputation == 3


def test_leaderboard_and_user_endpoints(client, db):
    give_reputation(db, "alice", "bob", "1")
    give_reputation(db, "carol", "bob", "2")
    give_reputation(db, "bob", "carol", "3")

    board = client.get("/api/reputation/leaderboard").json()
    assert [(u["rank"], u["twitter_handle"], u["total_reputation"]) for u in board] == [
        (1, "bob", 2),
        (2, "carol", 1),
    ]

    user = client.get("/api/reputation/users/@Carol").json()
    assert user["rank"] == 2
    assert user["recent_points"][0]["from_handle"] == "bob"
    assert client.get("/api/reputation/users/nobody").status_code == 404


def test_give_endpoint(client):
    body = {"fromHandle": "alice", "toHandle": "bob", "tweetId": "42"}

    with patch(
        "giverep.routers.reputation.verify_twitter_identity",
        return_value=VerificationResult(False, "Twitter authentication required. Please login with Twitter first."),
    ):
        res = client.post("/api/reputation/give", json=body)
    assert res.status_code == 401

    verified = VerificationResult(True, twitter_handle="alice")
    with patch("giverep.routers.reputation.verify_twitter_identity", return_value=verified):
        assert client.post("/api/reputation/give", json=body).json()["receiverTotal"] == 1
        res = client.post("/api/reputation/give", json=body)
    assert res.status_code == 409
    assert res.json() == {"error": "Reputation already given for this tweet"}
