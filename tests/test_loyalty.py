from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from giverep.auth.twitter_identity import VerificationResult
from giverep.models.loyalty_member import LoyaltyMember, LoyaltyMetrics
from giverep.models.reputation import RepPoint, RepUser
from giverep.services import loyalty as loyalty_service
from giverep.services.loyalty import LoyaltyError, parse_date_range


def _verified(handle):
    return patch(
        "giverep.routers.loyalty.verify_twitter_identity",
        return_value=VerificationResult(True, twitter_handle=handle),
    )


def test_parse_date_range_is_inclusive():
    start, end = parse_date_range("2025-01-01", "2025-01-31")
    assert start == datetime(2025, 1, 1)
    assert end == datetime(2025, 1, 31, 23, 59, 59, 999999)
    assert parse_date_range(None, None) == (None, None)
    with pytest.raises(ValueError):
        parse_date_range("01/01/2025", None)


# ---------- Membership ----------

def test_join_and_leave(client, db, make_project):
    project = make_project()
    url = f"/api/loyalty/projects/{project.id}"

    with _verified("alice"):
        res = client.post(f"{url}/join", json={"twitterHandle": "@Alice"})
        assert res.status_code == 200
        assert res.json()["member"]["twitter_handle"] == "alice"

        res = client.post(f"{url}/join", json={"twitterHandle": "alice"})
        assert res.status_code == 400
        assert res.json() == {"error": "Already a member"}

        assert client.post(f"{url}/leave", json={"twitterHandle": "alice"}).status_code == 200
        res = client.post(f"{url}/leave", json={"twitterHandle": "alice"})
        assert res.status_code == 404

        # rejoining reactivates the same row
        assert client.post(f"{url}/join", json={"twitterHandle": "alice"}).status_code == 200

    assert db.query(LoyaltyMember).count() == 1
    assert client.get("/api/loyalty/user-memberships?handle=ALICE").json()[0]["project_id"] == project.id


def test_join_requires_verified_identity(client, make_project):
    project = make_project()
    with patch(
        "giverep.routers.loyalty.verify_twitter_identity",
        return_value=VerificationResult(False, "Twitter handle mismatch"),
    ):
        res = client.post(f"/api/loyalty/projects/{project.id}/join", json={"twitterHandle": "alice"})
    assert res.status_code == 401
    assert res.json() == {"detail": "Twitter handle mismatch"}


def test_join_enforces_minimum_followers(db, make_project):
    project = make_project(min_follower_count=1000)
    with patch("giverep.services.loyalty.get_user_info", return_value=MagicMock(follower_count=10)):
        with pytest.raises(LoyaltyError) as exc:
            loyalty_service.join_project(db, project, "alice")

    assert exc.value.to_content() == {
        "error": "You need at least 1000 followers to join this program",
        "requiredFollowers": 1000,
        "currentFollowers": 10,
    }

    with patch("giverep.services.loyalty.get_user_info", return_value=MagicMock(follower_count=5000)):
        member = loyalty_service.join_project(db, project, "alice")
    assert member.is_active is True


def test_join_rejects_ended_program(db, make_project):
    project = make_project(end_time=datetime.utcnow() - timedelta(days=1))
    with pytest.raises(LoyaltyError, match="has ended"):
        loyalty_service.join_project(db, project, "alice")


# ---------- Leaderboard ----------

def test_leaderboard_ranks_active_members_by_views(client, make_project, add_member, add_tweet):
    project = make_project()
    add_member(project, "alice")
    add_member(project, "Bob")
    add_member(project, "carol", is_active=False)
    add_tweet(project, "alice", views=500, likes=5)
    add_tweet(project, "bob", views=700)
    add_tweet(project, "BOB", views=300)
    add_tweet(project, "carol", views=9000)
    add_tweet(project, "dave", views=9000)

    body = client.get(f"/api/loyalty/projects/{project.id}/leaderboard").json()

    assert [(e["rank"], e["twitter_handle"], e["views"]) for e in body["leaderboard"]] == [
        (1, "Bob", 1000),
        (2, "alice", 500),
    ]
    assert body["leaderboard"][0]["tweet_count"] == 2
    assert body["pagination"]["total"] == 2

    position = client.get(f"/api/loyalty/projects/{project.id}/user-position?handle=@ALICE").json()
    assert position["position"] == 2
    missing = client.get(f"/api/loyalty/projects/{project.id}/user-position?handle=zed").json()
    assert missing == {"position": None, "entry": None}


def test_leaderboard_filters_by_date_and_hashtag(client, make_project, add_member, add_tweet):
    project = make_project(hashtags=["walrus"])
    add_member(project, "alice")
    add_tweet(project, "alice", views=100, content="gm #Walrus", created_at=datetime(2025, 1, 10, 12))
    add_tweet(project, "alice", views=50, content="gm", created_at=datetime(2025, 1, 10, 12))
    add_tweet(project, "alice", views=20, content="#walrus", created_at=datetime(2025, 2, 10))

    res = client.get(
        f"/api/loyalty/projects/{project.id}/leaderboard?startDate=2025-01-10&endDate=2025-01-10"
    )
    assert res.json()["leaderboard"][0]["views"] == 100

    res = client.get(f"/api/loyalty/projects/{project.id}/leaderboard?startDate=2025/01/10")
    assert res.status_code == 400


def test_user_tweets_for_loyalty_project(client, make_project, add_tweet):
    project = make_project()
    add_tweet(project, "alice", views=10, content="first")
    add_tweet(project, "alice", views=90, content="second")
    add_tweet(project, "bob", views=1000)

    res = client.get(f"/api/mindshare/user-tweets/Alice?projectId={project.id}")
    assert [t["text"] for t in res.json()] == ["second", "first"]
    assert res.json()[0]["tweet_url"].startswith("https://x.com/alice/status/")

    assert client.get("/api/mindshare/user-tweets/alice").status_code == 400
    assert client.get("/api/mindshare/user-tweets/alice?projectId=999").status_code == 404


# ---------- Metrics ----------

def test_calculate_metrics_awards_reputation_and_spend(db, make_project, add_member, add_tweet):
    project = make_project(is_incentivized=True, price_per_view=Decimal("0.01"))
    add_member(project, "alice")
    add_tweet(project, "alice", views=250)

    result = loyalty_service.calculate_project_metrics(db, project)
    assert result == {"membersProcessed": 1, "viewGrowth": 250, "incentiveSpent": 2.5, "reputationAwarded": 2}

    add_tweet(project, "alice", views=100)
    result = loyalty_service.calculate_project_metrics(db, project)
    assert result["viewGrowth"] == 100
    assert result["reputationAwarded"] == 1

    db.refresh(project)
    assert float(project.total_incentive_spent) == pytest.approx(3.5)
    assert db.query(RepUser).filter_by(twitter_handle="alice").one().total_reputation == 3
    assert db.query(RepPoint).filter_by(from_loyalty_program_id=project.id).count() == 2
    assert db.query(LoyaltyMetrics).one().views == 350


def test_calculate_metrics_without_growth_spends_nothing(db, make_project, add_member):
    project = make_project(is_incentivized=True)
    add_member(project, "alice")
    result = loyalty_service.calculate_project_metrics(db, project)
    assert result["incentiveSpent"] == 0.0
    assert result["reputationAwarded"] == 0


def test_deactivate_expired(client, db, make_project, admin_headers):
    expired = make_project(end_time=datetime.utcnow() - timedelta(hours=1))
    running = make_project(name="Running", end_time=datetime.utcnow() + timedelta(days=3))

    res = client.post("/api/loyalty/deactivate-expired", headers=admin_headers)
    assert res.json() == {"success": True, "deactivated": 1}

    db.refresh(expired)
    db.refresh(running)
    assert expired.is_active is False
    assert running.is_active is True


def test_project_listing_and_manager_update(client, db, make_project, admin_headers):
    res = client.post(
        "/api/loyalty/projects",
        data={"name": "Walrus", "twitter_handle": "@walrus", "hashtags": "walrus, wal", "password": "pw"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    project = res.json()["project"]
    assert project["twitter_handle"] == "walrus"
    assert project["hashtags"] == ["walrus", "wal"]
    assert project["has_password"] is True

    res = client.put(
        f"/api/loyalty/projects/{project['id']}",
        data={"description": "updated"},
        headers={"X-Loyalty-Password": "pw"},
    )
    assert res.status_code == 200
    assert res.json()["description"] == "updated"

    listed = client.get("/api/loyalty/projects").json()
    assert [p["name"] for p in listed] == ["Walrus"]
    assert listed[0]["member_count"] == 0
