"""Tests for the engagement toggle endpoints."""

from fastapi import status

from feedline.models import Community, Post, PostRepost, UserProfile


def test_like_toggles_on_and_off(client, seed, auth_headers) -> None:
    seed.post("p1", likes_count=5)

    first = client.post("/api/v1/likes/p1", headers=auth_headers("alice"))
    second = client.post("/api/v1/likes/p1", headers=auth_headers("alice"))

    assert first.status_code == status.HTTP_200_OK
    assert first.json() == {
        "kind": "like",
        "target_id": "p1",
        "active": True,
        "vote": None,
        "changed": True,
    }
    assert second.json()["active"] is False
    assert seed.get(Post, "p1").likes_count == 5


def test_toggle_requires_a_token(client, seed) -> None:
    seed.post("p1")

    response = client.post("/api/v1/likes/p1")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.headers["www-authenticate"] == "Bearer"


def test_invalid_token_is_rejected(client, seed) -> None:
    seed.post("p1")

    response = client.post("/api/v1/likes/p1", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert seed.get(Post, "p1").likes_count == 0


def test_like_on_missing_post(client, auth_headers) -> None:
    response = client.post("/api/v1/likes/ghost", headers=auth_headers("alice"))

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["retryable"] is False


def test_self_follow_is_a_conflict(client, seed, auth_headers) -> None:
    seed.user("alice")

    response = client.post("/api/v1/follows/alice", headers=auth_headers("alice"))

    assert response.status_code == status.HTTP_409_CONFLICT
    assert seed.get(UserProfile, "alice").following_count == 0


def test_follow(client, seed, auth_headers) -> None:
    seed.user("alice")
    seed.user("bob")

    response = client.post("/api/v1/follows/bob", headers=auth_headers("alice"))

    assert response.json()["active"] is True
    assert seed.get(UserProfile, "bob").followers_count == 1


def test_votes_and_stats(client, seed, auth_headers) -> None:
    seed.post("p1")
    client.post("/api/v1/votes/p1", json={"vote_type": "agree"}, headers=auth_headers("alice"))
    client.post("/api/v1/votes/p1", json={"vote_type": "agree"}, headers=auth_headers("bob"))
    switched = client.post(
        "/api/v1/votes/p1", json={"vote_type": "disagree"}, headers=auth_headers("bob")
    )

    assert switched.json()["vote"] == "disagree"
    stats = client.get("/api/v1/votes/p1/stats", headers=auth_headers("bob")).json()
    assert stats == {
        "agreement_count": 1,
        "disagreement_count": 1,
        "user_vote": "disagree",
        "total_votes": 2,
        "agreement_percentage": 50,
    }
    anonymous = client.get("/api/v1/votes/p1/stats").json()
    assert anonymous["user_vote"] is None


def test_vote_with_bad_type(client, seed, auth_headers) -> None:
    seed.post("p1")

    response = client.post("/api/v1/votes/p1", json={"vote_type": "meh"}, headers=auth_headers("alice"))

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_comment_vote(client, seed, auth_headers) -> None:
    seed.post("p1")
    seed.comment("c1", "p1")

    response = client.post(
        "/api/v1/comment-votes/c1", json={"vote_type": "disagree"}, headers=auth_headers("alice")
    )

    assert response.json()["kind"] == "comment_vote"
    assert response.json()["vote"] == "disagree"


def test_repost_with_comment(client, seed, auth_headers) -> None:
    seed.post("p1")

    response = client.post(
        "/api/v1/reposts/p1", json={"comment": "so true"}, headers=auth_headers("alice")
    )

    assert response.json()["active"] is True
    repost = seed.get(Post, seed.get(PostRepost, "alice:p1").repost_post_id)
    assert repost.repost_comment == "so true"
    assert seed.get(Post, "p1").reposts_count == 1


def test_repost_without_body(client, seed, auth_headers) -> None:
    seed.post("p1")

    response = client.post("/api/v1/reposts/p1", headers=auth_headers("alice"))

    assert response.status_code == status.HTTP_200_OK
    assert seed.get(Post, "p1").reposts_count == 1


def test_membership(client, seed, auth_headers) -> None:
    seed.community("c1")

    response = client.post("/api/v1/communities/c1/membership", headers=auth_headers("alice"))

    assert response.json()["active"] is True
    assert seed.get(Community, "c1").member_count == 1
