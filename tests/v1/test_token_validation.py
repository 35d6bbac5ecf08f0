# tests/v1/test_token_validation.py
"""Tests for bearer token handling on engagement endpoints."""

import time

import pytest
from fastapi import status
from jose import jwt

from feedline.core.errors import UnauthenticatedError
from feedline.core.security import create_access_token, decode_actor_id
from feedline.core.settings import settings
from feedline.models import Post


class TestTokenValidation:
    """Requests that must be rejected before any write happens."""

    @pytest.mark.parametrize(
        "header",
        ["InvalidToken123", "Bearer ", "Bearer not.a.valid.jwt"],
    )
    def test_malformed_authorization(self, client, seed, header):
        seed.post("p1")

        response = client.post("/api/v1/likes/p1", headers={"Authorization": header})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert seed.get(Post, "p1").likes_count == 0

    def test_wrong_secret(self, client, seed):
        seed.post("p1")
        token = jwt.encode({"sub": "alice"}, "wrong_secret_key", algorithm=settings.jwt_algorithm)

        response = client.post("/api/v1/likes/p1", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_expired_token(self, client, seed):
        seed.post("p1")
        token = jwt.encode(
            {"sub": "alice", "exp": int(time.time()) - 60},
            settings.secret_key,
            algorithm=settings.jwt_algorithm,
        )

        response = client.post("/api/v1/likes/p1", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestTokenHelpers:
    def test_round_trip_subject(self):
        assert decode_actor_id(create_access_token("alice")) == "alice"

    def test_token_without_subject(self):
        token = jwt.encode({"role": "x"}, settings.secret_key, algorithm=settings.jwt_algorithm)

        with pytest.raises(UnauthenticatedError):
            decode_actor_id(token)
