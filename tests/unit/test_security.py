"""Unit tests for owner token handling."""
from datetime import timedelta
from uuid import uuid4

import pytest
from jose import JWTError, jwt

from batchflow.config import settings
from batchflow.core.security import create_access_token, decode_token, get_owner_id_from_token


def test_token_round_trips_owner_id():
    owner_id = uuid4()
    token = create_access_token(owner_id)

    assert get_owner_id_from_token(token) == owner_id
    assert decode_token(token)["type"] == "access"


def test_expired_token_rejected():
    token = create_access_token(uuid4(), expires_delta=timedelta(seconds=-1))

    with pytest.raises(JWTError):
        get_owner_id_from_token(token)


def test_wrong_secret_rejected():
    token = jwt.encode({"sub": str(uuid4())}, "another-secret", algorithm=settings.jwt_algorithm)

    with pytest.raises(JWTError):
        decode_token(token)


def test_missing_subject_rejected():
    token = jwt.encode({"type": "access"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    with pytest.raises(JWTError):
        get_owner_id_from_token(token)


def test_non_uuid_subject_rejected():
    token = jwt.encode({"sub": "not-a-uuid"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    with pytest.raises(ValueError):
        get_owner_id_from_token(token)
