from datetime import timedelta

import pytest

from firmwatch.core.auth import TokenError, create_access_token, decode_access_token


def test_create_and_decode_token_roundtrip() -> None:
    token = create_access_token("user-123", roles=["manager"], username="alice")

    payload = decode_access_token(token)

    assert payload["sub"] == "user-123"
    assert payload["roles"] == ["manager"]
    assert payload["username"] == "alice"


def test_expired_token_is_rejected() -> None:
    token = create_access_token("user-123", roles=["user"], expires_delta=timedelta(seconds=-5))

    with pytest.raises(TokenError, match="expired"):
        decode_access_token(token)


def test_unsupported_role_cannot_be_issued() -> None:
    with pytest.raises(TokenError):
        create_access_token("user-123", roles=["student"])


def test_garbage_token_is_rejected() -> None:
    with pytest.raises(TokenError):
        decode_access_token("not-a-jwt")
