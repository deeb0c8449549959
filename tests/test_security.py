"""Password hashing, user/admin tokens, the login rate limiter and time helpers."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import JWTError

from quizhub.core.rate_limiter import RateLimiter
from quizhub.core.security import (
    hash_password,
    verify_password,
    create_access_token,
    decode_access_token,
    create_admin_token,
    decode_admin_token,
)
from quizhub.core.timezone import is_valid_timezone, to_naive_utc, parse_datetime, isoformat_utc


def test_password_hash_round_trip() -> None:
    hashed = hash_password("correct-horse", rounds=4)
    assert hashed != "correct-horse"
    assert verify_password("correct-horse", hashed)
    assert not verify_password("wrong-horse", hashed)


def test_verify_password_rejects_missing_or_malformed_hash() -> None:
    assert not verify_password("anything", None)
    assert not verify_password("anything", "not-a-bcrypt-hash")
    assert not verify_password("", hash_password("x" * 8, rounds=4))


def test_passwords_longer_than_72_bytes_compare_on_prefix() -> None:
    base = "a" * 72
    hashed = hash_password(base + "tail-one", rounds=4)
    assert verify_password(base + "tail-two", hashed)


def test_access_token_carries_session_id() -> None:
    payload = decode_access_token(create_access_token(7, 42, "student"))
    assert payload["sub"] == "7"
    assert payload["sid"] == 42
    assert payload["role"] == "student"


def test_admin_and_user_tokens_are_not_interchangeable() -> None:
    admin_token = create_admin_token(1, "root@quizhub.test", timedelta(minutes=30))
    user_token = create_access_token(1, 1, "admin")

    assert decode_admin_token(admin_token)["scope"] == "admin"
    with pytest.raises(JWTError):
        decode_access_token(admin_token)
    with pytest.raises(JWTError):
        decode_admin_token(user_token)


def test_expired_access_token_is_rejected() -> None:
    token = create_access_token(1, 1, "student", expires_minutes=-1)
    with pytest.raises(JWTError):
        decode_access_token(token)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_rate_limiter_blocks_after_limit_and_recovers() -> None:
    clock = FakeClock()
    limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)

    assert all(limiter.hit("ip-1") for _ in range(3))
    assert not limiter.hit("ip-1")
    assert limiter.hit("ip-2")
    assert 0 < limiter.retry_after("ip-1") <= 61

    clock.now += 61
    assert limiter.hit("ip-1")


def test_rate_limiter_reset() -> None:
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
    assert limiter.hit("k")
    assert not limiter.hit("k")
    limiter.reset("k")
    assert limiter.hit("k")
    assert limiter.retry_after("unknown") == 0


def test_timezone_helpers() -> None:
    assert is_valid_timezone("Asia/Kolkata")
    assert not is_valid_timezone("Mars/Olympus")
    assert not is_valid_timezone(None)

    local = datetime(2026, 3, 1, 10, 0)
    assert to_naive_utc(local, "Asia/Kolkata") == datetime(2026, 3, 1, 4, 30)
    assert to_naive_utc(local) == local
    aware = datetime(2026, 3, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2026, 3, 1, 8, 0)

    assert parse_datetime("2026-03-01T08:00:00Z") == datetime(2026, 3, 1, 8, 0)
    assert parse_datetime("") is None
    assert isoformat_utc(datetime(2026, 3, 1, 8, 0)) == "2026-03-01T08:00:00Z"
