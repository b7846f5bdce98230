"""Tests for the deployment pre-flight check script."""

from __future__ import annotations

from pathlib import Path

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from scripts import check_env

MANAGED_ENV_KEYS = [
    "APP_ENV",
    "AUTH_ENCRYPTION_KEY",
    "AUTH_STATE_SECRET",
    "FRONTEND_BASE_URL",
    "REDIS_URL",
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_CLIENT_SECRET",
    "SPOTIFY_REDIRECT_URI",
]

VALID_ENV = {
    "SPOTIFY_CLIENT_ID": "abc",
    "SPOTIFY_REDIRECT_URI": "https://lastfriends.example.com/api/auth/spotify/callback",
    "AUTH_ENCRYPTION_KEY": "ab" * 32,
}


@pytest.fixture
def env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    # The script loads the file into os.environ; restore every key afterwards.
    for key in MANAGED_ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return tmp_path / ".env"


def _write_env(env_path: Path, **values: str) -> None:
    contents = "\n".join(f"{key}={value}" for key, value in values.items())
    env_path.write_text(contents + "\n", encoding="utf-8")


class FakeRedis:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.closed = False

    async def ping(self) -> bool:
        if self.error is not None:
            raise self.error
        return True

    async def aclose(self) -> None:
        self.closed = True


def test_missing_env_file_is_a_runtime_error(tmp_path: Path) -> None:
    exit_code = check_env.main(["--env-file", str(tmp_path / ".missing-env")])
    assert exit_code == check_env.EXIT_RUNTIME_ERROR


def test_valid_public_client_reports_its_setup(
    env_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write_env(env_file, **VALID_ENV)

    assert check_env.main(["--env-file", str(env_file)]) == check_env.EXIT_OK

    out = capsys.readouterr().out
    assert "public (PKCE only)" in out
    assert "state signed with:  AUTH_ENCRYPTION_KEY" in out
    assert "memory" in out
    assert VALID_ENV["AUTH_ENCRYPTION_KEY"] not in out


def test_missing_client_id_fails_validation(env_file: Path) -> None:
    values = dict(VALID_ENV)
    del values["SPOTIFY_CLIENT_ID"]
    _write_env(env_file, **values)

    assert check_env.main(["--env-file", str(env_file)]) == check_env.EXIT_VALIDATION_ERROR


@pytest.mark.parametrize("bad_key", ["", "not-hex", "ab" * 16])
def test_unusable_encryption_key_fails_validation(env_file: Path, bad_key: str) -> None:
    _write_env(env_file, **{**VALID_ENV, "AUTH_ENCRYPTION_KEY": bad_key})

    assert check_env.main(["--env-file", str(env_file)]) == check_env.EXIT_VALIDATION_ERROR


def test_production_requires_https_urls(
    env_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write_env(
        env_file,
        **{
            **VALID_ENV,
            "APP_ENV": "production",
            "SPOTIFY_REDIRECT_URI": "http://lastfriends.example.com/api/auth/spotify/callback",
            "FRONTEND_BASE_URL": "http://lastfriends.example.com/",
        },
    )

    assert check_env.main(["--env-file", str(env_file)]) == check_env.EXIT_VALIDATION_ERROR

    err = capsys.readouterr().err
    assert "SPOTIFY_REDIRECT_URI must use https" in err
    assert "FRONTEND_BASE_URL must use https" in err


def test_production_without_redis_only_warns(
    env_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _write_env(env_file, **{**VALID_ENV, "APP_ENV": "production"})

    assert check_env.main(["--env-file", str(env_file)]) == check_env.EXIT_OK
    assert "no REDIS_URL in production" in capsys.readouterr().err


def test_ping_redis_succeeds_and_closes_client(
    env_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = FakeRedis()
    created = []

    def fake_client(url: str, *, socket_timeout: float) -> FakeRedis:
        created.append(url)
        return fake

    monkeypatch.setattr(check_env, "create_redis_client", fake_client)
    _write_env(env_file, **{**VALID_ENV, "REDIS_URL": "redis://cache:6379/0"})

    exit_code = check_env.main(["--env-file", str(env_file), "--ping-redis"])

    assert exit_code == check_env.EXIT_OK
    assert created == ["redis://cache:6379/0"]
    assert fake.closed


def test_unreachable_redis_is_a_store_error(
    env_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = FakeRedis(error=RedisConnectionError("connection refused"))
    monkeypatch.setattr(
        check_env, "create_redis_client", lambda url, *, socket_timeout: fake
    )
    _write_env(env_file, **{**VALID_ENV, "REDIS_URL": "redis://cache:6379/0"})

    exit_code = check_env.main(["--env-file", str(env_file), "--ping-redis"])

    assert exit_code == check_env.EXIT_STORE_ERROR
    assert fake.closed
