"""Pre-flight check for a LastFriends deployment's environment file.

Run it before (re)starting the service to catch configuration that would
otherwise only fail on the first login:

* settings that do not validate (missing Spotify client id, bad URLs);
* an ``AUTH_ENCRYPTION_KEY`` the credential vault cannot use;
* a production deployment whose OAuth redirect or frontend URL is not HTTPS;
* with ``--ping-redis``, a ``REDIS_URL`` that does not answer.

Sessions stored under one key cannot be read under another, so the key is
exercised with an encrypt/decrypt round trip rather than only a length check.

Example usage::

    python -m scripts.check_env --env-file /opt/lastfriends/.env --ping-redis
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError
from redis.exceptions import RedisError

from lastfriends.core.config import AppSettings, _load_env_file
from lastfriends.core.errors import ConfigurationError, VaultError
from lastfriends.services.credential_vault import CredentialVault
from lastfriends.services.session_store import create_redis_client

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_STORE_ERROR = 4
EXIT_RUNTIME_ERROR = 5


def _load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool."
        )
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _check_vault(settings: AppSettings) -> None:
    vault = CredentialVault.from_settings(settings.security)
    sample = "lastfriends-key-check"
    try:
        if vault.decrypt(vault.encrypt(sample)) != sample:
            raise ConfigurationError("AUTH_ENCRYPTION_KEY failed a round trip.")
    except VaultError as exc:
        raise ConfigurationError(f"AUTH_ENCRYPTION_KEY is unusable: {exc}") from exc


def _production_problems(settings: AppSettings) -> list[str]:
    if not settings.is_production:
        return []
    problems = []
    if settings.spotify.redirect_uri.scheme != "https":
        problems.append("SPOTIFY_REDIRECT_URI must use https in production.")
    if settings.frontend_base_url is not None and settings.frontend_base_url.scheme != "https":
        problems.append("FRONTEND_BASE_URL must use https in production.")
    return problems


async def _ping_redis(url: str, timeout: float) -> None:
    client = create_redis_client(url, socket_timeout=timeout)
    try:
        await client.ping()
    finally:
        await client.aclose()


def _report(settings: AppSettings) -> None:
    secret = settings.state_signing_secret()
    client_kind = "confidential" if settings.spotify.client_secret else "public (PKCE only)"
    store_kind = "redis" if settings.redis.url else "memory (single instance only)"
    print(f"environment:        {settings.environment}")
    print(f"spotify client:     {client_kind}")
    print(f"state signed with:  {secret[0] if secret else 'nothing'}")
    print(f"session store:      {store_kind}")
    print(f"cookie domain:      {settings.session.cookie_domain or '<request host>'}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate LastFriends settings before starting the service."
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        type=Path,
        help="Path to the environment file (default: .env in the repo root).",
    )
    parser.add_argument(
        "--ping-redis",
        action="store_true",
        help="Also connect to REDIS_URL, when set, and fail if it does not answer.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = _load_settings(args.env_file)
        _check_vault(settings)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except ConfigurationError as exc:
        print(f"Encryption key check failed: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    problems = _production_problems(settings)
    if problems:
        for problem in problems:
            print(problem, file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    if settings.is_production and not settings.redis.url:
        print(
            "Warning: no REDIS_URL in production; sessions will not be shared "
            "between instances.",
            file=sys.stderr,
        )

    if args.ping_redis and settings.redis.url:
        try:
            asyncio.run(
                _ping_redis(settings.redis.url, settings.redis.socket_timeout_seconds)
            )
        except (RedisError, OSError) as exc:
            print(f"Redis at REDIS_URL did not answer: {exc}", file=sys.stderr)
            return EXIT_STORE_ERROR

    _report(settings)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
