"""Print a fresh value for ``AUTH_ENCRYPTION_KEY``.

Example usage::

    python -m scripts.generate_secret >> .env
"""

from __future__ import annotations

import argparse
import sys

from lastfriends.services.credential_vault import generate_encryption_key


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate a 32-byte hex key for encrypting stored tokens."
    )
    parser.add_argument(
        "--bare",
        action="store_true",
        help="Print only the key instead of an AUTH_ENCRYPTION_KEY= line.",
    )
    args = parser.parse_args(argv)

    key = generate_encryption_key()
    print(key if args.bare else f"AUTH_ENCRYPTION_KEY={key}")
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
