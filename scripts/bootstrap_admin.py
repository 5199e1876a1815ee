#!/usr/bin/env python3
"""Create the initial admin account in the configured database if none exists."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from portal.core.config import get_settings
from portal.services.bootstrap import BootstrapError, ensure_admin
from portal.services.repository import get_repository


async def run(*, email: str | None, password: str | None) -> tuple[dict, bool]:
    settings = get_settings()
    repository = get_repository()
    try:
        await repository.ensure_schema()
        return await ensure_admin(
            repository,
            email=email or settings.admin_email,
            password=password or settings.admin_password,
            bcrypt_rounds=settings.bcrypt_rounds,
        )
    finally:
        await repository.close()
        get_repository.cache_clear()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ensure an admin account exists.")
    parser.add_argument("--email", help="Admin email; defaults to JP_ADMIN_EMAIL")
    parser.add_argument("--password", help="Admin password; defaults to JP_ADMIN_PASSWORD")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    try:
        admin, created = asyncio.run(run(email=args.email, password=args.password))
    except BootstrapError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    state = "created" if created else "exists"
    print(f"admin {state}: {admin['email']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
