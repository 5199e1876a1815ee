from __future__ import annotations

import logging
from typing import Any

from starlette.concurrency import run_in_threadpool

from portal.core.config import Settings
from portal.core.errors import AuthenticationError, ConflictError
from portal.core.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


async def register_user(
    repository: Any,
    settings: Settings,
    *,
    email: str,
    password: str,
    role: str,
    first_name: str | None = None,
    last_name: str | None = None,
    company: str | None = None,
) -> tuple[dict[str, Any], str]:
    if await repository.get_user_by_email(email):
        raise ConflictError("user already exists")

    password_hash = await run_in_threadpool(hash_password, password, rounds=settings.bcrypt_rounds)
    # The unique email index decides concurrent registrations; its conflict surfaces unchanged.
    user = await repository.create_user(
        email=email,
        password_hash=password_hash,
        role=role,
        first_name=first_name,
        last_name=last_name,
        company=company,
    )
    logger.info("user registered user_id=%s role=%s", user["id"], user["role"])
    return user, create_access_token(user["id"], settings)


async def authenticate_user(
    repository: Any,
    settings: Settings,
    *,
    email: str,
    password: str,
) -> tuple[dict[str, Any], str]:
    user = await repository.get_user_by_email(email)
    if not user:
        raise AuthenticationError("invalid credentials")

    if not await run_in_threadpool(verify_password, password, user["password_hash"]):
        raise AuthenticationError("invalid credentials")

    if user["is_banned"]:
        raise AuthenticationError("user is banned")

    return user, create_access_token(user["id"], settings)
