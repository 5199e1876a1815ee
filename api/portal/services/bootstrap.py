from __future__ import annotations

import logging
from typing import Any

from email_validator import EmailNotValidError, validate_email
from starlette.concurrency import run_in_threadpool

from portal.core.security import MAX_PASSWORD_BYTES, hash_password, password_fits_bcrypt
from portal.services.repository import RepositoryConflictError

logger = logging.getLogger(__name__)

MIN_ADMIN_PASSWORD_LENGTH = 8


class BootstrapError(RuntimeError):
    """Raised when no admin exists and one cannot be created."""


async def ensure_admin(
    repository: Any,
    *,
    email: str | None,
    password: str | None,
    bcrypt_rounds: int = 12,
) -> tuple[dict[str, Any], bool]:
    """Guarantee an admin account exists; returns (admin, created).

    Safe to run from several replicas at once: the unique email index and
    the single-admin index let exactly one insert win, and the others
    re-read the winner.
    """
    existing = await repository.get_any_admin()
    if existing:
        logger.info("admin bootstrap skipped; admin exists email=%s", existing["email"])
        return existing, False

    if not email or not password:
        raise BootstrapError("no admin user exists; set JP_ADMIN_EMAIL and JP_ADMIN_PASSWORD")
    try:
        email = validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise BootstrapError(f"JP_ADMIN_EMAIL is not a valid email address: {exc}") from exc
    if len(password) < MIN_ADMIN_PASSWORD_LENGTH:
        raise BootstrapError(f"JP_ADMIN_PASSWORD must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters long")
    if not password_fits_bcrypt(password):
        raise BootstrapError(f"JP_ADMIN_PASSWORD must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")

    password_hash = await run_in_threadpool(hash_password, password, rounds=bcrypt_rounds)
    try:
        admin = await repository.create_user(email=email, password_hash=password_hash, role="admin")
    except RepositoryConflictError as exc:
        winner = await repository.get_any_admin()
        if winner:
            logger.info("admin bootstrap raced with another process; admin exists email=%s", winner["email"])
            return winner, False
        raise BootstrapError(f"cannot create admin: {email} is already registered with another role") from exc

    logger.warning("default admin created email=%s; change its password after first login", admin["email"])
    return admin, True
