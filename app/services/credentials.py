"""
Credential operations: login, password-reset issuance and redemption.

These run synchronously; the routes calling them are plain `def` handlers,
so FastAPI keeps bcrypt rounds and store queries off the event loop.
Reset tokens are stored as sha256 digests only; the plaintext exists in the
outgoing email and nowhere else.
"""
from datetime import datetime
from functools import lru_cache
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, logger
from app.core.errors import (
    InvalidCredentials,
    TokenAlreadyUsed,
    TokenExpired,
    TokenInvalid,
    ValidationFailed,
)
from app.models.password_reset import PasswordResetToken
from app.models.user import User
from app.services.email import Mailer, send_reset_email
from app.services.security import (
    create_access_token,
    generate_token_with_expiry,
    hash_password,
    hash_token,
    verify_password,
)
from app.services.validation import check_password


async def hash_password_async(password: str, settings: Settings) -> str:
    return await run_in_threadpool(hash_password, password, settings.BCRYPT_ROUNDS)


@lru_cache
def _dummy_hash(rounds: int) -> str:
    # checked against when the email is unknown, so both failures cost one bcrypt round
    return hash_password("unknown-account-placeholder", rounds)


def login(db: Session, settings: Settings, email: str, password: str) -> Tuple[str, User]:
    """Return (access token, user). Unknown email and wrong password are indistinguishable."""
    user = db.query(User).filter(User.email == email.strip()).first()
    hashed = user.hashed_password if user else _dummy_hash(settings.BCRYPT_ROUNDS)
    password_ok = verify_password(password, hashed)
    if not user or not password_ok:
        raise InvalidCredentials(settings.MESSAGES.AUTH_FAILED)
    return create_access_token(user.id, settings), user


def request_password_reset(db: Session, settings: Settings, email: str) -> Optional[Tuple[str, str]]:
    """
    Issue a single-use reset token for `email`.

    Returns (address, plaintext token) for the caller to mail, or None when no
    account has that address. Nothing is sent from here, so the caller can
    answer both cases the same way before delivery starts.
    """
    user = db.query(User).filter(User.email == email.strip()).first()
    if not user:
        logger.info("[auth] password reset requested for unknown email")
        return None

    now = datetime.utcnow()
    # a new request supersedes every outstanding one
    db.execute(
        update(PasswordResetToken)
        .where(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used_at.is_(None),
            PasswordResetToken.expires_at > now,
        )
        .values(expires_at=now)
    )
    token, token_hash, expires_at = generate_token_with_expiry(settings.RESET_TOKEN_TTL_MINUTES)
    db.add(PasswordResetToken(user_id=user.id, token_hash=token_hash, expires_at=expires_at))
    db.commit()
    return user.email, token


async def deliver_password_reset(mailer: Mailer, email: str, token: str) -> None:
    if not await send_reset_email(mailer, email, token):
        logger.error("[auth] reset email was not delivered")


def redeem_password_reset(db: Session, settings: Settings, token: str, new_password: str) -> User:
    messages = settings.MESSAGES
    reset = (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.token_hash == hash_token(token or ""))
        .first()
    )
    if reset is None:
        raise TokenInvalid(messages.TOKEN_INVALID)
    if reset.used_at is not None:
        raise TokenAlreadyUsed(messages.TOKEN_USED)
    now = datetime.utcnow()
    if reset.is_expired(now):
        raise TokenExpired(messages.TOKEN_EXPIRED)
    if not check_password(new_password, settings.PASSWORD_MIN, settings.PASSWORD_MAX):
        raise ValidationFailed(messages.CHECK_PASSWORD)

    hashed = hash_password(new_password, settings.BCRYPT_ROUNDS)

    # conditional consume: of two concurrent redemptions only one matches used_at IS NULL
    result = db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.id == reset.id, PasswordResetToken.used_at.is_(None))
        .values(used_at=now)
    )
    if result.rowcount != 1:
        db.rollback()
        raise TokenAlreadyUsed(messages.TOKEN_USED)

    user = db.get(User, reset.user_id)
    user.hashed_password = hashed
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"[auth] password reset redeemed for user {user.id}")
    return user
