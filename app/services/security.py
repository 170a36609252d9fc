import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Tuple

import bcrypt
from jose import JWTError, jwt

from app.core.config import Settings
from app.core.errors import Unauthorized


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token_with_expiry(minutes: int) -> Tuple[str, str, datetime]:
    token = generate_token()
    token_hash = hash_token(token)
    expires_at = datetime.utcnow() + timedelta(minutes=minutes)
    return token, token_hash, expires_at


def hash_password(password: str, rounds: int = 10) -> str:
    # Truncate password to 72 bytes (bcrypt limit)
    password_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def create_access_token(user_id: int, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> int:
    """Return the user id carried by a valid, unexpired token."""
    credentials_exception = Unauthorized(settings.MESSAGES.AUTH_REQUIRED)
    if not token:
        raise credentials_exception
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        user_id_raw = payload.get("sub")
        if user_id_raw is None:
            raise credentials_exception
        return int(user_id_raw)
    except (JWTError, ValueError, TypeError):
        raise credentials_exception
