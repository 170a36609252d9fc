from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.errors import Forbidden, Unauthorized
from app.models.user import User
from app.services.assets import AssetManager
from app.services.email import Mailer
from app.services.security import decode_access_token


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth", auto_error=False)


@lru_cache
def get_asset_manager() -> AssetManager:
    return AssetManager(get_settings())


@lru_cache
def get_mailer() -> Mailer:
    return Mailer(get_settings())


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> User:
    user_id = decode_access_token(token, settings)
    user = db.get(User, user_id)
    if user is None:
        raise Unauthorized(settings.MESSAGES.AUTH_REQUIRED)
    return user


def ensure_self_or_admin(current_user: User, user_id: int, settings: Settings) -> None:
    if current_user.id != user_id and not current_user.is_admin:
        raise Forbidden(settings.MESSAGES.USER_FORBIDDEN)


SessionDep = Annotated[Session, Depends(get_db)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
AssetsDep = Annotated[AssetManager, Depends(get_asset_manager)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]
CurrentUser = Annotated[User, Depends(get_current_user)]
