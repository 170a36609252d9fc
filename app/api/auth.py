from typing import Annotated

import redis
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status

from app.api.deps import MailerDep, SessionDep, SettingsDep, client_ip
from app.core.errors import HumanCheckFailed, NotFound
from app.models.user import User
from app.schemas.auth import (
    AvatarResponse,
    ForgotPasswordRequest,
    HumanCheckRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ResetPasswordRequest,
)
from app.services import credentials
from app.services.recaptcha import verify_human_check
from app.services.redis_client import get_redis, rate_limit


router = APIRouter(prefix="/auth", tags=["auth"])

RedisDep = Annotated[redis.Redis, Depends(get_redis)]


@router.get("/{user_id}", response_model=AvatarResponse)
def read_avatar(user_id: int, db: SessionDep, settings: SettingsDep) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFound(settings.MESSAGES.USER_NOT_FOUND)
    return user


@router.post("", response_model=LoginResponse)
def login_user(
    payload: LoginRequest,
    request: Request,
    db: SessionDep,
    settings: SettingsDep,
    redis_client: RedisDep,
) -> LoginResponse:
    rate_limit(
        redis_client,
        f"login:ip:{client_ip(request)}",
        settings.LOGIN_RATE_LIMIT,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    token, user = credentials.login(db, settings, payload.email, payload.password)
    return LoginResponse(userId=user.id, userToken=token)


@router.post("/password", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: SessionDep,
    settings: SettingsDep,
    mailer: MailerDep,
    redis_client: RedisDep,
) -> MessageResponse:
    rate_limit(
        redis_client,
        f"reset:ip:{client_ip(request)}",
        settings.RESET_RATE_LIMIT,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    issued = credentials.request_password_reset(db, settings, payload.email)
    if issued:
        # delivered after the response, so known and unknown emails answer alike
        background_tasks.add_task(credentials.deliver_password_reset, mailer, *issued)
    return MessageResponse(message=settings.MESSAGES.PASSWORD_RESET_SENT)


@router.post("/password/reset", response_model=MessageResponse)
def reset_password(
    payload: ResetPasswordRequest,
    db: SessionDep,
    settings: SettingsDep,
) -> MessageResponse:
    credentials.redeem_password_reset(db, settings, payload.token, payload.password)
    return MessageResponse(message=settings.MESSAGES.PASSWORD_UPDATED)


@router.post("/recaptcha", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
async def check_recaptcha(
    payload: HumanCheckRequest,
    request: Request,
    settings: SettingsDep,
) -> MessageResponse:
    if not await verify_human_check(settings, payload.token, client_ip(request)):
        raise HumanCheckFailed(settings.MESSAGES.RECAPTCHA_FAILED)
    return MessageResponse(message=settings.MESSAGES.RECAPTCHA_OK)
