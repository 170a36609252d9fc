from typing import Annotated, List, Optional

import redis
from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from sqlalchemy import or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import (
    AssetsDep,
    CurrentUser,
    MailerDep,
    SessionDep,
    SettingsDep,
    client_ip,
    ensure_self_or_admin,
)
from app.core.config import Settings
from app.core.errors import (
    CreateFailed,
    DeleteFailed,
    MessageNotSent,
    UpdateFailed,
    ValidationFailed,
)
from app.models.user import User
from app.schemas.auth import MessageResponse, MutationResponse
from app.schemas.user import MessageRequest, UserCreate, UserResponse, UserUpdate
from app.services.assets import ResourceKind
from app.services.credentials import hash_password_async
from app.services.email import send_contact_message
from app.services.redis_client import get_redis, rate_limit
from app.services.resources import delete_with_asset, get_or_404, persist_with_asset, require_upload
from app.services.validation import check_email, check_password, check_range, check_unique


router = APIRouter(prefix="/users", tags=["users"])


def check_user_data(name: str, email: str, settings: Settings) -> None:
    messages = settings.MESSAGES
    if not check_range(name, settings.STRING_MIN, settings.STRING_MAX):
        raise ValidationFailed(messages.CHECK_NAME)
    if not check_email(email):
        raise ValidationFailed(messages.CHECK_EMAIL)


def check_user_password(password: Optional[str], settings: Settings) -> None:
    if not check_password(password, settings.PASSWORD_MIN, settings.PASSWORD_MAX):
        raise ValidationFailed(settings.MESSAGES.CHECK_PASSWORD)


def check_user_unique(db: Session, name: str, email: str, settings: Settings, exclude_id: Optional[int] = None) -> None:
    query = db.query(User).filter(or_(User.name == name, User.email == email))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    for user in query.all():
        if check_unique(user, name=name):
            raise ValidationFailed(settings.MESSAGES.DISPO_NAME)
        if check_unique(user, email=email):
            raise ValidationFailed(settings.MESSAGES.DISPO_EMAIL)


@router.post("", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    image: UploadFile = File(...),
) -> MutationResponse:
    form = UserCreate(name=name.strip(), email=email.strip(), password=password)
    messages = settings.MESSAGES

    check_user_data(form.name, form.email, settings)
    check_user_password(form.password, settings)
    await run_in_threadpool(check_user_unique, db, form.name, form.email, settings)
    require_upload(image, messages.FILE_REQUIRED)

    user = User(
        name=form.name,
        email=form.email,
        hashed_password=await hash_password_async(form.password, settings),
    )
    await persist_with_asset(
        db,
        user,
        assets=assets,
        kind=ResourceKind.USERS,
        upload=image,
        stem=form.name,
        field="image",
        failure=CreateFailed,
        failure_message=messages.USER_NOT_CREATED,
        conflicts={"name": messages.DISPO_NAME, "email": messages.DISPO_EMAIL},
    )
    return MutationResponse(message=messages.USER_CREATED, id=user.id)


@router.post("/message", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
async def send_message(
    payload: MessageRequest,
    request: Request,
    settings: SettingsDep,
    mailer: MailerDep,
    redis_client: Annotated[redis.Redis, Depends(get_redis)],
) -> MessageResponse:
    messages = settings.MESSAGES
    if not check_email(payload.email):
        raise ValidationFailed(messages.CHECK_EMAIL)
    if not check_range(payload.subject, settings.STRING_MIN, settings.STRING_MAX):
        raise ValidationFailed(messages.CHECK_NAME)
    if not check_range(payload.text, settings.STRING_MIN, settings.TEXT_MAX):
        raise ValidationFailed(messages.CHECK_TEXT)

    await run_in_threadpool(
        rate_limit,
        redis_client,
        f"message:ip:{client_ip(request)}",
        settings.MESSAGE_RATE_LIMIT,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    if not await send_contact_message(mailer, payload.email, payload.subject, payload.text):
        raise MessageNotSent(messages.MESSAGE_NOT_SENT)
    return MessageResponse(message=messages.USER_MESSAGE)


@router.get("", response_model=List[UserResponse])
def list_users(db: SessionDep, current_user: CurrentUser) -> List[User]:
    return db.query(User).order_by(User.id).all()


@router.get("/{user_id}", response_model=UserResponse)
def read_user(user_id: int, db: SessionDep, settings: SettingsDep, current_user: CurrentUser) -> User:
    return get_or_404(db, User, user_id, settings.MESSAGES.USER_NOT_FOUND)


@router.put("/{user_id}", response_model=MutationResponse)
async def update_user(
    user_id: int,
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
    name: str = Form(...),
    email: str = Form(...),
    password: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
) -> MutationResponse:
    ensure_self_or_admin(current_user, user_id, settings)
    form = UserUpdate(name=name.strip(), email=email.strip(), password=password or None)
    messages = settings.MESSAGES

    user = await run_in_threadpool(get_or_404, db, User, user_id, messages.USER_NOT_FOUND)
    check_user_data(form.name, form.email, settings)
    await run_in_threadpool(check_user_unique, db, form.name, form.email, settings, user_id)
    if form.password is not None:
        check_user_password(form.password, settings)
        user.hashed_password = await hash_password_async(form.password, settings)

    user.name = form.name
    user.email = form.email
    await persist_with_asset(
        db,
        user,
        assets=assets,
        kind=ResourceKind.USERS,
        upload=image,
        stem=form.name,
        field="image",
        failure=UpdateFailed,
        failure_message=messages.USER_NOT_UPDATED,
        conflicts={"name": messages.DISPO_NAME, "email": messages.DISPO_EMAIL},
    )
    return MutationResponse(message=messages.USER_UPDATED, id=user.id)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
) -> Response:
    ensure_self_or_admin(current_user, user_id, settings)
    user = await run_in_threadpool(get_or_404, db, User, user_id, settings.MESSAGES.USER_NOT_FOUND)
    await delete_with_asset(
        db,
        user,
        assets=assets,
        kind=ResourceKind.USERS,
        field="image",
        failure=DeleteFailed,
        failure_message=settings.MESSAGES.USER_NOT_DELETED,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
