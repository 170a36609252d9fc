from typing import List, Optional

from fastapi import APIRouter, File, Form, Response, UploadFile, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import AssetsDep, CurrentUser, SessionDep, SettingsDep
from app.core.config import Settings
from app.core.errors import CreateFailed, DeleteFailed, UpdateFailed, ValidationFailed
from app.models.gallery import Gallery
from app.models.image import Image
from app.schemas.auth import MutationResponse
from app.schemas.image import ImageForm, ImageResponse
from app.services.assets import ResourceKind
from app.services.resources import delete_with_asset, get_or_404, persist_with_asset, require_upload
from app.services.validation import check_range, check_unique


router = APIRouter(prefix="/images", tags=["images"])


def check_image_data(form: ImageForm, settings: Settings) -> None:
    messages = settings.MESSAGES
    if not check_range(form.url, settings.STRING_MIN, settings.STRING_MAX):
        raise ValidationFailed(messages.CHECK_URL)
    if not check_range(form.description, settings.STRING_MIN, settings.TEXT_MAX):
        raise ValidationFailed(messages.CHECK_TEXT)


def check_image_unique(db: Session, url: str, settings: Settings, exclude_id: Optional[int] = None) -> None:
    # url uniqueness is global, not per gallery
    query = db.query(Image).filter(Image.url == url)
    if exclude_id is not None:
        query = query.filter(Image.id != exclude_id)
    for image in query.all():
        if check_unique(image, url=url):
            raise ValidationFailed(settings.MESSAGES.DISPO_URL)


@router.get("", response_model=List[ImageResponse])
def list_images(db: SessionDep) -> List[Image]:
    return db.query(Image).order_by(Image.id).all()


@router.get("/{gallery_id}", response_model=List[ImageResponse])
def list_gallery_images(gallery_id: int, db: SessionDep, settings: SettingsDep) -> List[Image]:
    gallery = get_or_404(db, Gallery, gallery_id, settings.MESSAGES.GALLERY_NOT_FOUND)
    return gallery.images


@router.post("", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
async def create_image(
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
    url: str = Form(...),
    description: str = Form(...),
    gallery: int = Form(...),
    image: UploadFile = File(...),
) -> MutationResponse:
    form = ImageForm(url=url.strip(), description=description.strip(), gallery=gallery)
    messages = settings.MESSAGES

    check_image_data(form, settings)
    await run_in_threadpool(get_or_404, db, Gallery, form.gallery, messages.GALLERY_NOT_FOUND)
    await run_in_threadpool(check_image_unique, db, form.url, settings)
    require_upload(image, messages.FILE_REQUIRED)

    record = Image(url=form.url, description=form.description, gallery_id=form.gallery)
    await persist_with_asset(
        db,
        record,
        assets=assets,
        kind=ResourceKind.IMAGES,
        upload=image,
        stem=form.url,
        field="name",
        thumbnail_field="thumbnail",
        failure=CreateFailed,
        failure_message=messages.IMAGE_NOT_CREATED,
        conflicts={"url": messages.DISPO_URL},
    )
    return MutationResponse(message=messages.IMAGE_CREATED, id=record.id)


@router.put("/{image_id}", response_model=MutationResponse)
async def update_image(
    image_id: int,
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
    url: str = Form(...),
    description: str = Form(...),
    gallery: int = Form(...),
    image: Optional[UploadFile] = File(None),
) -> MutationResponse:
    form = ImageForm(url=url.strip(), description=description.strip(), gallery=gallery)
    messages = settings.MESSAGES

    record = await run_in_threadpool(get_or_404, db, Image, image_id, messages.IMAGE_NOT_FOUND)
    check_image_data(form, settings)
    await run_in_threadpool(get_or_404, db, Gallery, form.gallery, messages.GALLERY_NOT_FOUND)
    await run_in_threadpool(check_image_unique, db, form.url, settings, image_id)

    record.url = form.url
    record.description = form.description
    record.gallery_id = form.gallery
    await persist_with_asset(
        db,
        record,
        assets=assets,
        kind=ResourceKind.IMAGES,
        upload=image,
        stem=form.url,
        field="name",
        thumbnail_field="thumbnail",
        failure=UpdateFailed,
        failure_message=messages.IMAGE_NOT_UPDATED,
        conflicts={"url": messages.DISPO_URL},
    )
    return MutationResponse(message=messages.IMAGE_UPDATED, id=record.id)


@router.delete("/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    image_id: int,
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
) -> Response:
    record = await run_in_threadpool(get_or_404, db, Image, image_id, settings.MESSAGES.IMAGE_NOT_FOUND)
    await delete_with_asset(
        db,
        record,
        assets=assets,
        kind=ResourceKind.IMAGES,
        field="name",
        failure=DeleteFailed,
        failure_message=settings.MESSAGES.IMAGE_NOT_DELETED,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
