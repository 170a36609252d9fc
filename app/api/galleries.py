from typing import List, Optional

from fastapi import APIRouter, Form, Response, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import AssetsDep, CurrentUser, SessionDep, SettingsDep
from app.core.config import Settings
from app.core.errors import CreateFailed, DeleteFailed, UpdateFailed, ValidationFailed
from app.models.gallery import Gallery
from app.schemas.auth import MutationResponse
from app.schemas.gallery import GalleryForm, GalleryResponse
from app.services.assets import ResourceKind
from app.services.resources import commit_or_raise, get_or_404
from app.services.validation import check_range, check_unique


router = APIRouter(prefix="/galleries", tags=["galleries"])


def check_gallery_data(form: GalleryForm, settings: Settings) -> None:
    if not check_range(form.name, settings.STRING_MIN, settings.STRING_MAX):
        raise ValidationFailed(settings.MESSAGES.CHECK_NAME)
    if not check_range(form.author, settings.STRING_MIN, settings.STRING_MAX):
        raise ValidationFailed(settings.MESSAGES.CHECK_NAME)


def check_gallery_unique(db: Session, name: str, settings: Settings, exclude_id: Optional[int] = None) -> None:
    query = db.query(Gallery).filter(Gallery.name == name)
    if exclude_id is not None:
        query = query.filter(Gallery.id != exclude_id)
    for gallery in query.all():
        if check_unique(gallery, name=name):
            raise ValidationFailed(settings.MESSAGES.DISPO_NAME)


def delete_gallery_rows(db: Session, gallery_id: int, settings: Settings) -> List[str]:
    """Delete the gallery and its image rows, returning the stored names they owned."""
    gallery = get_or_404(db, Gallery, gallery_id, settings.MESSAGES.GALLERY_NOT_FOUND)
    stored_names = [image.name for image in gallery.images]
    db.delete(gallery)
    commit_or_raise(db, DeleteFailed, settings.MESSAGES.GALLERY_NOT_DELETED)
    return stored_names


@router.get("", response_model=List[GalleryResponse])
def list_galleries(db: SessionDep) -> List[Gallery]:
    return db.query(Gallery).order_by(Gallery.id).all()


@router.get("/{gallery_id}", response_model=GalleryResponse)
def read_gallery(gallery_id: int, db: SessionDep, settings: SettingsDep) -> Gallery:
    return get_or_404(db, Gallery, gallery_id, settings.MESSAGES.GALLERY_NOT_FOUND)


@router.post("", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
def create_gallery(
    db: SessionDep,
    settings: SettingsDep,
    current_user: CurrentUser,
    name: str = Form(...),
    author: str = Form(...),
) -> MutationResponse:
    form = GalleryForm(name=name.strip(), author=author.strip())
    messages = settings.MESSAGES
    check_gallery_data(form, settings)
    check_gallery_unique(db, form.name, settings)

    gallery = Gallery(name=form.name, author=form.author)
    db.add(gallery)
    commit_or_raise(db, CreateFailed, messages.GALLERY_NOT_CREATED, {"name": messages.DISPO_NAME})
    db.refresh(gallery)
    return MutationResponse(message=messages.GALLERY_CREATED, id=gallery.id)


@router.put("/{gallery_id}", response_model=MutationResponse)
def update_gallery(
    gallery_id: int,
    db: SessionDep,
    settings: SettingsDep,
    current_user: CurrentUser,
    name: str = Form(...),
    author: str = Form(...),
) -> MutationResponse:
    form = GalleryForm(name=name.strip(), author=author.strip())
    messages = settings.MESSAGES
    gallery = get_or_404(db, Gallery, gallery_id, messages.GALLERY_NOT_FOUND)
    check_gallery_data(form, settings)
    check_gallery_unique(db, form.name, settings, exclude_id=gallery_id)

    gallery.name = form.name
    gallery.author = form.author
    db.add(gallery)
    commit_or_raise(db, UpdateFailed, messages.GALLERY_NOT_UPDATED, {"name": messages.DISPO_NAME})
    return MutationResponse(message=messages.GALLERY_UPDATED, id=gallery.id)


@router.delete("/{gallery_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gallery(
    gallery_id: int,
    db: SessionDep,
    settings: SettingsDep,
    assets: AssetsDep,
    current_user: CurrentUser,
) -> Response:
    """Delete the gallery with its images; files go only once the rows are gone."""
    stored_names = await run_in_threadpool(delete_gallery_rows, db, gallery_id, settings)
    for name in stored_names:
        await assets.retire(name, ResourceKind.IMAGES)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
