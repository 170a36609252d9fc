"""Tests for the row/file ordering in persist_with_asset and delete_with_asset."""

import asyncio
import os

import pytest
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.database import SessionLocal
from app.core.errors import CreateFailed, DeleteFailed, NotFound, UpdateFailed, ValidationFailed
from app.models.gallery import Gallery
from app.models.image import Image
from app.models.user import User
from app.services.assets import ResourceKind
from app.services.resources import (
    conflict_message,
    delete_with_asset,
    get_or_404,
    persist_with_asset,
    require_upload,
)


def _save_user(db, assets, user, upload, failure=CreateFailed):
    return asyncio.run(
        persist_with_asset(
            db,
            user,
            assets=assets,
            kind=ResourceKind.USERS,
            upload=upload,
            stem=user.name,
            field="image",
            failure=failure,
            failure_message="not saved",
            conflicts={"name": "name taken", "email": "email taken"},
        )
    )


def _stored_files(assets, kind):
    directory = assets.directory(kind)
    return sorted(os.listdir(directory)) if directory.exists() else []


@pytest.fixture
def ann(db, assets, make_upload):
    user = User(name="Ann", email="ann@x.com", hashed_password="x")
    _save_user(db, assets, user, make_upload())
    return user


def test_create_stores_file_and_row(ann, assets):
    assert ann.id is not None
    assert assets.exists(ann.image, ResourceKind.USERS)
    assert _stored_files(assets, ResourceKind.USERS) == [ann.image]


def test_update_without_file_keeps_stored_name(ann, db, assets):
    original = ann.image
    ann.email = "ann@y.com"
    _save_user(db, assets, ann, None, failure=UpdateFailed)

    assert ann.image == original
    assert assets.exists(original, ResourceKind.USERS)


def test_update_with_file_replaces_old_one(ann, db, assets, make_upload, make_png):
    original = ann.image
    _save_user(db, assets, ann, make_upload(make_png(color=(0, 255, 0))), failure=UpdateFailed)

    assert ann.image != original
    assert not assets.exists(original, ResourceKind.USERS)
    assert _stored_files(assets, ResourceKind.USERS) == [ann.image]


def test_failed_commit_keeps_row_and_old_file(ann, db, assets, make_upload, monkeypatch):
    user_id, original = ann.id, ann.image

    def broken_commit():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db, "commit", broken_commit)
    ann.name = "Annabel"
    with pytest.raises(UpdateFailed):
        _save_user(db, assets, ann, make_upload(), failure=UpdateFailed)
    monkeypatch.undo()

    fresh = SessionLocal()
    try:
        row = fresh.get(User, user_id)
        assert row.name == "Ann"
        assert row.image == original
    finally:
        fresh.close()
    # the new file was dropped, the old one is untouched
    assert _stored_files(assets, ResourceKind.USERS) == [original]


def test_unique_conflict_maps_to_validation_and_drops_new_file(ann, db, assets, make_upload):
    twin = User(name="Ann", email="other@x.com", hashed_password="x")
    with pytest.raises(ValidationFailed) as exc:
        _save_user(db, assets, twin, make_upload())

    assert exc.value.detail == "name taken"
    assert _stored_files(assets, ResourceKind.USERS) == [ann.image]


def test_conflict_message_follows_the_violated_column(ann, db, assets, make_upload):
    twin = User(name="Annie", email="ann@x.com", hashed_password="x")
    with pytest.raises(ValidationFailed) as exc:
        _save_user(db, assets, twin, make_upload())

    assert exc.value.detail == "email taken"
    assert _stored_files(assets, ResourceKind.USERS) == [ann.image]


@pytest.mark.parametrize(
    "driver_text, expected",
    [
        ("UNIQUE constraint failed: users.email", "email taken"),
        ("UNIQUE constraint failed: users.name", "name taken"),
        ('duplicate key value violates unique constraint "users_email_key"', "email taken"),
        ("Key (name)=(Ann) already exists.", "name taken"),
        ("UNIQUE constraint failed: users.image", "not saved"),
    ],
)
def test_conflict_message(driver_text, expected):
    exc = IntegrityError("INSERT", {}, Exception(driver_text))
    conflicts = {"name": "name taken", "email": "email taken"}
    assert conflict_message(exc, conflicts, "not saved") == expected


def test_materialize_failure_is_reported_as_operation_failure(db, assets, make_upload):
    user = User(name="Bob", email="bob@x.com", hashed_password="x")
    with pytest.raises(CreateFailed):
        _save_user(db, assets, user, make_upload(b"not an image"))
    assert db.query(User).count() == 0


def test_image_thumbnail_recorded_and_replaced(db, assets, make_upload):
    gallery = Gallery(name="Summer", author="Ann")
    db.add(gallery)
    db.commit()

    def save(record, failure):
        asyncio.run(
            persist_with_asset(
                db,
                record,
                assets=assets,
                kind=ResourceKind.IMAGES,
                upload=make_upload(),
                stem=record.url,
                field="name",
                thumbnail_field="thumbnail",
                failure=failure,
                failure_message="not saved",
            )
        )

    image = Image(url="beach", description="On the beach", gallery_id=gallery.id)
    save(image, CreateFailed)
    first_name, first_thumb = image.name, image.thumbnail
    assert first_thumb == assets.thumbnail_name(first_name)

    save(image, UpdateFailed)
    assert not assets.exists(first_name, ResourceKind.IMAGES)
    assert not assets.exists(first_thumb, ResourceKind.IMAGES)
    assert _stored_files(assets, ResourceKind.IMAGES) == sorted([image.name, image.thumbnail])


def test_delete_removes_row_then_file(ann, db, assets):
    user_id, stored = ann.id, ann.image
    asyncio.run(
        delete_with_asset(
            db,
            ann,
            assets=assets,
            kind=ResourceKind.USERS,
            field="image",
            failure=DeleteFailed,
            failure_message="not deleted",
        )
    )

    assert not assets.exists(stored, ResourceKind.USERS)
    with pytest.raises(NotFound):
        get_or_404(db, User, user_id, "missing")


def test_require_upload(make_upload):
    require_upload(make_upload(), "needed")
    with pytest.raises(ValidationFailed):
        require_upload(None, "needed")
    with pytest.raises(ValidationFailed):
        require_upload(make_upload(filename=""), "needed")
