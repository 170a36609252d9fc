from typing import Dict, Optional, Type, TypeVar

from fastapi import UploadFile
from PIL import Image as PILImage
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import logger
from app.core.database import Base
from app.core.errors import NotFound, ServiceError, ValidationFailed
from app.services.assets import AssetManager, ResourceKind

ModelT = TypeVar("ModelT", bound=Base)

MATERIALIZE_ERRORS = (OSError, ValueError, PILImage.DecompressionBombError)


def get_or_404(db: Session, model: Type[ModelT], record_id: int, message: str) -> ModelT:
    record = db.get(model, record_id)
    if record is None:
        raise NotFound(message)
    return record


def conflict_message(exc: IntegrityError, conflicts: Optional[Dict[str, str]], fallback: str) -> str:
    """
    Pick the message for the unique column named in the driver error.

    SQLite reports `UNIQUE constraint failed: users.email`, PostgreSQL
    `Key (email)=(...) already exists` with a `users_email_key` constraint.
    """
    text = str(exc.orig)
    for column, message in (conflicts or {}).items():
        if f".{column}" in text or f"({column})" in text or f"_{column}_key" in text:
            return message
    return fallback


def commit_or_raise(
    db: Session,
    failure: Type[ServiceError],
    failure_message: str,
    conflicts: Optional[Dict[str, str]] = None,
) -> None:
    """Commit, mapping unique-constraint conflicts to ValidationFailed and anything else to `failure`."""
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info(f"[store] constraint conflict: {exc.orig}")
        raise ValidationFailed(conflict_message(exc, conflicts, failure_message))
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"[store] commit failed: {exc}")
        raise failure(failure_message)


async def persist_with_asset(
    db: Session,
    record: Base,
    *,
    assets: AssetManager,
    kind: ResourceKind,
    upload: Optional[UploadFile],
    stem: str,
    field: str,
    failure: Type[ServiceError],
    failure_message: str,
    conflicts: Optional[Dict[str, str]] = None,
    thumbnail_field: Optional[str] = None,
) -> None:
    """
    Save `record`, replacing the file referenced by `record.<field>` when an upload is given.

    Order: stage -> generate name -> materialize -> (thumbnail) -> commit -> retire old.
    The old file is only removed after the row points at the new one, so a failed
    commit leaves the row and its original file untouched.
    """
    old_name = getattr(record, field, None)
    old_thumb = getattr(record, thumbnail_field, None) if thumbnail_field else None

    async with assets.staged(upload) as temp_path:
        new_name = None
        new_thumb = None
        if temp_path is not None:
            try:
                new_name = await assets.materialize(temp_path, assets.generate_name(stem), kind)
            except MATERIALIZE_ERRORS as exc:
                logger.warning(f"[assets] materialize for {kind.value} failed: {exc}")
                raise failure(failure_message)
            if thumbnail_field:
                new_thumb = await assets.derive_thumbnail(new_name, kind)
            setattr(record, field, new_name)
            if thumbnail_field:
                setattr(record, thumbnail_field, new_thumb)

        db.add(record)
        try:
            await run_in_threadpool(commit_or_raise, db, failure, failure_message, conflicts)
        except ServiceError:
            if new_name:
                # the row still references old_name; the new file has no owner
                logger.warning(f"[assets] persist failed, dropping orphan {kind.value}/{new_name}")
                await assets.retire(new_name, kind)
            raise
        await run_in_threadpool(db.refresh, record)

        if new_name and old_name and old_name != new_name:
            await assets.retire(old_name, kind)
            if old_thumb and old_thumb != assets.thumbnail_name(old_name):
                await assets.retire(old_thumb, kind)


async def delete_with_asset(
    db: Session,
    record: Base,
    *,
    assets: AssetManager,
    kind: ResourceKind,
    field: str,
    failure: Type[ServiceError],
    failure_message: str,
) -> None:
    """Delete the row first, then its file; a leftover file is an orphan, never a dangling row."""
    stored_name = getattr(record, field, None)
    await run_in_threadpool(delete_or_raise, db, record, failure, failure_message)
    await assets.retire(stored_name, kind)


def delete_or_raise(db: Session, record: Base, failure: Type[ServiceError], failure_message: str) -> None:
    db.delete(record)
    commit_or_raise(db, failure, failure_message)


def require_upload(upload: Optional[UploadFile], message: str) -> None:
    """Creation needs a real file; browsers send an empty filename for an untouched input."""
    if upload is None or not upload.filename:
        raise ValidationFailed(message)
