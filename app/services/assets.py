"""
Asset lifecycle for files owned by database rows.

An upload is staged into a temporary area, materialized into the resource
kind's directory under a generated name, optionally thumbnailed, and retired
once no row references it any more. The ordering rules that keep rows and
files consistent live in `app.services.resources`.
"""
import os
import re
import secrets
import time
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, logger
from app.core.errors import ValidationFailed


class ResourceKind(str, Enum):
    USERS = "users"
    IMAGES = "images"
    GALLERIES = "galleries"
    ARTICLES = "articles"


CHUNK_SIZE = 1024 * 1024


def slugify(value: str) -> str:
    """Lowercase, keep letters/digits, collapse everything else into single dashes."""
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower())
    return slug.strip("-")[:60]


def _flatten_alpha(img: Image.Image) -> Image.Image:
    background = Image.new("RGB", img.size, (255, 255, 255))
    background.paste(img, mask=img.split()[-1])
    return background


class AssetManager:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.root = Path(settings.STORAGE_ROOT)
        self.tmp_dir = Path(settings.UPLOAD_TMP_DIR)
        self.ext = settings.IMG_EXT
        self.format = Image.registered_extensions().get(f".{self.ext}")
        if not self.format:
            raise ValueError(f"Unsupported IMG_EXT: {self.ext}")
        self._dirs = {
            ResourceKind.USERS: settings.USERS_DIR,
            ResourceKind.IMAGES: settings.IMAGES_DIR,
            ResourceKind.GALLERIES: settings.GALLERIES_DIR,
            ResourceKind.ARTICLES: settings.ARTICLES_DIR,
        }

    # ---------- paths ----------

    def directory(self, kind: ResourceKind) -> Path:
        return self.root / self._dirs[ResourceKind(kind)]

    def path(self, stored_name: str, kind: ResourceKind) -> Path:
        # stored names are generated by us, but never let one escape its directory
        if not stored_name or Path(stored_name).name != stored_name:
            raise ValueError(f"Invalid stored name: {stored_name!r}")
        return self.directory(kind) / stored_name

    def url(self, stored_name: str, kind: ResourceKind) -> str:
        return f"{self.settings.MEDIA_URL}/{self._dirs[ResourceKind(kind)]}/{stored_name}"

    def exists(self, stored_name: Optional[str], kind: ResourceKind) -> bool:
        return bool(stored_name) and self.path(stored_name, kind).is_file()

    def thumbnail_name(self, stored_name: str) -> str:
        stem, ext = os.path.splitext(stored_name)
        return f"{stem}{self.settings.THUMB_SUFFIX}{ext}"

    def generate_name(self, stem: Optional[str] = None) -> str:
        """`{slug}-{epoch ms}-{random}.{ext}`; the random part keeps same-millisecond uploads apart."""
        parts = [slugify(stem or ""), str(int(time.time() * 1000)), secrets.token_hex(4)]
        return "-".join(p for p in parts if p) + f".{self.ext}"

    # ---------- staging ----------

    @asynccontextmanager
    async def staged(self, upload: Optional[UploadFile]) -> AsyncIterator[Optional[Path]]:
        """
        Copy an incoming upload into the temporary area and yield its path.

        Yields None when the client sent no file (missing part or empty filename,
        which is what browsers send for an untouched file input). The temp file
        is removed when the block exits, whatever happened inside it.
        """
        if upload is None or not upload.filename:
            yield None
            return

        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        suffix = Path(upload.filename).suffix.lower()[:10]
        temp_path = self.tmp_dir / f"{uuid.uuid4().hex}{suffix}"
        limit = self.settings.MAX_UPLOAD_MB * 1024 * 1024
        messages = self.settings.MESSAGES
        try:
            size = 0
            fh = await run_in_threadpool(open, temp_path, "wb")
            try:
                while chunk := await upload.read(CHUNK_SIZE):
                    size += len(chunk)
                    if size > limit:
                        raise ValidationFailed(messages.FILE_TOO_LARGE)
                    await run_in_threadpool(fh.write, chunk)
            finally:
                await run_in_threadpool(fh.close)
            if size == 0:
                raise ValidationFailed(messages.FILE_EMPTY)
            yield temp_path
        finally:
            await self.discard(temp_path)

    async def discard(self, temp_path: Path) -> None:
        try:
            await run_in_threadpool(temp_path.unlink, missing_ok=True)
        except OSError as exc:
            logger.warning(f"[assets] could not remove temp file {temp_path}: {exc}")

    # ---------- lifecycle ----------

    async def materialize(self, temp_path: Path, generated_name: str, kind: ResourceKind) -> str:
        """
        Re-encode the staged file into the kind's directory under `generated_name`.

        The target is opened with exclusive create, so an existing stored file is
        never overwritten. Raises OSError / PIL errors on failure, leaving nothing
        behind. The temp file is not touched.
        """
        target = self.path(generated_name, kind)
        await run_in_threadpool(self._write_image, Path(temp_path), target, self.settings.IMG_MAX_WIDTH)
        logger.info(f"[assets] stored {kind.value}/{generated_name}")
        return generated_name

    async def derive_thumbnail(self, stored_name: str, kind: ResourceKind) -> Optional[str]:
        """Write a smaller copy beside the stored file. Failure is logged and returns None."""
        thumb_name = self.thumbnail_name(stored_name)
        try:
            await run_in_threadpool(
                self._write_image,
                self.path(stored_name, kind),
                self.path(thumb_name, kind),
                self.settings.THUMB_WIDTH,
            )
        except (OSError, ValueError, UnidentifiedImageError) as exc:
            logger.warning(f"[assets] thumbnail for {kind.value}/{stored_name} failed: {exc}")
            return None
        return thumb_name

    async def retire(self, stored_name: Optional[str], kind: ResourceKind) -> bool:
        """Delete a stored file and its thumbnail. Already-absent files count as success."""
        if not stored_name:
            return True
        ok = True
        for name in (stored_name, self.thumbnail_name(stored_name)):
            try:
                await run_in_threadpool(self.path(name, kind).unlink, missing_ok=True)
            except (OSError, ValueError) as exc:
                logger.error(f"[assets] could not retire {kind.value}/{name}: {exc}")
                ok = False
        if ok:
            logger.info(f"[assets] retired {kind.value}/{stored_name}")
        return ok

    # ---------- blocking helpers (thread pool) ----------

    def _write_image(self, source: Path, target: Path, max_width: int) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with Image.open(source) as img:
            img.load()
            out = img
            if out.mode not in ("RGB", "RGBA"):
                out = out.convert("RGBA" if "A" in out.mode or out.mode == "P" else "RGB")
            if self.format == "JPEG" and out.mode == "RGBA":
                out = _flatten_alpha(out)
            if out.width > max_width:
                height = max(1, round(out.height * max_width / out.width))
                out = out.resize((max_width, height), Image.Resampling.LANCZOS)
            # exclusive create; an existing file raises FileExistsError and stays untouched
            fh = open(target, "xb")
            try:
                with fh:
                    out.save(fh, format=self.format)
            except Exception:
                target.unlink(missing_ok=True)
                raise
