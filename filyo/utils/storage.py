from pathlib import Path
from uuid import uuid4
from fastapi import UploadFile
from filyo.core.config import settings
from filyo.core.errors import StorageError, ValidationError
import asyncio
import logging
import mimetypes
import shutil
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger("filyo.storage")

_executor = ThreadPoolExecutor(max_workers=6)

UPLOADS_URL_PREFIX = "/uploads/"


async def _run(fn, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_executor, fn, *args)


def upload_root() -> Path:
    return Path(settings.upload_dir)


def received_dir(upload_request_id: int) -> Path:
    return upload_root() / "received" / str(upload_request_id)


def new_blob_name(original_name: str | None, prefix: str = "") -> str:
    """Random on-disk name keeping only the client's extension."""
    suffix = Path(original_name or "").suffix.lower()
    return f"{prefix}{uuid4().hex}{suffix}"


def guess_mime_type(filename: str | None) -> str:
    mime, _ = mimetypes.guess_type(filename or "")
    return mime or "application/octet-stream"


class BlobWriter:
    """
    Async writer for one blob. File operations run on the storage executor so
    the event loop never blocks on disk.
    """

    def __init__(self, path: Path):
        self.path = path
        self.size = 0
        self._fh = None

    async def open(self):
        def _open():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return open(self.path, "wb")

        try:
            self._fh = await _run(_open)
        except OSError as exc:
            raise StorageError(f"Cannot create {self.path.name}") from exc
        return self

    async def write(self, chunk: bytes):
        try:
            await _run(self._fh.write, chunk)
        except OSError as exc:
            raise StorageError(f"Write failed for {self.path.name}") from exc
        self.size += len(chunk)

    async def close(self):
        if self._fh is not None and not self._fh.closed:
            await _run(self._fh.close)

    async def discard(self):
        await self.close()
        await remove_blob(self.path)


async def remove_blob(path: str | Path) -> bool:
    """Best-effort delete. A missing file counts as removed."""

    def _unlink():
        Path(path).unlink(missing_ok=True)

    try:
        await _run(_unlink)
        return True
    except OSError as exc:
        logger.warning("Could not remove blob %s: %s", path, exc)
        return False


async def remove_tree(path: str | Path) -> bool:
    def _rmtree():
        if Path(path).exists():
            shutil.rmtree(path)

    try:
        await _run(_rmtree)
        return True
    except OSError as exc:
        logger.warning("Could not remove directory %s: %s", path, exc)
        return False


async def blob_exists(path: str | Path) -> bool:
    return await _run(Path(path).is_file)


def url_to_path(url: str) -> Path:
    return upload_root() / url[len(UPLOADS_URL_PREFIX):]


async def save_image(upload_file: UploadFile, subdir: str, prefix: str, allowed: tuple[str, ...]) -> str:
    """
    Save a small image (avatar, logo) under ``upload_dir/<subdir>``.
    Returns the public ``/uploads/...`` URL.
    """
    suffix = Path(upload_file.filename or "").suffix.lower()
    if suffix not in allowed:
        raise ValidationError(f"Unsupported format ({', '.join(e.lstrip('.') for e in allowed)})")

    filename = f"{prefix}{uuid4().hex[:8]}{suffix}"
    dest_path = upload_root() / subdir / filename

    file_bytes = await upload_file.read()

    def _write():
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_bytes(file_bytes)

    try:
        await _run(_write)
    except OSError as exc:
        raise StorageError("Could not store image") from exc

    return f"{UPLOADS_URL_PREFIX}{subdir}/{filename}"


def _fmt_bytes(b: int) -> str:
    if b >= 1e12:
        return f"{b / 1e12:.1f} TB"
    if b >= 1e9:
        return f"{b / 1e9:.1f} GB"
    if b >= 1e6:
        return f"{b / 1e6:.1f} MB"
    return f"{b / 1e3:.0f} KB"


def disk_space(directory: str | Path) -> dict:
    try:
        usage = shutil.disk_usage(directory)
    except OSError:
        return {"total": "-", "used": "-", "free": "-", "totalBytes": 0, "usedBytes": 0, "freeBytes": 0}
    return {
        "total": _fmt_bytes(usage.total),
        "used": _fmt_bytes(usage.used),
        "free": _fmt_bytes(usage.free),
        "totalBytes": usage.total,
        "usedBytes": usage.used,
        "freeBytes": usage.free,
    }
