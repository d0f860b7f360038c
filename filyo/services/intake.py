"""
Upload intake: streams multipart file parts into the blob store, then hands
the accepted batch to the caller, which either persists it or discards it.

Nothing a failed request wrote survives it. Size violations, file-count
violations, bad passwords, storage failures and client disconnects all
delete every blob written so far.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import AsyncIterable
import logging

from fastapi import status
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.core.config import settings
from filyo.core.errors import LimitReached, SizeExceeded, ValidationError
from filyo.core.security import generate_token, get_password_hash
from filyo.models import AppSettings, File, ReceivedFile, Share, UploadRequest, User, utcnow
from filyo.services.lifecycle import check_password, evaluate, raise_for_gate, reserve_upload_slots
from filyo.utils.multipart import FieldPart, FileChunk, FileEnd, FileStart, PartEvent
from filyo.utils.storage import BlobWriter, guess_mime_type, new_blob_name, received_dir, remove_blob, upload_root

logger = logging.getLogger("filyo.intake")


@dataclass
class StoredBlob:
    filename: str
    original_name: str
    mime_type: str
    size: int
    path: Path


@dataclass
class IntakeResult:
    fields: dict[str, str] = field(default_factory=dict)
    files: list[StoredBlob] = field(default_factory=list)

    async def discard(self):
        for blob in self.files:
            await remove_blob(blob.path)
        self.files = []


class UploadIntake:
    """
    Consumes a stream of multipart events.

    ``max_file_size`` caps each file, ``max_total_size`` caps the sum of all
    files in the request and ``max_files`` caps how many files the request
    may carry. Once a cap is hit the offending blob is deleted and the rest
    of the body is read and dropped, then the whole batch fails.
    """

    def __init__(
        self,
        dest_dir: Path,
        prefix: str = "",
        max_file_size: int | None = None,
        max_total_size: int | None = None,
        max_files: int | None = None,
    ):
        self.dest_dir = dest_dir
        self.prefix = prefix
        self.max_file_size = max_file_size
        self.max_total_size = max_total_size if max_total_size is not None else settings.max_upload_size_bytes
        self.max_files = max_files
        self.result = IntakeResult()
        self._total = 0
        self._error: Exception | None = None
        self._writer: BlobWriter | None = None
        self._current: FileStart | None = None

    async def run(self, events: AsyncIterable[PartEvent]) -> IntakeResult:
        try:
            async for event in events:
                if isinstance(event, FieldPart):
                    self.result.fields[event.name] = event.value
                elif isinstance(event, FileStart):
                    await self._start_file(event)
                elif isinstance(event, FileChunk):
                    await self._write_chunk(event.data)
                elif isinstance(event, FileEnd):
                    await self._finish_file()
        except Exception:
            await self._abort()
            raise

        if self._error is not None:
            await self._abort()
            raise self._error
        return self.result

    async def _start_file(self, part: FileStart):
        if self._error is not None or not part.filename:
            return
        if self.max_files is not None and len(self.result.files) >= self.max_files:
            self._reject(LimitReached("File limit reached", status_code=status.HTTP_429_TOO_MANY_REQUESTS))
            return
        path = self.dest_dir / new_blob_name(part.filename, self.prefix)
        self._current = part
        self._writer = await BlobWriter(path).open()

    async def _write_chunk(self, data: bytes):
        if self._writer is None:
            return
        size = self._writer.size + len(data)
        if self.max_file_size is not None and size > self.max_file_size:
            await self._drop_current()
            self._reject(SizeExceeded("File too large"))
            return
        if self._total + len(data) > self.max_total_size:
            await self._drop_current()
            self._reject(SizeExceeded("Upload exceeds the maximum request size"))
            return
        await self._writer.write(data)
        self._total += len(data)

    async def _finish_file(self):
        if self._writer is None:
            return
        writer, part = self._writer, self._current
        self._writer = self._current = None
        await writer.close()
        self.result.files.append(
            StoredBlob(
                filename=writer.path.name,
                original_name=part.filename or "file",
                mime_type=guess_mime_type(part.filename),
                size=writer.size,
                path=writer.path,
            )
        )

    async def _drop_current(self):
        writer = self._writer
        self._writer = self._current = None
        if writer is not None:
            await writer.discard()

    def _reject(self, error: Exception):
        if self._error is None:
            logger.info("Upload rejected: %s", error)
            self._error = error

    async def _abort(self):
        await self._drop_current()
        await self.result.discard()


def _parse_positive_int(value: str | None, name: str) -> int | None:
    if value is None or value.strip() == "":
        return None
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer")
    if number < 1:
        raise ValidationError(f"'{name}' must be positive")
    return number


async def intake_user_upload(
    session: AsyncSession, owner: User, events: AsyncIterable[PartEvent]
) -> list[tuple[File, Share]]:
    """
    Authenticated upload. Every file gets a File row and one Share carrying
    the same expiry, download ceiling and password.
    """
    result = await UploadIntake(upload_root()).run(events)
    try:
        if not result.files:
            raise ValidationError("No file received")
        expires_in = _parse_positive_int(result.fields.get("expiresIn"), "expiresIn")
        max_downloads = _parse_positive_int(result.fields.get("maxDownloads"), "maxDownloads")
        raw_password = result.fields.get("password") or None
        label = (result.fields.get("label") or "").strip() or None

        expires_at = utcnow() + timedelta(seconds=expires_in) if expires_in else None
        hashed = get_password_hash(raw_password) if raw_password else None

        created = []
        for blob in result.files:
            f = File(
                owner_id=owner.id,
                filename=blob.filename,
                original_name=blob.original_name,
                mime_type=blob.mime_type,
                size=blob.size,
                path=str(blob.path),
                hashed_password=hashed,
                expires_at=expires_at,
                max_downloads=max_downloads,
            )
            session.add(f)
            await session.flush()
            share = Share(
                token=generate_token(),
                file_id=f.id,
                hashed_password=hashed,
                expires_at=expires_at,
                max_downloads=max_downloads,
                label=label,
            )
            session.add(share)
            created.append((f, share))
        await session.commit()
    except Exception:
        await session.rollback()
        await result.discard()
        raise

    logger.info("User %s uploaded %d file(s)", owner.id, len(created))
    return created


def _apply_form_policy(fields: dict[str, str], app_settings: AppSettings) -> dict[str, str | None]:
    policy = {
        "uploaderName": app_settings.uploader_name_req,
        "uploaderEmail": app_settings.uploader_email_req,
        "message": app_settings.uploader_msg_req,
    }
    values = {}
    for name, rule in policy.items():
        value = (fields.get(name) or "").strip() or None
        if rule == "hidden":
            value = None
        elif rule == "required" and value is None:
            raise ValidationError(f"'{name}' is required")
        values[name] = value
    return values


async def intake_deposit(
    session: AsyncSession,
    request: UploadRequest,
    events: AsyncIterable[PartEvent],
    app_settings: AppSettings,
) -> list[ReceivedFile]:
    """
    Third-party deposit against an upload request. The password is checked
    only once the body has been read in full; the file-count reservation
    and the received rows share one transaction.
    """
    raise_for_gate(evaluate(request), limit_status=status.HTTP_429_TOO_MANY_REQUESTS)

    remaining = None if request.max_files is None else request.max_files - request.files_count
    intake = UploadIntake(
        received_dir(request.id),
        prefix="recv_",
        max_file_size=request.max_size_bytes,
        max_files=remaining,
    )
    result = await intake.run(events)
    try:
        raise_for_gate(check_password(request, result.fields.get("password")))
        if not result.files:
            raise ValidationError("No file received")
        uploader = _apply_form_policy(result.fields, app_settings)

        await reserve_upload_slots(session, request, len(result.files))
        rows = [
            ReceivedFile(
                upload_request_id=request.id,
                filename=blob.filename,
                original_name=blob.original_name,
                mime_type=blob.mime_type,
                size=blob.size,
                path=str(blob.path),
                uploader_name=uploader["uploaderName"],
                uploader_email=uploader["uploaderEmail"],
                message=uploader["message"],
            )
            for blob in result.files
        ]
        session.add_all(rows)
        await session.commit()
    except Exception:
        await session.rollback()
        await result.discard()
        raise

    logger.info("Request %s received %d file(s)", request.token, len(rows))
    return rows
