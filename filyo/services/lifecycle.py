"""
Access gating for Shares and UploadRequests.

Both entities go through the same gates, in this order:

1. inactive (upload requests only)  -> NOT_FOUND
2. ``expires_at < now``              -> EXPIRED (equality is still valid)
3. counter ``>=`` ceiling            -> LIMIT_REACHED
4. password hash present             -> PASSWORD_REQUIRED / PASSWORD_INVALID

The counter consumed on success is bumped with a conditional UPDATE so two
concurrent requests can never push it past its ceiling.
"""
from datetime import datetime
from enum import Enum
import logging

from fastapi import status
from sqlalchemy import or_, update
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.core.errors import Expired, LimitReached, NotFound, Unauthorized
from filyo.core.security import verify_password
from filyo.models import File, Share, UploadRequest, utcnow

logger = logging.getLogger("filyo.lifecycle")


class Gate(str, Enum):
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    LIMIT_REACHED = "LIMIT_REACHED"
    PASSWORD_REQUIRED = "PASSWORD_REQUIRED"
    PASSWORD_INVALID = "PASSWORD_INVALID"


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    return expires_at is not None and expires_at < now


def _counter(entity: Share | UploadRequest) -> tuple[int, int | None]:
    if isinstance(entity, UploadRequest):
        return entity.files_count, entity.max_files
    return entity.downloads, entity.max_downloads


def evaluate(entity: Share | UploadRequest, now: datetime | None = None) -> Gate:
    now = now or utcnow()
    if getattr(entity, "active", True) is False:
        return Gate.NOT_FOUND
    if is_expired(entity.expires_at, now):
        return Gate.EXPIRED
    used, limit = _counter(entity)
    if limit is not None and used >= limit:
        return Gate.LIMIT_REACHED
    return Gate.OK


def check_password(entity: Share | UploadRequest, supplied: str | None) -> Gate:
    if not entity.hashed_password:
        return Gate.OK
    if not supplied:
        return Gate.PASSWORD_REQUIRED
    if not verify_password(supplied, entity.hashed_password):
        return Gate.PASSWORD_INVALID
    return Gate.OK


def raise_for_gate(gate: Gate, limit_status: int = status.HTTP_410_GONE):
    if gate == Gate.OK:
        return
    if gate == Gate.NOT_FOUND:
        raise NotFound("Invalid or disabled link")
    if gate == Gate.EXPIRED:
        raise Expired("This link has expired")
    if gate == Gate.LIMIT_REACHED:
        raise LimitReached("Limit reached", status_code=limit_status)
    if gate == Gate.PASSWORD_REQUIRED:
        raise Unauthorized("Password required")
    raise Unauthorized("Incorrect password")


async def consume_share_download(session: AsyncSession, share: Share, now: datetime | None = None):
    """
    Take one download slot for ``share`` and count it on its file too.
    Commits on success. Raises Expired / LimitReached if the slot is gone.
    """
    now = now or utcnow()
    stmt = (
        update(Share)
        .where(Share.id == share.id)
        .where(or_(Share.max_downloads.is_(None), Share.downloads < Share.max_downloads))
        .where(or_(Share.expires_at.is_(None), Share.expires_at >= now))
        .values(downloads=Share.downloads + 1)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    if res.rowcount != 1:
        await session.rollback()
        await session.refresh(share)
        gate = evaluate(share, now)
        logger.info("Download refused for share %s: %s", share.token, gate.value)
        raise_for_gate(Gate.LIMIT_REACHED if gate == Gate.OK else gate)

    await session.execute(
        update(File)
        .where(File.id == share.file_id)
        .values(downloads=File.downloads + 1)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    await session.refresh(share)


async def reserve_upload_slots(
    session: AsyncSession, request: UploadRequest, count: int, now: datetime | None = None
):
    """
    Add ``count`` to the request's ``files_count`` if the whole batch fits
    under ``max_files``. Does not commit: the caller writes the received file
    rows in the same transaction.
    """
    now = now or utcnow()
    stmt = (
        update(UploadRequest)
        .where(UploadRequest.id == request.id)
        .where(UploadRequest.active.is_(True))
        .where(or_(UploadRequest.max_files.is_(None), UploadRequest.files_count + count <= UploadRequest.max_files))
        .where(or_(UploadRequest.expires_at.is_(None), UploadRequest.expires_at >= now))
        .values(files_count=UploadRequest.files_count + count)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    if res.rowcount != 1:
        await session.rollback()
        await session.refresh(request)
        gate = evaluate(request, now)
        logger.info("Deposit of %d file(s) refused for request %s: %s", count, request.token, gate.value)
        raise_for_gate(
            Gate.LIMIT_REACHED if gate == Gate.OK else gate,
            limit_status=status.HTTP_429_TOO_MANY_REQUESTS,
        )
