"""
Expired-content sweep, triggered by an admin (HTTP or ``tools/cleanup.py``).

Blob removal is best effort: a blob that cannot be deleted is logged and the
row goes anyway.
"""
from datetime import datetime
import logging

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.crud import delete_files, delete_upload_requests
from filyo.models import File, UploadRequest, utcnow

logger = logging.getLogger("filyo.cleanup")


async def sweep_expired(session: AsyncSession, now: datetime | None = None) -> dict:
    now = now or utcnow()

    files = (await session.exec(select(File).where(File.expires_at < now))).all()
    deleted_files = await delete_files(session, files)

    requests = (await session.exec(select(UploadRequest).where(UploadRequest.expires_at < now))).all()
    deleted_requests = await delete_upload_requests(session, requests)

    logger.info("Cleanup removed %d file(s) and %d upload request(s)", deleted_files, deleted_requests)
    return {"deletedFiles": deleted_files, "deletedUploadRequests": deleted_requests}
