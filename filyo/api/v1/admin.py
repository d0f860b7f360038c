from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.deps import require_admin, get_db
from filyo.core.config import settings
from filyo.crud import get_shares_for_files
from filyo.models import File, ReceivedFile, Share, UploadRequest, User
from filyo.schemas import CleanupResp, FileRead, StatsResp, UploadRequestRead
from filyo.services.cleanup import sweep_expired
from filyo.utils.storage import disk_space

router = APIRouter(dependencies=[Depends(require_admin)])


async def _scalar(db: AsyncSession, stmt) -> int:
    res = await db.execute(stmt)
    return res.scalar_one() or 0


async def _owners(db: AsyncSession, owner_ids) -> dict[int, dict]:
    ids = set(owner_ids)
    if not ids:
        return {}
    res = await db.exec(select(User).where(User.id.in_(ids)))
    return {u.id: {"id": u.id, "name": u.name, "email": u.email} for u in res.all()}


@router.get("/stats", response_model=StatsResp)
async def stats(db: AsyncSession = Depends(get_db)):
    return StatsResp(
        files_count=await _scalar(db, select(func.count()).select_from(File)),
        shares_count=await _scalar(db, select(func.count()).select_from(Share)),
        upload_requests_count=await _scalar(db, select(func.count()).select_from(UploadRequest)),
        received_files_count=await _scalar(db, select(func.count()).select_from(ReceivedFile)),
        total_size=await _scalar(db, select(func.coalesce(func.sum(File.size), 0))),
        total_received_size=await _scalar(db, select(func.coalesce(func.sum(ReceivedFile.size), 0))),
        disk=disk_space(settings.upload_dir),
    )


@router.post("/cleanup", response_model=CleanupResp)
async def cleanup(db: AsyncSession = Depends(get_db)):
    return await sweep_expired(db)


@router.get("/files", response_model=list[FileRead])
async def all_files(limit: int = 500, db: AsyncSession = Depends(get_db)):
    res = await db.exec(select(File).order_by(File.uploaded_at.desc()).limit(limit))
    files = res.all()
    shares = await get_shares_for_files(db, [f.id for f in files])
    owners = await _owners(db, (f.owner_id for f in files))
    return [FileRead.from_file(f, shares[f.id], owners.get(f.owner_id)) for f in files]


@router.get("/upload-requests", response_model=list[UploadRequestRead])
async def all_upload_requests(limit: int = 500, db: AsyncSession = Depends(get_db)):
    res = await db.exec(select(UploadRequest).order_by(UploadRequest.created_at.desc()).limit(limit))
    requests = res.all()
    owners = await _owners(db, (r.owner_id for r in requests))
    return [UploadRequestRead.from_request(r, owners.get(r.owner_id)) for r in requests]
