import logging
from datetime import timedelta
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import FileResponse
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.deps import get_current_user, get_db
from filyo.crud import (
    delete_upload_requests,
    get_app_settings,
    get_managed_upload_request,
    get_upload_request_by_token,
)
from filyo.core.errors import Forbidden, NotFound, ValidationError
from filyo.core.security import generate_token, get_password_hash
from filyo.models import ReceivedFile, UploadRequest, User, utcnow
from filyo.schemas import (
    DepositedFile,
    ReceivedFileRead,
    UploadRequestCreate,
    UploadRequestCreated,
    UploadRequestInfo,
    UploadRequestRead,
)
from filyo.services.intake import intake_deposit
from filyo.services.lifecycle import Gate, evaluate, raise_for_gate
from filyo.utils.multipart import iter_parts
from filyo.utils.storage import blob_exists

router = APIRouter()
logger = logging.getLogger("filyo.upload_requests")


async def _managed(db: AsyncSession, user: User, request_id: int) -> UploadRequest:
    req = await get_managed_upload_request(db, user, request_id)
    if not req:
        raise Forbidden("Not allowed")
    return req


async def _public(db: AsyncSession, token: str) -> UploadRequest:
    req = await get_upload_request_by_token(db, token)
    if not req:
        raise NotFound("Invalid or disabled link")
    return req


@router.post("/", response_model=UploadRequestCreated, status_code=status.HTTP_201_CREATED)
async def create_upload_request(
    body: UploadRequestCreate,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title = body.title.strip()
    if not title:
        raise ValidationError("Title is required")
    req = UploadRequest(
        token=generate_token(),
        title=title,
        message=body.message or None,
        owner_id=current.id,
        hashed_password=get_password_hash(body.password) if body.password else None,
        expires_at=utcnow() + timedelta(seconds=body.expires_in) if body.expires_in else None,
        max_files=body.max_files,
        max_size_bytes=round(body.max_size_mb * 1024 * 1024) if body.max_size_mb else None,
    )
    db.add(req)
    await db.commit()
    await db.refresh(req)
    logger.info("User %s created upload request %s", current.id, req.id)
    return req


@router.get("/", response_model=list[UploadRequestRead])
async def list_upload_requests(current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    res = await db.exec(
        select(UploadRequest)
        .where(UploadRequest.owner_id == current.id)
        .order_by(UploadRequest.created_at.desc())
    )
    return [UploadRequestRead.from_request(r) for r in res.all()]


@router.get("/{token}/info", response_model=UploadRequestInfo)
async def upload_request_info(token: str, db: AsyncSession = Depends(get_db)):
    req = await _public(db, token)
    gate = evaluate(req)
    # a full request is still shown; the deposit itself is refused
    if gate != Gate.LIMIT_REACHED:
        raise_for_gate(gate)
    return UploadRequestInfo(
        token=req.token,
        title=req.title,
        message=req.message,
        expires_at=req.expires_at,
        has_password=bool(req.hashed_password),
        max_files=req.max_files,
        max_size_bytes=req.max_size_bytes,
    )


@router.post("/{token}/upload", response_model=list[DepositedFile], status_code=status.HTTP_201_CREATED)
async def deposit(token: str, request: Request, db: AsyncSession = Depends(get_db)):
    """
    Public multipart deposit. Form fields ``uploaderName``, ``uploaderEmail``,
    ``message`` and ``password`` may come before or after the file parts.
    """
    req = await _public(db, token)
    app_settings = await get_app_settings(db)
    rows = await intake_deposit(db, req, iter_parts(request), app_settings)
    return rows


@router.get("/{request_id}/files", response_model=list[ReceivedFileRead])
async def list_received_files(
    request_id: int, current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
):
    req = await _managed(db, current, request_id)
    res = await db.exec(
        select(ReceivedFile)
        .where(ReceivedFile.upload_request_id == req.id)
        .order_by(ReceivedFile.uploaded_at.desc())
    )
    return res.all()


@router.get("/{request_id}/received/{file_id}/download")
async def download_received_file(
    request_id: int,
    file_id: int,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    req = await _managed(db, current, request_id)
    f = await db.get(ReceivedFile, file_id)
    if not f or f.upload_request_id != req.id:
        raise HTTPException(status_code=404, detail="File not found")
    if not await blob_exists(f.path):
        raise HTTPException(status_code=404, detail="File missing on server")
    return FileResponse(
        f.path,
        media_type=f.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(f.original_name)}"},
    )


@router.patch("/{request_id}/toggle")
async def toggle_upload_request(
    request_id: int, current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
):
    req = await _managed(db, current, request_id)
    req.active = not req.active
    db.add(req)
    await db.commit()
    return {"active": req.active}


@router.delete("/{request_id}")
async def delete_upload_request(
    request_id: int, current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
):
    req = await _managed(db, current, request_id)
    await delete_upload_requests(db, [req])
    logger.info("User %s deleted upload request %s", current.id, request_id)
    return {"success": True}
