from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.deps import get_current_user, get_db
from filyo.crud import delete_files, get_shares_for_files
from filyo.models import File as FileModel, User
from filyo.schemas import FileRead, UploadedFileResp
from filyo.services.intake import intake_user_upload
from filyo.utils.multipart import iter_parts

router = APIRouter()


@router.post("/", response_model=list[UploadedFileResp], status_code=status.HTTP_201_CREATED)
async def upload(
    request: Request,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Multipart upload of one or more files. Optional form fields:
    ``expiresIn`` (seconds), ``maxDownloads``, ``password``, ``label``.
    Each file gets its own share token.
    """
    created = await intake_user_upload(db, current, iter_parts(request))
    return [
        UploadedFileResp(
            id=f.id,
            original_name=f.original_name,
            mime_type=f.mime_type,
            size=f.size,
            expires_at=f.expires_at,
            share_token=share.token,
        )
        for f, share in created
    ]


@router.get("/", response_model=list[FileRead])
async def list_files(current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    res = await db.exec(
        select(FileModel).where(FileModel.owner_id == current.id).order_by(FileModel.uploaded_at.desc())
    )
    files = res.all()
    shares = await get_shares_for_files(db, [f.id for f in files])
    return [FileRead.from_file(f, shares[f.id]) for f in files]


@router.get("/{file_id}", response_model=FileRead)
async def get_file(file_id: int, current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    file_obj = await db.get(FileModel, file_id)
    if not file_obj or file_obj.owner_id != current.id:
        raise HTTPException(status_code=404, detail="File not found")
    shares = await get_shares_for_files(db, [file_obj.id])
    return FileRead.from_file(file_obj, shares[file_obj.id])


@router.delete("/{file_id}")
async def delete_file(file_id: int, current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    file_obj = await db.get(FileModel, file_id)
    # admin can delete anything, owners their own files
    if not file_obj or (current.role != "ADMIN" and file_obj.owner_id != current.id):
        raise HTTPException(status_code=404, detail="File not found")
    await delete_files(db, [file_obj])
    return {"success": True}
