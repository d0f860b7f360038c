from sqlalchemy import func
from sqlalchemy import delete
from sqlmodel import select
from filyo.models import (
    User,
    File,
    Share,
    UploadRequest,
    ReceivedFile,
    AppSettings,
    utcnow,
)
from filyo.utils.storage import received_dir, remove_blob, remove_tree, url_to_path
from sqlmodel.ext.asyncio.session import AsyncSession


# -------------------------
# User helpers
# -------------------------
async def create_user(
    session: AsyncSession, *, email: str, name: str, hashed_password: str, role: str = "USER"
) -> User:
    user = User(email=email, name=name, hashed_password=hashed_password, role=role)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    q = select(User).where(User.email == email)
    res = await session.execute(q)
    return res.scalar_one_or_none()


async def get_user_by_id(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def count_users(session: AsyncSession) -> int:
    res = await session.execute(select(func.count()).select_from(User))
    return res.scalar_one()


async def delete_user(session: AsyncSession, user: User):
    files = (await session.exec(select(File).where(File.owner_id == user.id))).all()
    await delete_files(session, files, commit=False)
    requests = (await session.exec(select(UploadRequest).where(UploadRequest.owner_id == user.id))).all()
    await delete_upload_requests(session, requests, commit=False)
    if user.avatar_url:
        await remove_blob(url_to_path(user.avatar_url))
    await session.delete(user)
    await session.commit()


# -------------------------
# File / Share helpers
# -------------------------
async def get_share_by_token(session: AsyncSession, token: str) -> tuple[Share, File] | None:
    q = select(Share, File).join(File, File.id == Share.file_id).where(Share.token == token)
    res = await session.execute(q)
    row = res.one_or_none()
    return (row[0], row[1]) if row else None


async def get_shares_for_files(session: AsyncSession, file_ids: list[int]) -> dict[int, list[Share]]:
    by_file: dict[int, list[Share]] = {fid: [] for fid in file_ids}
    if not file_ids:
        return by_file
    res = await session.exec(select(Share).where(Share.file_id.in_(file_ids)).order_by(Share.created_at))
    for share in res.all():
        by_file[share.file_id].append(share)
    return by_file


async def delete_files(session: AsyncSession, files: list[File], commit: bool = True) -> int:
    """Delete files with their shares and blobs. Blob failures never block the rows."""
    for f in files:
        await remove_blob(f.path)
    ids = [f.id for f in files]
    if ids:
        await session.execute(delete(Share).where(Share.file_id.in_(ids)))
        await session.execute(delete(File).where(File.id.in_(ids)))
    if commit:
        await session.commit()
    return len(ids)


# -------------------------
# Upload request helpers
# -------------------------
async def get_upload_request_by_token(session: AsyncSession, token: str) -> UploadRequest | None:
    q = select(UploadRequest).where(UploadRequest.token == token)
    res = await session.execute(q)
    return res.scalar_one_or_none()


async def get_managed_upload_request(session: AsyncSession, user: User, request_id: int) -> UploadRequest | None:
    """The request if ``user`` owns it or is an admin."""
    req = await session.get(UploadRequest, request_id)
    if not req:
        return None
    if user.role != "ADMIN" and req.owner_id != user.id:
        return None
    return req


async def delete_upload_requests(session: AsyncSession, requests: list[UploadRequest], commit: bool = True) -> int:
    ids = [r.id for r in requests]
    if not ids:
        return 0
    received = (await session.exec(select(ReceivedFile).where(ReceivedFile.upload_request_id.in_(ids)))).all()
    for f in received:
        await remove_blob(f.path)
    for request_id in ids:
        await remove_tree(received_dir(request_id))
    await session.execute(delete(ReceivedFile).where(ReceivedFile.upload_request_id.in_(ids)))
    await session.execute(delete(UploadRequest).where(UploadRequest.id.in_(ids)))
    if commit:
        await session.commit()
    return len(ids)


# -------------------------
# App settings
# -------------------------
async def get_app_settings(session: AsyncSession) -> AppSettings:
    s = await session.get(AppSettings, "singleton")
    if s is None:
        s = AppSettings(id="singleton")
        session.add(s)
        await session.commit()
        await session.refresh(s)
    return s


async def update_app_settings(session: AsyncSession, **values) -> AppSettings:
    s = await get_app_settings(session)
    for key, value in values.items():
        setattr(s, key, value)
    s.updated_at = utcnow()
    session.add(s)
    await session.commit()
    await session.refresh(s)
    return s
