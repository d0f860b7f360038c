import logging
from html import escape
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends
from fastapi.responses import FileResponse
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.deps import get_current_user, get_db
from filyo.crud import get_app_settings, get_share_by_token
from filyo.core.email import send_email, smtp_configured
from filyo.core.errors import NotFound, UpstreamUnavailable
from filyo.models import File as FileModel, Share, User, utcnow
from filyo.schemas import DownloadReq, SendEmailReq, ShareInfo
from filyo.services.lifecycle import check_password, consume_share_download, evaluate, raise_for_gate
from filyo.utils.storage import blob_exists

router = APIRouter()
logger = logging.getLogger("filyo.shares")


async def _load(db: AsyncSession, token: str) -> tuple[Share, FileModel]:
    found = await get_share_by_token(db, token)
    if not found:
        raise NotFound("Invalid link")
    return found


@router.get("/{token}/info", response_model=ShareInfo)
async def share_info(token: str, db: AsyncSession = Depends(get_db)):
    share, file_obj = await _load(db, token)
    raise_for_gate(evaluate(share))
    return ShareInfo(
        token=share.token,
        label=share.label,
        filename=file_obj.original_name,
        mime_type=file_obj.mime_type,
        size=file_obj.size,
        expires_at=share.expires_at,
        has_password=bool(share.hashed_password),
        downloads=share.downloads,
        max_downloads=share.max_downloads,
    )


@router.post("/{token}/download")
async def download(
    token: str,
    body: DownloadReq | None = Body(default=None),
    db: AsyncSession = Depends(get_db),
):
    share, file_obj = await _load(db, token)
    now = utcnow()
    raise_for_gate(evaluate(share, now))
    raise_for_gate(check_password(share, body.password if body else None))

    if not await blob_exists(file_obj.path):
        raise NotFound("File missing on server")

    await consume_share_download(db, share, now)
    logger.info("Share %s downloaded: %s", token, file_obj.original_name)

    return FileResponse(
        file_obj.path,
        media_type=file_obj.mime_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_obj.original_name)}"},
    )


@router.post("/send-email")
async def send_share_links(
    req: SendEmailReq,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    app_settings = await get_app_settings(db)
    if not smtp_configured(app_settings):
        raise UpstreamUnavailable("SMTP is not configured. Go to Settings > SMTP server.")

    res = await db.exec(
        select(Share, FileModel)
        .join(FileModel, FileModel.id == Share.file_id)
        .where(Share.token.in_(req.tokens))
    )
    rows = res.all()
    if not rows:
        raise NotFound("Links not found")

    base_url = (app_settings.site_url or "http://localhost:3000").rstrip("/")
    app_name = app_settings.app_name or "Filyo"

    lines, items = [], []
    for share, file_obj in rows:
        url = f"{base_url}/s/{share.token}"
        expiry = f"Expires on {share.expires_at:%Y-%m-%d}" if share.expires_at else "No expiry"
        lines.append(f"- {file_obj.original_name}\n  {url}\n  {expiry}")
        items.append(
            f'<li><a href="{escape(url)}">{escape(file_obj.original_name)}</a><br>'
            f"<small>{escape(expiry)}</small></li>"
        )

    if len(rows) == 1:
        subject = f"[{app_name}] Shared: {rows[0][1].original_name}"
    else:
        subject = f"[{app_name}] {len(rows)} files shared with you"
    text = "Hello,\n\nHere are your share links:\n\n" + "\n".join(lines) + f"\n\nSent via {app_name}."
    html = f"<h2>{escape(app_name)}</h2><ul>{''.join(items)}</ul><p>Sent via {escape(app_name)}</p>"

    await send_email(app_settings, req.to, subject, text, html)
    logger.info("User %s mailed %d link(s) to %s", current.id, len(rows), req.to)
    return {"success": True}
