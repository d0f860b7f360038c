import logging

from fastapi import APIRouter, Depends, UploadFile, File
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.deps import get_db, require_admin
from filyo.crud import get_app_settings, update_app_settings
from filyo.core.email import check_smtp_connection
from filyo.core.errors import ValidationError
from filyo.models import AppSettings
from filyo.schemas import (
    AppNameUpdate,
    PublicSettings,
    RegistrationUpdate,
    SiteUrlUpdate,
    SmtpSettings,
    SmtpUpdate,
    UploaderFieldsUpdate,
)
from filyo.utils.storage import remove_blob, save_image, url_to_path

router = APIRouter()
logger = logging.getLogger("filyo.settings")

LOGO_FORMATS = (".png", ".jpg", ".jpeg", ".svg", ".webp", ".gif")


def _public(s: AppSettings) -> PublicSettings:
    return PublicSettings(
        app_name=s.app_name,
        logo_url=s.logo_url,
        site_url=s.site_url or "",
        allow_registration=s.allow_registration,
        uploader_name_req=s.uploader_name_req,
        uploader_email_req=s.uploader_email_req,
        uploader_msg_req=s.uploader_msg_req,
        updated_at=s.updated_at,
    )


def _smtp(s: AppSettings) -> SmtpSettings:
    return SmtpSettings(
        smtp_host=s.smtp_host or "",
        smtp_port=s.smtp_port or 587,
        smtp_from=s.smtp_from or "",
        smtp_user=s.smtp_user or "",
        # never echo the stored password back
        smtp_pass="",
        smtp_secure=s.smtp_secure,
    )


@router.get("/", response_model=PublicSettings)
async def public_settings(db: AsyncSession = Depends(get_db)):
    return _public(await get_app_settings(db))


@router.get("/smtp", response_model=SmtpSettings, dependencies=[Depends(require_admin)])
async def get_smtp(db: AsyncSession = Depends(get_db)):
    return _smtp(await get_app_settings(db))


@router.patch("/smtp", response_model=SmtpSettings, dependencies=[Depends(require_admin)])
async def update_smtp(body: SmtpUpdate, db: AsyncSession = Depends(get_db)):
    values = body.model_dump(exclude_unset=True)
    # an empty password field keeps the stored one
    if not values.get("smtp_pass"):
        values.pop("smtp_pass", None)
    for key in ("smtp_host", "smtp_from", "smtp_user"):
        if key in values and isinstance(values[key], str):
            values[key] = values[key].strip() or None
    s = await update_app_settings(db, **values)
    logger.info("SMTP settings updated")
    return _smtp(s)


@router.post("/smtp/test", dependencies=[Depends(require_admin)])
async def test_smtp(db: AsyncSession = Depends(get_db)):
    s = await get_app_settings(db)
    if not s.smtp_host or not s.smtp_port:
        raise ValidationError("SMTP settings are incomplete")
    await check_smtp_connection(s.smtp_host, s.smtp_port)
    return {"success": True}


@router.patch("/name", response_model=PublicSettings, dependencies=[Depends(require_admin)])
async def update_name(body: AppNameUpdate, db: AsyncSession = Depends(get_db)):
    name = body.app_name.strip()
    if not name:
        raise ValidationError("Invalid name")
    return _public(await update_app_settings(db, app_name=name[:50]))


@router.patch("/site-url", response_model=PublicSettings, dependencies=[Depends(require_admin)])
async def update_site_url(body: SiteUrlUpdate, db: AsyncSession = Depends(get_db)):
    url = (body.site_url or "").strip().rstrip("/")
    if url and not url.startswith(("http://", "https://")):
        raise ValidationError("Site URL must start with http:// or https://")
    return _public(await update_app_settings(db, site_url=url or None))


@router.patch("/registration", response_model=PublicSettings, dependencies=[Depends(require_admin)])
async def update_registration(body: RegistrationUpdate, db: AsyncSession = Depends(get_db)):
    return _public(await update_app_settings(db, allow_registration=body.allow_registration))


@router.patch("/uploader-fields", response_model=PublicSettings, dependencies=[Depends(require_admin)])
async def update_uploader_fields(body: UploaderFieldsUpdate, db: AsyncSession = Depends(get_db)):
    values = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    return _public(await update_app_settings(db, **values))


@router.post("/logo", response_model=PublicSettings, dependencies=[Depends(require_admin)])
async def upload_logo(upload_file: UploadFile = File(...), db: AsyncSession = Depends(get_db)):
    s = await get_app_settings(db)
    logo_url = await save_image(upload_file, "logos", "logo_", LOGO_FORMATS)
    if s.logo_url:
        await remove_blob(url_to_path(s.logo_url))
    return _public(await update_app_settings(db, logo_url=logo_url))


@router.delete("/logo", response_model=PublicSettings, dependencies=[Depends(require_admin)])
async def delete_logo(db: AsyncSession = Depends(get_db)):
    s = await get_app_settings(db)
    if s.logo_url:
        await remove_blob(url_to_path(s.logo_url))
    return _public(await update_app_settings(db, logo_url=None))
