from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from typing import Literal, Optional
from datetime import datetime


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


FieldRule = Literal["hidden", "optional", "required"]


# --- auth / users ---

class Token(BaseModel):
    access_token: str
    token_type: str


class LoginReq(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    password: str = Field(min_length=8)
    role: Literal["USER", "ADMIN"] = "USER"


class UserRead(CamelModel):
    id: int
    email: EmailStr
    name: str
    role: str
    active: bool
    avatar_url: Optional[str] = None
    created_at: datetime
    last_login: Optional[datetime] = None


class LoginResp(BaseModel):
    token: str
    user: UserRead


class UserUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[Literal["USER", "ADMIN"]] = None
    active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=8)


class ProfileUpdate(CamelModel):
    name: str


class PasswordChange(CamelModel):
    current_password: str
    new_password: str = Field(min_length=8)


# --- files / shares ---

class ShareRead(CamelModel):
    id: int
    token: str
    label: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    downloads: int
    has_password: bool
    created_at: datetime

    @classmethod
    def from_share(cls, share) -> "ShareRead":
        return cls.model_validate({**share.model_dump(), "has_password": bool(share.hashed_password)})


class FileRead(CamelModel):
    id: int
    owner_id: int
    original_name: str
    mime_type: str
    size: int
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    downloads: int
    has_password: bool
    uploaded_at: datetime
    shares: list[ShareRead] = []
    owner: Optional[dict] = None

    @classmethod
    def from_file(cls, f, shares=(), owner=None) -> "FileRead":
        return cls.model_validate({
            **f.model_dump(),
            "has_password": bool(f.hashed_password),
            "shares": [ShareRead.from_share(s) for s in shares],
            "owner": owner,
        })


class UploadedFileResp(CamelModel):
    id: int
    original_name: str
    mime_type: str
    size: int
    expires_at: Optional[datetime] = None
    share_token: str


class ShareInfo(CamelModel):
    token: str
    label: Optional[str] = None
    filename: str
    mime_type: str
    size: int
    expires_at: Optional[datetime] = None
    has_password: bool
    downloads: int
    max_downloads: Optional[int] = None


class DownloadReq(BaseModel):
    password: Optional[str] = None


class SendEmailReq(BaseModel):
    to: EmailStr
    tokens: list[str] = Field(min_length=1)


# --- upload requests ---

class UploadRequestCreate(CamelModel):
    title: str = Field(min_length=1)
    message: Optional[str] = None
    password: Optional[str] = None
    expires_in: Optional[int] = Field(default=None, ge=1)
    max_files: Optional[int] = Field(default=None, ge=1)
    max_size_mb: Optional[float] = Field(default=None, gt=0)


class UploadRequestCreated(CamelModel):
    id: int
    token: str
    title: str
    expires_at: Optional[datetime] = None


class UploadRequestRead(CamelModel):
    id: int
    token: str
    title: str
    message: Optional[str] = None
    owner_id: int
    expires_at: Optional[datetime] = None
    max_files: Optional[int] = None
    max_size_bytes: Optional[int] = None
    files_count: int
    active: bool
    has_password: bool
    created_at: datetime
    owner: Optional[dict] = None

    @classmethod
    def from_request(cls, req, owner=None) -> "UploadRequestRead":
        return cls.model_validate({**req.model_dump(), "has_password": bool(req.hashed_password), "owner": owner})


class UploadRequestInfo(CamelModel):
    token: str
    title: str
    message: Optional[str] = None
    expires_at: Optional[datetime] = None
    has_password: bool
    max_files: Optional[int] = None
    max_size_bytes: Optional[int] = None


class ReceivedFileRead(CamelModel):
    id: int
    original_name: str
    mime_type: str
    size: int
    uploader_name: Optional[str] = None
    uploader_email: Optional[str] = None
    message: Optional[str] = None
    uploaded_at: datetime


class DepositedFile(CamelModel):
    id: int
    original_name: str
    size: int


# --- settings ---

class PublicSettings(CamelModel):
    app_name: str
    logo_url: Optional[str] = None
    site_url: str = ""
    allow_registration: bool
    uploader_name_req: FieldRule
    uploader_email_req: FieldRule
    uploader_msg_req: FieldRule
    updated_at: datetime


class SmtpSettings(CamelModel):
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_from: str = ""
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_secure: bool = True


class SmtpUpdate(CamelModel):
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(default=None, ge=1, le=65535)
    smtp_from: Optional[str] = None
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_secure: Optional[bool] = None


class AppNameUpdate(CamelModel):
    app_name: str


class SiteUrlUpdate(CamelModel):
    site_url: Optional[str] = None


class RegistrationUpdate(CamelModel):
    allow_registration: bool


class UploaderFieldsUpdate(CamelModel):
    uploader_name_req: Optional[FieldRule] = None
    uploader_email_req: Optional[FieldRule] = None
    uploader_msg_req: Optional[FieldRule] = None


# --- admin ---

class CleanupResp(CamelModel):
    deleted_files: int
    deleted_upload_requests: int


class StatsResp(CamelModel):
    files_count: int
    shares_count: int
    upload_requests_count: int
    received_files_count: int
    total_size: int
    total_received_size: int
    disk: dict
