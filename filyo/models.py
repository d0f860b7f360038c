from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import BigInteger, Column, DateTime
from datetime import datetime, timezone


def utcnow() -> datetime:
    # naive UTC; timestamp columns are plain DateTime without tz
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    hashed_password: str
    role: str = Field(default="USER")  # 'USER' or 'ADMIN'
    active: bool = Field(default=True)
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    last_login: Optional[datetime] = Field(default=None, sa_type=DateTime)


class File(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    filename: str
    original_name: str
    mime_type: str = "application/octet-stream"
    size: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    path: str
    hashed_password: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
    max_downloads: Optional[int] = None
    downloads: int = Field(default=0)
    uploaded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Share(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(index=True, unique=True)
    file_id: int = Field(foreign_key="file.id", index=True)
    hashed_password: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    max_downloads: Optional[int] = None
    downloads: int = Field(default=0)
    label: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class UploadRequest(SQLModel, table=True):
    __tablename__ = "upload_request"

    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(index=True, unique=True)
    title: str
    message: Optional[str] = None
    owner_id: int = Field(foreign_key="user.id", index=True)
    hashed_password: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
    max_files: Optional[int] = None
    max_size_bytes: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    files_count: int = Field(default=0)
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class ReceivedFile(SQLModel, table=True):
    __tablename__ = "received_file"

    id: Optional[int] = Field(default=None, primary_key=True)
    upload_request_id: int = Field(foreign_key="upload_request.id", index=True)
    filename: str
    original_name: str
    mime_type: str = "application/octet-stream"
    size: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    path: str
    uploader_name: Optional[str] = None
    uploader_email: Optional[str] = None
    message: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class AppSettings(SQLModel, table=True):
    __tablename__ = "app_settings"

    id: str = Field(default="singleton", primary_key=True)
    app_name: str = "Filyo"
    logo_url: Optional[str] = None
    site_url: Optional[str] = None

    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_from: Optional[str] = None
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_secure: bool = Field(default=True)

    allow_registration: bool = Field(default=False)

    # deposit form policy: 'hidden' | 'optional' | 'required'
    uploader_name_req: str = Field(default="optional")
    uploader_email_req: str = Field(default="optional")
    uploader_msg_req: str = Field(default="optional")

    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
