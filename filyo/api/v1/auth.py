import logging

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.deps import get_db, get_current_user, get_optional_user
from filyo.crud import (
    count_users,
    create_user,
    get_app_settings,
    get_user_by_email,
)
from filyo.core.errors import Conflict
from filyo.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
)
from filyo.models import User, utcnow
from filyo.schemas import LoginReq, LoginResp, PasswordChange, ProfileUpdate, Token, UserCreate, UserRead
from filyo.utils.storage import remove_blob, save_image, url_to_path

router = APIRouter()
logger = logging.getLogger("filyo.auth")

AVATAR_FORMATS = (".png", ".jpg", ".jpeg", ".webp", ".gif")


async def _authenticate(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if not user or not user.active or not verify_password(password, user.hashed_password):
        logger.warning("Failed login for %s", email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")

    user.last_login = utcnow()
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User %s logged in", user.id)
    return user


@router.get("/setup")
async def setup(db: AsyncSession = Depends(get_db)):
    return {"setupNeeded": await count_users(db) == 0}


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register(
    u: UserCreate,
    caller: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    # the very first account bootstraps the instance as admin
    first = await count_users(db) == 0
    if first:
        role = "ADMIN"
    elif caller is not None and caller.role == "ADMIN":
        role = u.role
    else:
        app_settings = await get_app_settings(db)
        if not app_settings.allow_registration:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is disabled")
        role = "USER"

    if await get_user_by_email(db, u.email):
        raise Conflict("Email already exists")

    user = await create_user(
        db,
        email=u.email,
        name=u.name,
        hashed_password=get_password_hash(u.password),
        role=role,
    )
    logger.info("Created user %s (%s)", user.email, user.role)
    return user


@router.post("/login", response_model=LoginResp)
async def login(body: LoginReq, db: AsyncSession = Depends(get_db)):
    user = await _authenticate(db, body.email, body.password)
    return {"token": create_access_token(user.id, user.role), "user": UserRead.model_validate(user)}


@router.post("/token", response_model=Token)
async def token(form_data: OAuth2PasswordRequestForm = Depends(),
                db: AsyncSession = Depends(get_db)):

    user = await _authenticate(db, form_data.username, form_data.password)
    return {"access_token": create_access_token(user.id, user.role), "token_type": "bearer"}


@router.get("/me", response_model=UserRead)
async def me(current: User = Depends(get_current_user)):
    return current


@router.patch("/profile", response_model=UserRead)
async def update_profile(
    body: ProfileUpdate,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid name")
    current.name = name
    db.add(current)
    await db.commit()
    await db.refresh(current)
    return current


@router.post("/change-password")
async def change_password(
    body: PasswordChange,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not verify_password(body.current_password, current.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    current.hashed_password = get_password_hash(body.new_password)
    db.add(current)
    await db.commit()
    logger.info("User %s changed password", current.id)
    return {"success": True}


@router.post("/avatar")
async def upload_avatar(
    upload_file: UploadFile = File(...),
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    avatar_url = await save_image(upload_file, "avatars", f"avatar_{current.id}_", AVATAR_FORMATS)
    if current.avatar_url:
        await remove_blob(url_to_path(current.avatar_url))
    current.avatar_url = avatar_url
    db.add(current)
    await db.commit()
    logger.debug("Avatar updated for user %s", current.id)
    return {"avatarUrl": avatar_url}


@router.delete("/avatar")
async def delete_avatar(current: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    if current.avatar_url:
        await remove_blob(url_to_path(current.avatar_url))
    current.avatar_url = None
    db.add(current)
    await db.commit()
    return {"success": True}
