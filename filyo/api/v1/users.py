import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.deps import require_admin, get_db
from filyo.schemas import UserCreate, UserRead, UserUpdate
from filyo.models import User
from filyo.crud import create_user, delete_user, get_user_by_email
from filyo.core.errors import Conflict
from filyo.core.security import get_password_hash

router = APIRouter()
logger = logging.getLogger("filyo.users")


@router.get("/", response_model=list[UserRead], dependencies=[Depends(require_admin)])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.exec(select(User).order_by(User.created_at))
    return result.all()


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def admin_create_user(u: UserCreate, db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    if await get_user_by_email(db, u.email):
        raise Conflict("Email already exists")
    user = await create_user(
        db, email=u.email, name=u.name, hashed_password=get_password_hash(u.password), role=u.role
    )
    logger.info("Admin %s created user %s", admin.id, user.email)
    return user


@router.patch("/{user_id}", response_model=UserRead)
async def admin_update_user(
    user_id: int, payload: UserUpdate, db: AsyncSession = Depends(get_db), admin=Depends(require_admin)
):
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if payload.email is not None and payload.email != user.email:
        if await get_user_by_email(db, payload.email):
            raise Conflict("Email already exists")
        user.email = payload.email
    if payload.name is not None:
        user.name = payload.name
    if payload.role is not None:
        user.role = payload.role
    if payload.active is not None:
        user.active = payload.active
    if payload.password:
        user.hashed_password = get_password_hash(payload.password)

    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}")
async def admin_delete_user(user_id: int, db: AsyncSession = Depends(get_db), admin=Depends(require_admin)):
    if admin.id == user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    await delete_user(db, user)
    logger.info("Admin %s deleted user %s", admin.id, user_id)
    return {"success": True}
