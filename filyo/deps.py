from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from filyo.core.security import decode_token
from filyo.db.session import get_session
from filyo.crud import get_user_by_id
from filyo.models import User
from sqlmodel.ext.asyncio.session import AsyncSession

# OAuth2 scheme (password flow)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


async def get_db():
    async for s in get_session():
        yield s


async def _user_from_token(token: str, db: AsyncSession) -> User:
    try:
        payload = decode_token(token)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing token")

    user = await get_user_by_id(db, user_id)
    if not user or not user.active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user


async def get_current_user(token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)) -> User:
    return await _user_from_token(token, db)


async def get_optional_user(
    token: str | None = Depends(optional_oauth2_scheme), db: AsyncSession = Depends(get_db)
) -> User | None:
    if not token:
        return None
    try:
        return await _user_from_token(token, db)
    except HTTPException:
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "ADMIN":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return user
