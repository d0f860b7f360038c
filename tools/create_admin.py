import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is importable when running this script directly
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.core.security import get_password_hash
from filyo.db.session import engine, init_db
from filyo.crud import create_user, get_user_by_email


async def create_or_promote_admin(email: str, name: str, password: str) -> dict:
    await init_db()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        existing = await get_user_by_email(session, email)
        if existing:
            existing.role = "ADMIN"
            existing.active = True
            session.add(existing)
            await session.commit()
            return {"email": email, "name": existing.name, "promoted": True}

        if len(password) < 8:
            raise SystemExit("--password (at least 8 characters) is required for a new account")
        user = await create_user(
            session, email=email, name=name, hashed_password=get_password_hash(password), role="ADMIN"
        )
        return {"email": user.email, "name": user.name, "promoted": False}


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create a Filyo admin or promote an existing account")
    p.add_argument("--email", required=True, help="Admin email")
    p.add_argument("--name", default="Admin", help="Display name")
    p.add_argument("--password", help="Password for a new account (ignored when promoting)")
    return p.parse_args()


def main():
    args = parse_args()
    result = asyncio.run(create_or_promote_admin(args.email, args.name, args.password or ""))
    if result["promoted"]:
        print(f"Promoted existing user '{result['email']}' to admin")
    else:
        print(f"Created admin: {result['email']} (name='{result['name']}')")


if __name__ == "__main__":
    main()
