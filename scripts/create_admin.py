#!/usr/bin/env python3
"""
Create a municipal administrator in the configured DATABASE_URL and print credentials + JWT.

Optional environment variables:
- ADMIN_USERNAME
- ADMIN_EMAIL
- ADMIN_PASSWORD

The first administrator cannot be created through the API, which only lets
administrators create municipal users.
"""
import asyncio
import os
import secrets
import sys

try:
    from participium.auth import create_access_token, create_user
    from participium.database import async_session_factory, init_db
    from participium.permissions import UserRole
except Exception as e:
    print("Failed to import application modules:", e, file=sys.stderr)
    sys.exit(2)


async def create_admin():
    username = os.environ.get("ADMIN_USERNAME", f"admin-{secrets.token_hex(4)}")
    email = os.environ.get("ADMIN_EMAIL")
    password = os.environ.get("ADMIN_PASSWORD") or secrets.token_urlsafe(12)

    await init_db()
    async with async_session_factory() as session:
        admin = await create_user(
            session,
            username=username,
            password=password,
            role=UserRole.ADMINISTRATOR,
            email=email,
        )
        token = create_access_token(subject=admin.id, role=admin.role)

    print("ADMIN_CREATED")
    print(f"id: {admin.id}")
    print(f"username: {admin.username}")
    print(f"email: {admin.email}")
    print(f"password: {password}")
    print(f"access_token: {token}")


def main():
    asyncio.run(create_admin())


if __name__ == "__main__":
    main()
