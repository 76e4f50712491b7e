# molle/api/dependencies.py

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request, status

from molle.domain.state_machine import UserRole
from molle.infrastructure.db.session import SessionLocal


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: UserRole


def get_caller(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Caller | None:
    """
    Identity as forwarded by the auth gateway in front of this service.
    Sessions and tokens are verified there, not here.
    """
    if not x_user_id or not x_user_role:
        return None
    try:
        role = UserRole(x_user_role.upper())
    except ValueError:
        return None
    return Caller(user_id=x_user_id, role=role)


def require_roles(*roles: UserRole):
    allowed = set(roles)
    label = " or ".join(role.value.title() for role in roles)

    def dependency(caller: Caller | None = Depends(get_caller)) -> Caller:
        if caller is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )
        if caller.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden: {label} access required",
            )
        return caller

    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_host_or_admin = require_roles(UserRole.HOST, UserRole.ADMIN)


async def get_raw_body(request: Request) -> bytes:
    """Unparsed request body, for handlers that verify a signature over it."""
    return await request.body()
