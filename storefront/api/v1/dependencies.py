from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.order.status import Role
from storefront.infrastructure.database import Database


class CurrentUser:
    def __init__(self, user_id: str, role: Role):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


async def get_db_session(request: Request) -> AsyncSession:
    """Get database session from app state"""
    db: Database = request.app.state.db
    async for session in db.get_session():
        yield session


def get_current_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> CurrentUser:
    """
    Caller identity as forwarded by the authenticating gateway.

    Token verification happens upstream; this service only trusts the headers.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        role = Role(x_user_role.lower()) if x_user_role else Role.CUSTOMER
    except ValueError:
        raise HTTPException(status_code=403, detail=f"Unknown role: {x_user_role}")

    return CurrentUser(user_id=x_user_id, role=role)


def require_admin(user: CurrentUser) -> None:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Administrator role required")
