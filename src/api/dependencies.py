"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.domain.entities import Principal
from src.domain.enums import ActorRole
from src.infrastructure.database import async_session_factory
from src.infrastructure.notifications import Notifier, NullNotifier


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_principal(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Principal:
    """Caller identity, as forwarded by the authenticating gateway."""
    if x_user_id is None or x_user_role is None:
        raise HTTPException(status_code=401, detail="Missing identity headers")
    try:
        role = ActorRole(x_user_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=401, detail=f"Unknown role {x_user_role!r}"
        ) from None
    return Principal(id=x_user_id, role=role)


async def get_notifier(request: Request) -> Notifier:
    return getattr(request.app.state, "notifier", None) or NullNotifier()
