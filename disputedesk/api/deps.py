import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from disputedesk.common.enums import ActorRole
from disputedesk.common.exceptions import UnauthorizedError
from disputedesk.common.security import decode_token
from disputedesk.core.disputes.schemas import Actor
from disputedesk.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_current_actor(
    authorization: str | None = Header(None, description="Bearer <token>"),
) -> Actor:
    """Identity comes from the auth provider's token; claims are trusted as verified."""
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Invalid authorization header format")

    token = authorization[len("Bearer "):]
    try:
        payload = decode_token(token)
    except ValueError:
        raise UnauthorizedError("Invalid or expired token")

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    try:
        return Actor(id=uuid.UUID(payload["sub"]), role=ActorRole(payload["role"]))
    except (KeyError, ValueError):
        raise UnauthorizedError("Invalid token payload")


def require_role(*roles: ActorRole):
    async def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise UnauthorizedError(
                f"This action requires one of the following roles: {', '.join(r.value for r in roles)}"
            )
        return actor

    return role_checker
