"""Member identity for reward endpoints.

The edge gateway authenticates the member and forwards their id in
``X-Session-User``; this service only checks the id belongs to a known member.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from placeclub_api.db.session import get_session
from placeclub_api.models.user import User
from placeclub_api.observability.tracing import annotate_member


def parse_member_id(raw: str | None) -> UUID:
    if not raw or not raw.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing session user context")
    try:
        return UUID(raw.strip())
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session user identifier",
        ) from error


async def require_member_session(
    session_user: str | None = Header(None, alias="X-Session-User"),
    db: AsyncSession = Depends(get_session),
) -> User:
    member_id = parse_member_id(session_user)
    annotate_member(member_id)

    member = await db.get(User, member_id)
    if member is None:
        logger.info("Reward request from unknown member", user_id=str(member_id))
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session user not found")
    return member


__all__ = ["parse_member_id", "require_member_session"]
