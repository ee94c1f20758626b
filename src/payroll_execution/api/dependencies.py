"""Request-scoped dependencies: database session, acting employee, commit scope."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.database import async_session_factory
from payroll_execution.events import get_emitter

ACTOR_HEADER = "X-Actor-ID"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; closing it rolls back anything uncommitted."""
    async with async_session_factory() as session:
        yield session


def _bad_actor(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


async def get_actor_id(
    x_actor_id: Annotated[str | None, Header(alias=ACTOR_HEADER)] = None,
) -> UUID:
    """The employee performing the request; role checks run against this id."""
    if not x_actor_id:
        raise _bad_actor(f"{ACTOR_HEADER} header is required")
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise _bad_actor(f"Invalid {ACTOR_HEADER} format") from None


@asynccontextmanager
async def committing(db: AsyncSession) -> AsyncIterator[None]:
    """Commit the block's work, then publish the notifications it raised.

    Events emitted inside the block are held and dropped if the block
    or the commit raises.
    """
    with get_emitter().batch():
        yield
        await db.commit()


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActorId = Annotated[UUID, Depends(get_actor_id)]
