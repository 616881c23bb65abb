from typing import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import AsyncSessionLocal
from app.services.swush_client import SwushClient


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


def get_swush_client(request: Request) -> SwushClient:
    """SWUSH client wired at startup (see app.main lifespan)."""
    client = getattr(request.app.state, "swush_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SWUSH API is not configured",
        )
    return client
