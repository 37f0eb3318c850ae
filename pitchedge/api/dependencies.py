"""FastAPI dependencies for PitchEdge."""

import hmac
from collections.abc import AsyncGenerator

import redis.asyncio as redis
from fastapi import Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from pitchedge.config import get_settings
from pitchedge.models.base import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency; commits when the request succeeds."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_redis() -> AsyncGenerator[redis.Redis, None]:
    """Get Redis client dependency."""
    settings = get_settings()
    client = redis.from_url(settings.redis_url)
    try:
        yield client
    finally:
        await client.aclose()


async def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """
    Guard trigger endpoints with the cron secret bearer token.

    Open when no secret is configured.
    """
    secret = get_settings().cron_secret
    if not secret:
        return
    expected = f"Bearer {secret}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
