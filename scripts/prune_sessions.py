from __future__ import annotations

import asyncio

from threereco.core.config import get_settings
from threereco.core.logging import configure_logging
from threereco.persistence.db import SessionLocal, engine
from threereco.services.auth.sessions import SessionManager


async def prune() -> None:
    # Expired sessions are rejected on use; this only keeps the table bounded.
    manager = SessionManager(SessionLocal, ttl_seconds=get_settings().session_ttl_seconds)
    deleted = await manager.purge_expired()
    await engine.dispose()
    print(f"pruned_sessions={deleted}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(prune())
