from __future__ import annotations

import os
from pathlib import Path
import tempfile

# Point the app at a throwaway sqlite database before any threereco module reads settings.
_DB_DIR = Path(tempfile.mkdtemp(prefix="threereco-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR / 'threereco.db'}")
os.environ.setdefault("SESSION_COOKIE_DOMAIN", "")
# Minimum bcrypt work factor keeps password hashing fast in tests.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SEED_ON_STARTUP", "false")

import pytest  # noqa: E402

from threereco.domain.models import Base  # noqa: E402
from threereco.persistence.db import engine  # noqa: E402


@pytest.fixture(autouse=True)
async def reset_schema() -> None:
    # Every test starts from an empty schema built from the ORM metadata.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()
