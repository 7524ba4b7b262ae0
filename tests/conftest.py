import os
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Keep the module-level engine off PostgreSQL; tests bring their own databases.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./coupon_engine_test.db")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from coupon_engine.core import metrics  # noqa: E402
from coupon_engine.core.clock import FixedClock  # noqa: E402
from coupon_engine.db.base import Base  # noqa: E402
from coupon_engine.db.session import build_engine, build_sessionmaker  # noqa: E402
from coupon_engine.services.engine import EngineConfig  # noqa: E402

# Wednesday; weekday 3 with Sunday = 0.
WEDNESDAY_NOON = datetime(2026, 10, 21, 12, 0, 0, tzinfo=timezone.utc)


def sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(WEDNESDAY_NOON)


@pytest.fixture
def config(clock: FixedClock) -> EngineConfig:
    codes = iter(f"GEN{n:03d}" for n in range(1000))
    return EngineConfig(clock=clock, code_generator=lambda: next(codes))


@pytest.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = build_engine(sqlite_url(tmp_path / "coupons.db"), poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()
