import asyncio
import inspect
import pathlib
import sys
from datetime import datetime, timezone

import pytest
from sqlalchemy.pool import NullPool

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portfolio_tracker.config import AppSettings  # noqa: E402
from portfolio_tracker.db import Database  # noqa: E402

FIXED_NOW = datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            funcargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**funcargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> AppSettings:
    return AppSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'portfolio.db'}",
        quote_timeout_seconds=1.0,
        refresh_concurrency=4,
        core_symbols={},
        telemetry_enabled=False,
    )


@pytest.fixture
def database(settings: AppSettings) -> Database:
    db = Database(settings.database_url, poolclass=NullPool)

    async def _init() -> None:
        await db.create_all()
        await db.dispose()

    asyncio.run(_init())
    return db


@pytest.fixture
def clock():
    return lambda: FIXED_NOW
