from pathlib import Path

from databases import Database
import pytest
import pytest_asyncio

import config
import db
from domain.models import Ingredient

from fakes import ingredient


@pytest.fixture
def settings() -> config.Config:
    return config.Config(
        worker_id="worker-test",
        worker_enabled=True,
        worker_poll_seconds=0.5,
        worker_idle_sleep_seconds=0.2,
        job_max_attempts=2,
        generation_attempts=5,
        lease_timeout_seconds=0,
    )


@pytest.fixture
def two_ingredients() -> list[Ingredient]:
    return [
        ingredient("A", stock=1000, unit_cost=0.85, body=8, chocolate=7),
        ingredient("B", stock=40, unit_cost=0.95, acidity=8, fruitiness=9),
    ]


@pytest_asyncio.fixture
async def database(tmp_path: Path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.connect()
    await db.create_db(database)
    yield database
    await database.disconnect()
