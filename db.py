from datetime import datetime, timedelta, timezone
import json
from typing import Any
from uuid import uuid4

from databases import Database
from databases.interfaces import Record

import config
from domain.models import SENSORY_AXES, Ingredient
from models import Job, JobStatus


CONFIG = config.Config()


RECOMMEND = "recommend"


CREATE_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS Jobs (
    id VARCHAR(64) PRIMARY KEY,
    type VARCHAR(64) NOT NULL,
    status VARCHAR(16) NOT NULL,
    payload TEXT NOT NULL,
    result TEXT,
    error TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    locked_at VARCHAR(40),
    locked_by VARCHAR(128),
    lease_token VARCHAR(64),
    created_at VARCHAR(40) NOT NULL,
    updated_at VARCHAR(40) NOT NULL
)
"""


CREATE_INGREDIENTS_TABLE = f"""
CREATE TABLE IF NOT EXISTS Ingredients (
    code VARCHAR(64) PRIMARY KEY,
    name VARCHAR(256),
    stock INTEGER NOT NULL DEFAULT 0,
    unit_cost REAL NOT NULL DEFAULT 0,
    tags TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    {", ".join(f"{axis} REAL" for axis in SENSORY_AXES)}
)
"""


CREATE_JOB = """
INSERT INTO Jobs(id, type, status, payload, attempts, created_at, updated_at)
VALUES (:id, :type, :status, :payload, 0, :now, :now)
"""


GET_JOB = "SELECT * FROM Jobs WHERE id = :id"


NEXT_QUEUED_JOB = """
SELECT id FROM Jobs WHERE status = :queued AND type = :type
ORDER BY created_at ASC LIMIT 1
"""


# The WHERE on status is the compare-and-swap: at most one claimant matches.
CLAIM_JOB = """
UPDATE Jobs
SET status = :running, locked_at = :now, locked_by = :owner,
    lease_token = :token, updated_at = :now
WHERE id = :id AND status = :expected
"""


BUMP_ATTEMPTS = """
UPDATE Jobs SET attempts = attempts + 1, updated_at = :now
WHERE id = :id AND lease_token = :token
"""


FINISH_JOB = """
UPDATE Jobs SET status = :status, result = :result, error = :error, updated_at = :now
WHERE id = :id AND lease_token = :token
"""


REQUEUE_JOB = """
UPDATE Jobs
SET status = :queued, error = :error, locked_at = NULL, locked_by = NULL,
    lease_token = NULL, updated_at = :now
WHERE id = :id AND lease_token = :token
"""


STALE_LEASES = """
SELECT id, lease_token FROM Jobs WHERE status = :running AND locked_at < :cutoff
"""


RECLAIM_JOB = """
UPDATE Jobs
SET status = :queued, error = :error, locked_at = NULL, locked_by = NULL,
    lease_token = NULL, updated_at = :now
WHERE id = :id AND status = :running AND lease_token = :token
"""


ACTIVE_INGREDIENTS = """
SELECT * FROM Ingredients WHERE active = 1 AND stock > 0 ORDER BY unit_cost ASC
"""


CREATE_INGREDIENT = f"""
INSERT INTO Ingredients(code, name, stock, unit_cost, tags, active, {", ".join(SENSORY_AXES)})
VALUES (:code, :name, :stock, :unit_cost, :tags, :active,
        {", ".join(f":{axis}" for axis in SENSORY_AXES)})
"""


db = Database(CONFIG.db_url)


class JobNotFound(Exception):
    pass


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def create_db(database: Database | None = None) -> None:
    database = db if database is None else database
    await database.execute(  # pyright: ignore[reportUnknownMemberType]
        query=CREATE_JOBS_TABLE
    )
    await database.execute(  # pyright: ignore[reportUnknownMemberType]
        query=CREATE_INGREDIENTS_TABLE
    )


def job_from_record(row: Record) -> Job:
    return Job(
        id=row["id"],
        type=row["type"],
        status=JobStatus(row["status"]),
        payload=json.loads(row["payload"]),
        result=json.loads(row["result"]) if row["result"] else None,
        error=row["error"],
        attempts=row["attempts"] or 0,
        locked_at=row["locked_at"],
        locked_by=row["locked_by"],
        lease_token=row["lease_token"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class JobsRepository:
    """Jobs table.

    Only the lease holder may move a running job on: every write after `claim`
    is conditioned on the lease token handed out by that claim.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(self, type: str, payload: dict[str, Any]) -> Job:
        id = uuid4().hex
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            CREATE_JOB,
            values={
                "id": id,
                "type": type,
                "status": JobStatus.queued.value,
                "payload": json.dumps(payload),
                "now": now_iso(),
            },
        )
        return await self.get(id)

    async def get(self, id: str) -> Job:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_JOB, values={"id": id}
        )
        if row is None:
            raise JobNotFound(f"{id}")
        return job_from_record(row)

    async def next_queued(self, type: str) -> str | None:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            NEXT_QUEUED_JOB, values={"queued": JobStatus.queued.value, "type": type}
        )
        return None if row is None else row["id"]

    async def claim(
        self,
        id: str,
        expected: JobStatus = JobStatus.queued,
        *,
        owner: str,
    ) -> Job | None:
        """Move `id` from `expected` to running under a fresh lease.

        Returns the leased job, or None when another claimant got there first.
        """
        token = uuid4().hex
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            CLAIM_JOB,
            values={
                "id": id,
                "expected": expected.value,
                "running": JobStatus.running.value,
                "owner": owner,
                "token": token,
                "now": now_iso(),
            },
        )
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_JOB, values={"id": id}
        )
        if row is None or row["lease_token"] != token:
            return None
        return job_from_record(row)

    async def lease_next(self, type: str, *, owner: str) -> Job | None:
        id = await self.next_queued(type)
        if id is None:
            return None
        return await self.claim(id, JobStatus.queued, owner=owner)

    async def bump_attempts(self, job: Job) -> int:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            BUMP_ATTEMPTS,
            values={"id": job.id, "token": job.lease_token, "now": now_iso()},
        )
        job.attempts += 1
        return job.attempts

    async def mark_succeeded(self, job: Job, result: dict[str, Any]) -> None:
        await self._finish(job, JobStatus.succeeded, result=result, error=None)

    async def mark_failed(self, job: Job, error: str) -> None:
        await self._finish(job, JobStatus.failed, result=None, error=error)

    async def _finish(
        self,
        job: Job,
        status: JobStatus,
        *,
        result: dict[str, Any] | None,
        error: str | None,
    ) -> None:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            FINISH_JOB,
            values={
                "id": job.id,
                "token": job.lease_token,
                "status": status.value,
                "result": None if result is None else json.dumps(result),
                "error": error,
                "now": now_iso(),
            },
        )
        job.status = status

    async def requeue(self, job: Job, error: str) -> None:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            REQUEUE_JOB,
            values={
                "id": job.id,
                "token": job.lease_token,
                "queued": JobStatus.queued.value,
                "error": error,
                "now": now_iso(),
            },
        )
        job.status = JobStatus.queued
        job.lease_token = None

    async def reclaim_stale(self, older_than: timedelta) -> list[str]:
        """Requeue running jobs whose lease is older than `older_than`."""
        cutoff = (datetime.now(timezone.utc) - older_than).isoformat()
        rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            STALE_LEASES, values={"running": JobStatus.running.value, "cutoff": cutoff}
        )
        reclaimed: list[str] = []
        for row in rows:
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                RECLAIM_JOB,
                values={
                    "id": row["id"],
                    "token": row["lease_token"],
                    "queued": JobStatus.queued.value,
                    "running": JobStatus.running.value,
                    "error": "lease expired",
                    "now": now_iso(),
                },
            )
            reclaimed.append(row["id"])
        return reclaimed


class IngredientsRepository:
    """Read side of the ingredient catalog."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def active(self) -> list[Ingredient]:
        rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            ACTIVE_INGREDIENTS
        )
        ingredients: list[Ingredient] = []
        for r in rows:
            fields = {
                "code": r["code"],
                "name": r["name"],
                "stock": r["stock"],
                "unit_cost": r["unit_cost"],
                "tags": json.loads(r["tags"]) if r["tags"] else [],
                "active": bool(r["active"]),
            }
            fields.update({axis: r[axis] for axis in SENSORY_AXES})
            ingredients.append(Ingredient.from_row(fields))
        return ingredients

    async def add(self, ingredient: Ingredient) -> None:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            CREATE_INGREDIENT,
            values={
                "code": ingredient.code,
                "name": ingredient.name,
                "stock": ingredient.stock,
                "unit_cost": ingredient.unit_cost,
                "tags": json.dumps(ingredient.tags),
                "active": 1 if ingredient.active else 0,
                **{axis: ingredient.sensory.get(axis, 5) for axis in SENSORY_AXES},
            },
        )
