"""Polling worker.

One `Worker` per process. `tick` leases at most one job and runs it to
completion; `run` calls `tick` on a timer. Several processes can share one
database: the store's conditional claim is what keeps them apart.
"""

import asyncio
from datetime import timedelta
from enum import Enum
import logging
from typing import Any, Protocol

from rich.logging import RichHandler

import config
import db
from domain.aopenai import Generator, OpenAIGenerator
from domain.exceptions import BlendError
from domain.models import BlendRequest
from domain.services import CatalogSource, synthesize_blend
from models import Job


logger = logging.getLogger(__name__)


class TickOutcome(Enum):
    disabled = "disabled"
    busy = "busy"
    idle = "idle"
    succeeded = "succeeded"
    requeued = "requeued"
    failed = "failed"
    error = "error"


class JobStore(Protocol):
    async def lease_next(self, type: str, *, owner: str) -> Job | None:
        ...

    async def bump_attempts(self, job: Job) -> int:
        ...

    async def mark_succeeded(self, job: Job, result: dict[str, Any]) -> None:
        ...

    async def mark_failed(self, job: Job, error: str) -> None:
        ...

    async def requeue(self, job: Job, error: str) -> None:
        ...

    async def reclaim_stale(self, older_than: timedelta) -> list[str]:
        ...


class Worker:
    def __init__(
        self,
        *,
        jobs: JobStore,
        catalog_source: CatalogSource,
        generator: Generator,
        settings: config.Config | None = None,
    ) -> None:
        self.jobs = jobs
        self.catalog_source = catalog_source
        self.generator = generator
        self.settings = config.Config() if settings is None else settings
        self.busy = False
        self._stopping = asyncio.Event()

    @property
    def id(self) -> str:
        return self.settings.worker_id

    async def tick(self) -> TickOutcome:
        if not self.settings.worker_enabled:
            return TickOutcome.disabled
        if self.busy:
            return TickOutcome.busy

        self.busy = True
        try:
            return await self._tick()
        finally:
            self.busy = False

    async def _tick(self) -> TickOutcome:
        if self.settings.lease_timeout_seconds > 0:
            reclaimed = await self.jobs.reclaim_stale(
                timedelta(seconds=self.settings.lease_timeout_seconds)
            )
            for id in reclaimed:
                logger.warning("Reclaimed job %s from an expired lease", id)

        job = await self.jobs.lease_next(db.RECOMMEND, owner=self.id)
        if job is None:
            return TickOutcome.idle

        attempts = await self.jobs.bump_attempts(job)
        logger.info("Leased job %s (attempt %d)", job.id, attempts)

        try:
            request = BlendRequest.from_payload(job.payload)
            result = await synthesize_blend(
                request,
                catalog_source=self.catalog_source,
                generator=self.generator,
                attempts=self.settings.generation_attempts,
                packaging_cost=self.settings.packaging_cost,
                margin_fraction=self.settings.margin_fraction,
            )
        except BlendError as e:
            return await self._retry_or_fail(job, attempts, str(e))
        except Exception as e:
            logger.exception("Job %s crashed", job.id)
            return await self._retry_or_fail(job, attempts, f"{type(e).__name__}: {e}")

        await self.jobs.mark_succeeded(job, result.to_dict())
        logger.info(
            "Job %s succeeded (fallback=%s, attempts=%d)",
            job.id,
            result.used_fallback_repair,
            result.attempts_used,
        )
        return TickOutcome.succeeded

    async def _retry_or_fail(self, job: Job, attempts: int, error: str) -> TickOutcome:
        if attempts < self.settings.job_max_attempts:
            logger.warning("Job %s requeued: %s", job.id, error)
            await self.jobs.requeue(job, error)
            return TickOutcome.requeued
        logger.error("Job %s failed: %s", job.id, error)
        await self.jobs.mark_failed(job, error)
        return TickOutcome.failed

    async def run(self) -> None:
        if not self.settings.worker_enabled:
            logger.info("Worker disabled (WORKER_ENABLED=0)")
            return
        logger.info(
            "Worker started: %s poll=%ss", self.id, self.settings.worker_poll_seconds
        )
        while not self._stopping.is_set():
            try:
                outcome = await self.tick()
            except Exception:
                logger.exception("Worker tick error")
                outcome = TickOutcome.error
            delay = (
                self.settings.worker_idle_sleep_seconds
                if outcome is TickOutcome.idle
                else self.settings.worker_poll_seconds
            )
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except TimeoutError:
                pass

    def stop(self) -> None:
        self._stopping.set()


def openai_generator(settings: config.Config) -> OpenAIGenerator:
    return OpenAIGenerator(
        model=settings.openai_model,
        temperature=settings.openai_temperature,
        max_tokens=settings.openai_max_output_tokens,
        timeout=settings.generator_timeout_seconds,
    )


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


async def main() -> None:
    settings = config.Config()
    setup_logging(settings.log_level)
    await db.db.connect()
    try:
        await db.create_db()
        worker = Worker(
            jobs=db.JobsRepository(db.db),
            catalog_source=db.IngredientsRepository(db.db),
            generator=openai_generator(settings),
            settings=settings,
        )
        await worker.run()
    finally:
        await db.db.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
