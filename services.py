"""Functionality behind the routes."""

from typing import Any

from db import RECOMMEND, JobsRepository
from domain.models import BlendRequest


async def enqueue_blend(payload: dict[str, Any], *, jobs: JobsRepository) -> dict[str, Any]:
    """Persist a blend request as a queued job. Never waits on the generator."""
    request = BlendRequest.from_payload(payload)
    job = await jobs.create(RECOMMEND, request.to_payload())
    return {"job_id": job.id, "status": job.status.value}


async def poll_job(job_id: str, *, jobs: JobsRepository) -> dict[str, Any]:
    job = await jobs.get(job_id)
    return job.to_dict()
