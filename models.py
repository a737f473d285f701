from enum import Enum
from typing import Any


class JobStatus(Enum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.succeeded, JobStatus.failed)


class Job:
    def __init__(
        self,
        *,
        id: str,
        type: str,
        status: JobStatus,
        payload: dict[str, Any],
        result: dict[str, Any] | None = None,
        error: str | None = None,
        attempts: int = 0,
        locked_at: str | None = None,
        locked_by: str | None = None,
        lease_token: str | None = None,
        created_at: str = "",
        updated_at: str = "",
    ) -> None:
        self.id = id
        self.type = type
        self.status = status
        self.payload = payload
        self.result = result
        self.error = error
        self.attempts = attempts
        self.locked_at = locked_at
        self.locked_by = locked_by
        self.lease_token = lease_token
        self.created_at = created_at
        self.updated_at = updated_at

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, status={self.status.value}, attempts={self.attempts})>"

    def to_dict(self) -> dict[str, Any]:
        """The view a polling client gets."""
        return {
            "id": self.id,
            "type": self.type,
            "status": self.status.value,
            "attempts": self.attempts,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
