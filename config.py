from enum import Enum
import uuid

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


def default_worker_id() -> str:
    return f"worker-{uuid.uuid4().hex[:12]}"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: Env = Env.local
    db_url: str = "sqlite+aiosqlite:///blends.db"
    log_level: str = "INFO"

    openai_model: str = "gpt-4o-2024-08-06"
    openai_temperature: float = 0.2
    openai_max_output_tokens: int = 1800
    generator_timeout_seconds: float = 120.0
    generation_attempts: int = 5

    packaging_cost: float = 15.0
    margin_fraction: float = 0.15

    worker_id: str = Field(default_factory=default_worker_id)
    worker_enabled: bool = True
    worker_poll_seconds: float = 1.5
    worker_idle_sleep_seconds: float = 0.6
    job_max_attempts: int = 2
    lease_timeout_seconds: float = 600.0

    @field_validator("openai_max_output_tokens")
    @classmethod
    def _min_output_tokens(cls, v: int) -> int:
        return max(1200, v)

    @field_validator("generation_attempts", "job_max_attempts")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(1, v)

    @field_validator("worker_poll_seconds")
    @classmethod
    def _min_poll(cls, v: float) -> float:
        return max(0.5, v)

    @field_validator("worker_idle_sleep_seconds")
    @classmethod
    def _min_idle(cls, v: float) -> float:
        return max(0.2, v)
