"""The generator boundary.

Everything the model says is untrusted. `parse_candidate` is the single place
where raw model text becomes a `Candidate`; anything it cannot read is
rejected with `GeneratorOutputError` and never reaches scoring.
"""

from dataclasses import dataclass, field
import json
import logging
from typing import Any, Protocol

import openai
from pydantic import BaseModel, ValidationError

from domain.exceptions import GeneratorOutputError
from domain.models import (
    MIN_QUANTITY,
    MAX_COMPONENTS,
    Candidate,
    Component,
    Ingredient,
    Objective,
    SensoryProfile,
)
from domain.prompts import CreateBlendPrompt


DEFAULT_MODEL = "gpt-4o-2024-08-06"
MAX_TOKENS = 1800
TIMEOUT = 60 * 2
FORMAT_NAME = "blend_v1"


OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["name", "recipe", "reasoning"],
    "properties": {
        "name": {"type": "string"},
        "recipe": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["ingredient_code", "quantity", "explanation"],
                "properties": {
                    "ingredient_code": {"type": "string"},
                    "quantity": {"type": "integer"},
                    "explanation": {"type": "string"},
                },
            },
        },
        "reasoning": {"type": "string"},
    },
}


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    total: int
    objective: Objective
    preferences: dict[str, Any]
    target_profile: SensoryProfile
    catalog: list[Ingredient] = field(default_factory=list)
    previous_error: str | None = None

    @property
    def instruction(self) -> str:
        return str(
            CreateBlendPrompt(
                total=self.total,
                objective=self.objective,
                previous_error=self.previous_error,
            )
        )

    def payload(self) -> dict[str, Any]:
        return {
            "total_quantity": self.total,
            "objective": self.objective.value,
            "preferences": self.preferences,
            "target_profile": self.target_profile,
            "available_ingredients": [i.to_dict() for i in self.catalog],
            "constraints_hint": {
                "min_quantity_per_ingredient": MIN_QUANTITY,
                "max_ingredients": MAX_COMPONENTS,
            },
        }


class Generator(Protocol):
    async def generate(self, request: GenerationRequest) -> Candidate:
        ...


class ComponentPayload(BaseModel):
    ingredient_code: str
    quantity: int | float
    explanation: str = ""


class CandidatePayload(BaseModel):
    name: str = ""
    recipe: list[ComponentPayload]
    reasoning: str = ""


def parse_candidate(raw: str) -> Candidate:
    raw = raw.strip()
    if not raw:
        raise GeneratorOutputError("generator returned empty text")
    try:
        payload = CandidatePayload.model_validate_json(raw)
    except ValidationError as e:
        raise GeneratorOutputError(
            f"generator output does not match the expected shape: {e.error_count()} error(s)"
        ) from e

    explanations: dict[str, str] = {}
    for c in payload.recipe:
        if c.explanation:
            explanations.setdefault(c.ingredient_code, c.explanation)

    return Candidate(
        recipe=[Component(c.ingredient_code, c.quantity) for c in payload.recipe],
        name=payload.name,
        explanations=explanations,
        reasoning=payload.reasoning,
    )


class OpenAIGenerator:
    def __init__(
        self,
        openai_client: openai.AsyncClient | None = None,
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.2,
        max_tokens: int = MAX_TOKENS,
        timeout: float = TIMEOUT,
    ) -> None:
        self.openai_client = (
            openai.AsyncClient(timeout=timeout) if openai_client is None else openai_client
        )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, request: GenerationRequest) -> Candidate:
        try:
            resp = await self.openai_client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                max_completion_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": request.instruction},
                    {"role": "user", "content": json.dumps(request.payload())},
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": FORMAT_NAME,
                        "strict": True,
                        "schema": OUTPUT_SCHEMA,
                    },
                },
            )
        except openai.APIError as e:
            logger.warning("Generator call failed: %r", e)
            raise GeneratorOutputError(f"generator call failed: {e}") from e

        if not resp.choices:
            raise GeneratorOutputError("generator returned no choices")
        return parse_candidate(resp.choices[0].message.content or "")
