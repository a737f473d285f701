import json
from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from domain.aopenai import GenerationRequest, OpenAIGenerator, parse_candidate
from domain.exceptions import GeneratorOutputError
from domain.models import Objective
from domain.prompts import CreateBlendPrompt

from fakes import ingredient


VALID = json.dumps(
    {
        "name": "Morning Structure",
        "recipe": [
            {"ingredient_code": "A", "quantity": 150, "explanation": "Body."},
            {"ingredient_code": "B", "quantity": 100, "explanation": "Lift."},
        ],
        "reasoning": "Balanced.",
    }
)


class FakeCompletions:
    def __init__(self, content: str | None = None, error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions: FakeCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def request(previous_error: str | None = None) -> GenerationRequest:
    return GenerationRequest(
        total=250,
        objective=Objective.daily,
        preferences={"method": "espresso"},
        target_profile={"body": 7},
        catalog=[ingredient("A"), ingredient("B")],
        previous_error=previous_error,
    )


def test_parse_candidate() -> None:
    got = parse_candidate(VALID)
    assert got.name == "Morning Structure"
    assert [(c.ingredient_code, c.quantity) for c in got.recipe] == [("A", 150), ("B", 100)]
    assert got.explanations == {"A": "Body.", "B": "Lift."}
    assert got.reasoning == "Balanced."


def test_parse_candidate_keeps_bad_numbers_for_scoring() -> None:
    raw = json.dumps({"recipe": [{"ingredient_code": "A", "quantity": 12.5}]})
    got = parse_candidate(raw)
    assert got.recipe[0].quantity == 12.5
    assert got.name == ""


@pytest.mark.parametrize(
    "raw",
    (
        "",
        "   ",
        "Sure! Here is your blend.",
        json.dumps({"name": "no recipe"}),
        json.dumps({"recipe": [{"ingredient_code": "A"}]}),
        json.dumps({"recipe": "A:100,B:150"}),
    ),
)
def test_parse_candidate_rejects_wrong_shape(raw: str) -> None:
    with pytest.raises(GeneratorOutputError):
        parse_candidate(raw)


def test_prompt_restates_constraints_and_feedback() -> None:
    first = str(CreateBlendPrompt(total=250, objective=Objective.premium))
    assert "exactly 250" in first
    assert "at least 20" in first
    assert "premium" in first
    assert "Previous attempt" not in first

    retry = str(
        CreateBlendPrompt(total=250, objective=Objective.daily, previous_error="bad sum")
    )
    assert "Previous attempt failed validation with error: bad sum" in retry


@pytest.mark.asyncio
async def test_generator_sends_schema_and_catalog() -> None:
    completions = FakeCompletions(content=VALID)
    generator = OpenAIGenerator(fake_client(completions), model="test-model")

    got = await generator.generate(request(previous_error="quantities must sum to 250"))

    assert got.name == "Morning Structure"
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"]["type"] == "json_schema"
    assert call["response_format"]["json_schema"]["strict"] is True
    system, user = call["messages"]
    assert "quantities must sum to 250" in system["content"]
    payload = json.loads(user["content"])
    assert payload["total_quantity"] == 250
    assert [i["code"] for i in payload["available_ingredients"]] == ["A", "B"]


@pytest.mark.asyncio
async def test_generator_wraps_transport_errors() -> None:
    error = openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    )
    generator = OpenAIGenerator(fake_client(FakeCompletions(error=error)))
    with pytest.raises(GeneratorOutputError):
        await generator.generate(request())


@pytest.mark.asyncio
async def test_generator_rejects_empty_content() -> None:
    generator = OpenAIGenerator(fake_client(FakeCompletions(content=None)))
    with pytest.raises(GeneratorOutputError):
        await generator.generate(request())
