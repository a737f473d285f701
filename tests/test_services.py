import pytest

from domain.constraints import validate
from domain.exceptions import ConfigurationError, GeneratorOutputError
from domain.models import BlendRequest, Ingredient, Objective
from domain.services import FALLBACK_EXPLANATION, FALLBACK_NAME, synthesize_blend

from fakes import ScriptedGenerator, StaticCatalog, candidate, ingredient


REQUEST = BlendRequest(
    total_quantity=250,
    objective=Objective.daily,
    preferences={"method": "espresso", "flavor_direction": "chocolate"},
)


def pairs(result) -> list[tuple[str, int]]:
    return [(c.ingredient_code, c.quantity) for c in result.recipe]


@pytest.mark.asyncio
async def test_first_valid_candidate_wins(two_ingredients: list[Ingredient]) -> None:
    generator = ScriptedGenerator(candidate("Dark Morning", A=230, B=20))
    result = await synthesize_blend(
        REQUEST, catalog_source=StaticCatalog(*two_ingredients), generator=generator
    )

    assert pairs(result) == [("A", 230), ("B", 20)]
    assert result.used_fallback_repair is False
    assert result.attempts_used == 1
    assert result.name == "Dark Morning"
    assert result.explanations == {"A": "A explained", "B": "B explained"}
    assert result.pricing.total == 265
    assert result.target_profile["body"] == 8
    assert len(generator.requests) == 1
    assert generator.requests[0].previous_error is None
    assert [i.code for i in generator.requests[0].catalog] == ["A", "B"]


@pytest.mark.asyncio
async def test_violation_is_fed_into_next_attempt(two_ingredients: list[Ingredient]) -> None:
    generator = ScriptedGenerator(
        candidate(A=200, B=50),
        candidate(A=230, B=20),
    )
    result = await synthesize_blend(
        REQUEST, catalog_source=StaticCatalog(*two_ingredients), generator=generator
    )

    assert result.used_fallback_repair is False
    assert result.attempts_used == 2
    assert "exceeds available stock 40" in (generator.requests[1].previous_error or "")
    assert "exceeds available stock 40" in generator.requests[1].instruction


@pytest.mark.asyncio
async def test_exhaustion_repairs_best_candidate(two_ingredients: list[Ingredient]) -> None:
    generator = ScriptedGenerator(candidate(A=500, B=10))
    catalog_source = StaticCatalog(*two_ingredients)
    result = await synthesize_blend(
        REQUEST, catalog_source=catalog_source, generator=generator
    )

    assert pairs(result) == [("A", 230), ("B", 20)]
    assert result.used_fallback_repair is True
    assert result.attempts_used == 5
    assert result.best_attempt == 1
    assert len(generator.requests) == 5
    assert catalog_source.loads == 1
    assert set(result.explanations.values()) == {FALLBACK_EXPLANATION}
    validate(result.recipe, 250, {i.code: i for i in two_ingredients})

    out = result.to_dict()
    assert out["used_fallback_repair"] is True
    assert out["best_attempt"] == 1
    assert [line["ingredient_name"] for line in out["recipe"]] == [
        "Ingredient A",
        "Ingredient B",
    ]


@pytest.mark.asyncio
async def test_lowest_penalty_candidate_is_repaired(two_ingredients: list[Ingredient]) -> None:
    generator = ScriptedGenerator(
        candidate("First", A=100, B=10),
        candidate("Second", A=240, B=10),
        candidate("Third", A=10, B=10),
    )
    result = await synthesize_blend(
        REQUEST, catalog_source=StaticCatalog(*two_ingredients), generator=generator
    )

    assert result.used_fallback_repair is True
    assert result.best_attempt == 2
    assert result.best_penalty == 250
    assert result.name == "Second"
    assert pairs(result) == [("A", 230), ("B", 20)]


@pytest.mark.asyncio
async def test_unusable_output_never_becomes_best(two_ingredients: list[Ingredient]) -> None:
    generator = ScriptedGenerator(GeneratorOutputError("generator returned empty text"))
    result = await synthesize_blend(
        REQUEST, catalog_source=StaticCatalog(*two_ingredients), generator=generator
    )

    assert result.used_fallback_repair is True
    assert result.best_attempt is None
    assert result.name == FALLBACK_NAME
    assert pairs(result) == [("A", 230), ("B", 20)]
    assert generator.requests[1].previous_error == "generator returned empty text"


@pytest.mark.asyncio
async def test_attempt_budget_is_configurable(two_ingredients: list[Ingredient]) -> None:
    generator = ScriptedGenerator(candidate(A=1, B=1))
    result = await synthesize_blend(
        REQUEST,
        catalog_source=StaticCatalog(*two_ingredients),
        generator=generator,
        attempts=2,
    )
    assert result.attempts_used == 2
    assert len(generator.requests) == 2


@pytest.mark.asyncio
async def test_empty_catalog_is_a_configuration_error() -> None:
    generator = ScriptedGenerator(candidate(A=230, B=20))
    with pytest.raises(ConfigurationError):
        await synthesize_blend(
            REQUEST,
            catalog_source=StaticCatalog(ingredient("A", stock=0)),
            generator=generator,
        )
    assert generator.requests == []


@pytest.mark.asyncio
async def test_infeasible_total_is_a_configuration_error() -> None:
    catalog_source = StaticCatalog(ingredient("A", stock=30), ingredient("B", stock=30))
    with pytest.raises(ConfigurationError):
        await synthesize_blend(
            REQUEST,
            catalog_source=catalog_source,
            generator=ScriptedGenerator(candidate(A=100, B=150)),
        )
