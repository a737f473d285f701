import logging
from typing import Protocol

from domain.aopenai import GenerationRequest, Generator
from domain.constraints import score, validate
from domain.exceptions import ConfigurationError, GeneratorOutputError, RecipeViolation
from domain.models import (
    BlendRequest,
    BlendResult,
    Catalog,
    Component,
    Ingredient,
    ScoredCandidate,
    SensoryProfile,
)
from domain.pricing import MARGIN_FRACTION, PACKAGING_COST, price
from domain.profile import blend_profile, target_profile
from domain.repair import repair


GENERATION_ATTEMPTS = 5
FALLBACK_NAME = "Custom Blend"
FALLBACK_EXPLANATION = (
    "Chosen from currently available stock. Quantities were normalised to the "
    "requested total while keeping every component at or above the minimum and "
    "within stock."
)
FALLBACK_REASONING = (
    "Fallback used because no generated recipe passed strict validation. "
    "This result is constraint-correct; taste optimisation is limited."
)


logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    async def active(self) -> list[Ingredient]:
        ...


def _build_result(
    recipe: list[Component],
    catalog: Catalog,
    target: SensoryProfile,
    *,
    used_fallback_repair: bool,
    attempts_used: int,
    packaging_cost: float,
    margin_fraction: float,
) -> BlendResult:
    return BlendResult(
        recipe=recipe,
        pricing=price(
            recipe,
            catalog,
            packaging_cost=packaging_cost,
            margin_fraction=margin_fraction,
        ),
        target_profile=target,
        blend_profile=blend_profile(recipe, catalog),
        used_fallback_repair=used_fallback_repair,
        attempts_used=attempts_used,
        ingredient_names={c.ingredient_code: catalog[c.ingredient_code].name for c in recipe},
    )


async def synthesize_blend(
    request: BlendRequest,
    *,
    catalog_source: CatalogSource,
    generator: Generator,
    attempts: int = GENERATION_ATTEMPTS,
    packaging_cost: float = PACKAGING_COST,
    margin_fraction: float = MARGIN_FRACTION,
) -> BlendResult:
    """Ask the generator for a valid blend, repairing the best attempt if none passes.

    Only `ConfigurationError` escapes: an empty catalog, or stock that cannot
    cover the requested total. Generator failures and constraint violations
    are fed back into the next attempt's instruction.
    """
    ingredients = await catalog_source.active()
    if not ingredients:
        raise ConfigurationError("No stock available right now.")
    catalog = {i.code: i for i in ingredients}
    total = request.total_quantity
    target = target_profile(request.preferences)

    best: ScoredCandidate | None = None
    last_error: str | None = None

    for attempt in range(1, attempts + 1):
        gen_request = GenerationRequest(
            total=total,
            objective=request.objective,
            preferences=request.preferences,
            target_profile=target,
            catalog=ingredients,
            previous_error=last_error,
        )
        try:
            candidate = await generator.generate(gen_request)
        except GeneratorOutputError as e:
            last_error = str(e)
            logger.info("Attempt %d/%d unusable: %s", attempt, attempts, last_error)
            continue

        penalty = score(candidate.recipe, total, catalog)
        if best is None or penalty < best.penalty:
            best = ScoredCandidate(candidate=candidate, penalty=penalty, attempt=attempt)

        try:
            validate(candidate.recipe, total, catalog)
        except RecipeViolation as e:
            last_error = str(e)
            logger.info(
                "Attempt %d/%d rejected (%s, penalty %.0f): %s",
                attempt,
                attempts,
                e.reason.value,
                penalty,
                last_error,
            )
            continue

        recipe = [Component(c.ingredient_code, int(c.quantity)) for c in candidate.recipe]
        result = _build_result(
            recipe,
            catalog,
            target,
            used_fallback_repair=False,
            attempts_used=attempt,
            packaging_cost=packaging_cost,
            margin_fraction=margin_fraction,
        )
        result.name = candidate.name or FALLBACK_NAME
        result.explanations = dict(candidate.explanations)
        result.reasoning = candidate.reasoning
        return result

    logger.warning(
        "No valid recipe after %d attempts, repairing best (attempt %s)",
        attempts,
        best.attempt if best else None,
    )
    recipe = repair(best.candidate.recipe if best else None, total, catalog)
    result = _build_result(
        recipe,
        catalog,
        target,
        used_fallback_repair=True,
        attempts_used=attempts,
        packaging_cost=packaging_cost,
        margin_fraction=margin_fraction,
    )
    result.name = (best.candidate.name if best else "") or FALLBACK_NAME
    result.explanations = {c.ingredient_code: FALLBACK_EXPLANATION for c in recipe}
    result.reasoning = FALLBACK_REASONING
    if best is not None:
        result.best_attempt = best.attempt
        result.best_penalty = best.penalty
    return result
