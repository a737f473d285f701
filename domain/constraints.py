"""Hard constraints on a recipe.

`validate` is the only gate: a recipe is accepted iff it passes. `score` never
raises and exists to rank recipes that failed, so repair starts from the least
broken one.
"""

import math
from typing import Any

from domain.exceptions import RecipeViolation, Violation
from domain.models import (
    MAX_COMPONENTS,
    MIN_COMPONENTS,
    MIN_QUANTITY,
    Catalog,
    Component,
)


INVALID_ENTRY_PENALTY = 2000
UNKNOWN_CODE_PENALTY = 2000
DUPLICATE_PENALTY = 500
NON_FINITE_PENALTY = 500
NON_INTEGER_PENALTY = 150
SHORTFALL_WEIGHT = 25
OVERSTOCK_WEIGHT = 40
NEAR_STOCK_PENALTY = 50
TOO_FEW_PENALTY = 1800
EXTRA_COMPONENT_PENALTY = 500
SUM_WEIGHT = 15
UNUSABLE_PENALTY = 1e9


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _is_integer(value: Any) -> bool:
    n = _as_number(value)
    return n is not None and n.is_integer()


def quantity_sum(recipe: list[Component]) -> float:
    total = 0.0
    for c in recipe:
        total += _as_number(getattr(c, "quantity", None)) or 0
    return total


def validate(recipe: list[Component] | None, total: int, catalog: Catalog) -> None:
    """Raise `RecipeViolation` with the first broken constraint."""
    if not isinstance(recipe, list) or not (
        MIN_COMPONENTS <= len(recipe) <= MAX_COMPONENTS
    ):
        raise RecipeViolation(
            Violation.wrong_count,
            f"recipe must have {MIN_COMPONENTS}..{MAX_COMPONENTS} components",
        )

    seen: set[str] = set()
    running = 0
    for c in recipe:
        code = c.ingredient_code
        if code not in catalog:
            raise RecipeViolation(Violation.unknown_code, f"unknown ingredient_code {code!r}")
        if code in seen:
            raise RecipeViolation(Violation.duplicate_code, f"duplicate ingredient_code {code!r}")
        seen.add(code)

        if not _is_integer(c.quantity):
            raise RecipeViolation(Violation.non_integer, f"quantity for {code!r} must be an integer")
        quantity = int(c.quantity)
        if quantity < MIN_QUANTITY:
            raise RecipeViolation(
                Violation.below_minimum, f"min {MIN_QUANTITY} per component ({code!r})"
            )
        if quantity > catalog[code].stock:
            raise RecipeViolation(
                Violation.over_stock,
                f"{code!r} exceeds available stock {catalog[code].stock}",
            )
        running += quantity

    if running != total:
        raise RecipeViolation(
            Violation.wrong_sum, f"quantities must sum to exactly {total} (got {running})"
        )


def score(recipe: Any, total: int, catalog: Catalog) -> float:
    """Penalty for `recipe`. Zero for a comfortably valid recipe, never negative."""
    if not isinstance(recipe, list):
        return UNUSABLE_PENALTY

    penalty = 0.0
    seen: set[str] = set()
    for c in recipe:
        code = getattr(c, "ingredient_code", None)
        if not isinstance(code, str):
            penalty += INVALID_ENTRY_PENALTY
            continue
        if code not in catalog:
            penalty += UNKNOWN_CODE_PENALTY
        if code in seen:
            penalty += DUPLICATE_PENALTY
        seen.add(code)

        quantity = _as_number(c.quantity)
        if quantity is None:
            penalty += NON_FINITE_PENALTY
            continue
        if not quantity.is_integer():
            penalty += NON_INTEGER_PENALTY
        if quantity < MIN_QUANTITY:
            penalty += (MIN_QUANTITY - quantity) * SHORTFALL_WEIGHT

        ingredient = catalog.get(code)
        if ingredient is not None:
            ceiling = ingredient.stock
            if quantity > ceiling:
                penalty += (quantity - ceiling) * OVERSTOCK_WEIGHT
            if ceiling > 0 and quantity > math.floor(ceiling * 0.9):
                penalty += NEAR_STOCK_PENALTY

    if len(recipe) < MIN_COMPONENTS:
        penalty += TOO_FEW_PENALTY
    if len(recipe) > MAX_COMPONENTS:
        penalty += (len(recipe) - MAX_COMPONENTS) * EXTRA_COMPONENT_PENALTY

    penalty += abs(quantity_sum(recipe) - total) * SUM_WEIGHT
    return penalty
