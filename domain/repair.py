import logging
import math

from domain.constraints import validate
from domain.exceptions import ConfigurationError, RecipeViolation
from domain.models import (
    MAX_COMPONENTS,
    MIN_COMPONENTS,
    MIN_QUANTITY,
    Catalog,
    Component,
    Ingredient,
)


MAX_ADJUST_STEPS = 12_000


logger = logging.getLogger(__name__)


def _floored(quantity: int | float) -> int:
    try:
        n = float(quantity)
    except (TypeError, ValueError):
        return MIN_QUANTITY
    if not math.isfinite(n):
        return MIN_QUANTITY
    return max(MIN_QUANTITY, math.floor(n))


def _usable(catalog: Catalog) -> list[Ingredient]:
    """Ingredients that can hold at least the minimum quantity, cheapest first."""
    usable = [i for i in catalog.values() if i.stock >= MIN_QUANTITY]
    return sorted(usable, key=lambda i: i.unit_cost)


def _next_cheapest(catalog: Catalog, present: set[str]) -> Ingredient | None:
    for ingredient in _usable(catalog):
        if ingredient.code not in present:
            return ingredient
    return None


def repair(
    recipe: list[Component] | None,
    total: int,
    catalog: Catalog,
) -> list[Component]:
    """Turn any recipe, or none, into one that passes `validate`.

    Raises `ConfigurationError` when the catalog cannot hold `total`.
    """
    try:
        validate(recipe, total, catalog)
    except RecipeViolation:
        pass
    else:
        return [Component(c.ingredient_code, int(c.quantity)) for c in recipe or []]

    usable = {i.code for i in _usable(catalog)}

    fixed = [
        Component(c.ingredient_code, _floored(c.quantity))
        for c in (recipe or [])
        if isinstance(c.ingredient_code, str) and c.ingredient_code in usable
    ]

    # Stable sort keeps the generator's order among equal quantities.
    fixed.sort(key=lambda c: c.quantity, reverse=True)
    present: set[str] = set()
    deduped: list[Component] = []
    for c in fixed:
        if c.ingredient_code in present:
            continue
        present.add(c.ingredient_code)
        deduped.append(c)
    fixed = deduped[:MAX_COMPONENTS]
    present = {c.ingredient_code for c in fixed}

    while len(fixed) < MIN_COMPONENTS:
        extra = _next_cheapest(catalog, present)
        if extra is None:
            raise ConfigurationError(
                f"catalog has fewer than {MIN_COMPONENTS} ingredients with stock"
            )
        fixed.append(Component(extra.code, MIN_QUANTITY))
        present.add(extra.code)

    for c in fixed:
        c.quantity = min(int(c.quantity), catalog[c.ingredient_code].stock)

    running = sum(int(c.quantity) for c in fixed)
    steps = 0
    while running != total and steps < MAX_ADJUST_STEPS:
        steps += 1
        gap = total - running
        target = None
        room = 0
        for c in fixed:
            if gap > 0:
                room = catalog[c.ingredient_code].stock - int(c.quantity)
            else:
                room = int(c.quantity) - MIN_QUANTITY
            if room > 0:
                target = c
                break

        if target is None:
            if gap > 0 and len(fixed) < MAX_COMPONENTS:
                extra = _next_cheapest(catalog, present)
                if extra is not None:
                    fixed.append(Component(extra.code, MIN_QUANTITY))
                    present.add(extra.code)
                    running += MIN_QUANTITY
                    continue
            if gap < 0 and len(fixed) > MIN_COMPONENTS:
                # Everything sits at the minimum: drop the last smallest component.
                smallest = min(reversed(fixed), key=lambda c: c.quantity)
                fixed.remove(smallest)
                running -= int(smallest.quantity)
                continue
            break

        move = min(abs(gap), room)
        target.quantity = int(target.quantity) + (move if gap > 0 else -move)
        running += move if gap > 0 else -move

    if running != total:
        raise ConfigurationError(
            f"stock cannot cover a total of {total} (best reachable {running})"
        )

    try:
        validate(fixed, total, catalog)
    except RecipeViolation as e:
        raise ConfigurationError(f"repair produced an invalid recipe: {e}") from e

    logger.debug("Repaired recipe in %d steps", steps)
    return fixed
