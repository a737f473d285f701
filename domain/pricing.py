from decimal import ROUND_HALF_UP, Decimal
import math

from domain.models import Catalog, Component, PricingResult


PACKAGING_COST = 15.0
MARGIN_FRACTION = 0.15
CENTS = Decimal("0.01")


def _decimal(value: float | Decimal) -> Decimal:
    # str() first so 0.85 stays 0.85 instead of its binary expansion.
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _cents(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def round_to_nearest_5(value: float | Decimal) -> int:
    return int(math.floor(_decimal(value) / 5 + Decimal("0.5")) * 5)


def price(
    recipe: list[Component],
    catalog: Catalog,
    *,
    packaging_cost: float = PACKAGING_COST,
    margin_fraction: float = MARGIN_FRACTION,
) -> PricingResult:
    """Price a validated recipe. Codes missing from the catalog cost nothing."""
    unit_cost_sum = Decimal(0)
    for c in recipe:
        ingredient = catalog.get(c.ingredient_code)
        if ingredient is None:
            continue
        unit_cost_sum += _decimal(c.quantity) * _decimal(ingredient.unit_cost)

    subtotal = unit_cost_sum + _decimal(packaging_cost)
    pre_round = subtotal * (1 + _decimal(margin_fraction))

    return PricingResult(
        unit_cost_sum=_cents(unit_cost_sum),
        packaging_cost=packaging_cost,
        margin_fraction=margin_fraction,
        subtotal=_cents(subtotal),
        pre_round=_cents(pre_round),
        total=round_to_nearest_5(pre_round),
    )
