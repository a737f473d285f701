import math
from typing import Any, Mapping

from domain.models import SENSORY_AXES, Catalog, Component, SensoryProfile, clamp10


def _text(preferences: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = preferences.get(key)
        if value:
            return str(value).lower()
    return ""


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def target_profile(preferences: Mapping[str, Any] | None) -> SensoryProfile:
    """What the preferences ask for. Deterministic, every axis in [1, 10]."""
    p = preferences or {}
    method = _text(p, "method", "brew_method")
    strength = _text(p, "strength")
    flavor = _text(p, "flavor_direction", "flavor")
    milk = _text(p, "milk", "with_milk")
    acidity = p.get("acidity_level", p.get("acidity"))

    t: dict[str, float] = {axis: 5.0 for axis in SENSORY_AXES}

    def nudge(**deltas: float) -> None:
        for axis, delta in deltas.items():
            t[axis] += delta

    if "espresso" in method:
        nudge(body=2, bitterness=1, acidity=-1, chocolate=1)
    elif any(m in method for m in ("v60", "pour", "filter")):
        nudge(acidity=2, aroma=1, fruitiness=2, body=-1)
    elif "french" in method:
        nudge(body=2, chocolate=1, nutty=1)

    if "strong" in strength or "high" in strength:
        nudge(body=1, bitterness=1)
    elif any(s in strength for s in ("light", "mild", "soft")):
        nudge(body=-1, bitterness=-1, acidity=1)

    if any(m in milk for m in ("yes", "with", "milk")):
        nudge(body=1, chocolate=1, nutty=1, acidity=-1)

    if any(f in flavor for f in ("fruity", "floral", "citrus")):
        nudge(fruitiness=3, aroma=1, chocolate=-1, nutty=-1)
    elif any(f in flavor for f in ("choco", "cocoa", "caramel")):
        nudge(chocolate=3, fruitiness=-1, acidity=-1, body=1)
    elif "nut" in flavor:
        nudge(nutty=3, chocolate=1, fruitiness=-1)
    elif "earthy" in flavor or "dark" in flavor:
        nudge(body=1, bitterness=1, chocolate=1, fruitiness=-1)

    if _number(acidity) is not None:
        t["acidity"] = clamp10(acidity, t["acidity"])

    return {axis: clamp10(v) for axis, v in t.items()}


def blend_profile(recipe: list[Component], catalog: Catalog) -> SensoryProfile:
    """Quantity-weighted average of ingredient vectors, one decimal, half up."""
    out: dict[str, float] = {axis: 0.0 for axis in SENSORY_AXES}
    total = sum(c.quantity for c in recipe)
    if not total:
        return out

    for c in recipe:
        ingredient = catalog.get(c.ingredient_code)
        if ingredient is None:
            continue
        weight = c.quantity / total
        for axis in SENSORY_AXES:
            out[axis] += weight * clamp10(ingredient.sensory.get(axis))

    return {axis: math.floor(v * 10 + 0.5) / 10 for axis, v in out.items()}
