from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Any, Mapping, Self, TypeAlias

from domain.exceptions import InvalidRequest


MIN_QUANTITY = 20
MIN_COMPONENTS = 2
MAX_COMPONENTS = 5

SENSORY_AXES: tuple[str, ...] = (
    "body",
    "acidity",
    "sweetness",
    "bitterness",
    "aroma",
    "fruitiness",
    "chocolate",
    "nutty",
)


Catalog: TypeAlias = Mapping[str, "Ingredient"]
Recipe: TypeAlias = list["Component"]
SensoryProfile: TypeAlias = dict[str, float]


def clamp10(value: Any, default: float = 5) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(n):
        return default
    return max(1.0, min(10.0, n))


class Objective(Enum):
    daily = "daily"
    premium = "premium"


@dataclass(frozen=True)
class Ingredient:
    code: str
    name: str
    stock: int
    unit_cost: float
    sensory: dict[str, float] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Self:
        """Build a snapshot from a loosely typed catalog row, clamping as we go."""
        try:
            stock = max(0, int(float(row.get("stock") or 0)))
        except (TypeError, ValueError):
            stock = 0
        try:
            unit_cost = float(row.get("unit_cost") or 0)
        except (TypeError, ValueError):
            unit_cost = 0.0
        tags = row.get("tags") or []
        return cls(
            code=str(row["code"]),
            name=str(row.get("name") or row["code"]),
            stock=stock,
            unit_cost=unit_cost,
            sensory={axis: clamp10(row.get(axis)) for axis in SENSORY_AXES},
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            active=bool(row.get("active", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "stock": self.stock,
            "unit_cost": self.unit_cost,
            "tags": list(self.tags),
            **{axis: self.sensory.get(axis, 5) for axis in SENSORY_AXES},
        }


@dataclass
class Component:
    """One line of a recipe. Quantity is whatever the generator said until validated."""

    ingredient_code: str
    quantity: int | float

    def to_dict(self) -> dict[str, Any]:
        return {"ingredient_code": self.ingredient_code, "quantity": self.quantity}


@dataclass
class Candidate:
    recipe: Recipe
    name: str = ""
    explanations: dict[str, str] = field(default_factory=dict)
    reasoning: str = ""


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    penalty: float
    attempt: int


@dataclass(frozen=True)
class PricingResult:
    unit_cost_sum: float
    packaging_cost: float
    margin_fraction: float
    subtotal: float
    pre_round: float
    total: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_cost_sum": self.unit_cost_sum,
            "packaging_cost": self.packaging_cost,
            "margin_fraction": self.margin_fraction,
            "subtotal": self.subtotal,
            "pre_round": self.pre_round,
            "total": self.total,
        }


@dataclass(frozen=True)
class BlendRequest:
    total_quantity: int
    objective: Objective
    preferences: dict[str, Any]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> Self:
        payload = payload or {}
        total = payload.get("total_quantity")
        if isinstance(total, bool) or not isinstance(total, int) or total <= 0:
            raise InvalidRequest("total_quantity must be a positive integer")
        try:
            objective = Objective(payload.get("objective"))
        except ValueError:
            options = "|".join(o.value for o in Objective)
            raise InvalidRequest(f"objective must be {options}") from None
        preferences = payload.get("preferences")
        if not isinstance(preferences, dict):
            raise InvalidRequest("preferences required")
        return cls(total_quantity=total, objective=objective, preferences=preferences)

    def to_payload(self) -> dict[str, Any]:
        return {
            "total_quantity": self.total_quantity,
            "objective": self.objective.value,
            "preferences": self.preferences,
        }


@dataclass
class BlendResult:
    recipe: list[Component]
    pricing: PricingResult
    target_profile: SensoryProfile
    blend_profile: SensoryProfile
    used_fallback_repair: bool
    attempts_used: int
    name: str = ""
    ingredient_names: dict[str, str] = field(default_factory=dict)
    explanations: dict[str, str] = field(default_factory=dict)
    reasoning: str = ""
    best_attempt: int | None = None
    best_penalty: float | None = None

    def to_dict(self) -> dict[str, Any]:
        recipe: list[dict[str, Any]] = []
        for c in self.recipe:
            line = c.to_dict()
            line["ingredient_name"] = self.ingredient_names.get(
                c.ingredient_code, c.ingredient_code
            )
            line["explanation"] = self.explanations.get(c.ingredient_code)
            recipe.append(line)
        out: dict[str, Any] = {
            "name": self.name,
            "recipe": recipe,
            "pricing": self.pricing.to_dict(),
            "target_profile": self.target_profile,
            "blend_profile": self.blend_profile,
            "reasoning": self.reasoning,
            "used_fallback_repair": self.used_fallback_repair,
            "attempts_used": self.attempts_used,
        }
        if self.used_fallback_repair:
            out["best_attempt"] = self.best_attempt
            out["best_penalty"] = self.best_penalty
        return out
