from domain.models import MAX_COMPONENTS, MIN_COMPONENTS, MIN_QUANTITY, Objective


CREATE_BLEND_PROMPT = """
You are a blend formulator and a rational explainer.
You must be truthful and strictly bound to the provided available_ingredients,
their tags and their sensory numbers. Do not invent flavours beyond each
ingredient's tags.

Return strict JSON only.

Hard constraints:
- Use only ingredient_code values from available_ingredients.
- Quantities must sum to exactly {total}.
- Use {min_components}..{max_components} ingredients, each at most once.
- Every quantity is an integer.
- Every quantity is at least {min_quantity}.
- Every quantity is at most that ingredient's stock.

Explain each ingredient: why it was chosen and why that quantity.
Keep explanations calm and logical. No hype.

Optimisation:
{objective}
""".strip()


OBJECTIVES = {
    Objective.daily: (
        "daily: maximise quality-to-price. Avoid expensive ingredients unless "
        "they add necessary structure."
    ),
    Objective.premium: "premium: maximise cup quality. Cost is secondary.",
}


RETRY_SUFFIX = """

Previous attempt failed validation with error: {error}
Return corrected JSON that passes all constraints."""


class CreateBlendPrompt:
    def __init__(
        self,
        *,
        total: int,
        objective: Objective,
        previous_error: str | None = None,
    ) -> None:
        self.total = total
        self.objective = objective
        self.previous_error = previous_error

    def __str__(self) -> str:
        s = CREATE_BLEND_PROMPT.format(
            total=self.total,
            min_components=MIN_COMPONENTS,
            max_components=MAX_COMPONENTS,
            min_quantity=MIN_QUANTITY,
            objective=OBJECTIVES[self.objective],
        )
        if self.previous_error:
            s += RETRY_SUFFIX.format(error=self.previous_error)
        return s
