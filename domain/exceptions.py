from enum import Enum


class Violation(Enum):
    wrong_count = "wrong_count"
    unknown_code = "unknown_code"
    duplicate_code = "duplicate_code"
    non_integer = "non_integer"
    below_minimum = "below_minimum"
    over_stock = "over_stock"
    wrong_sum = "wrong_sum"


class BlendError(Exception):
    pass


class InvalidRequest(BlendError):
    pass


class ConfigurationError(BlendError):
    """Terminal for a run. Retrying the generator cannot fix it."""


class RecipeViolation(BlendError):
    def __init__(self, reason: Violation, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class GeneratorOutputError(BlendError):
    """The generator answered with something we cannot use. Recoverable."""
