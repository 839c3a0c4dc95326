class CrosswalkError(Exception):
    """Base class for crosswalk matching errors."""


class InputValidationError(CrosswalkError):
    """Competitor record cannot be matched (no identifier, insane price...)."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


class StrategyExecutionError(CrosswalkError):
    """A single strategy failed while matching one competitor record."""

    def __init__(self, strategy: str, sku: str, cause: Exception):
        self.strategy = strategy
        self.sku = sku
        self.cause = cause
        super().__init__(f"Strategy {strategy} failed for {sku!r}: {cause}")


class FusionInconsistencyError(CrosswalkError):
    """A candidate references a target SKU that is not in the supplied catalog."""

    def __init__(self, target_sku: str):
        self.target_sku = target_sku
        super().__init__(f"Candidate references unknown catalog SKU {target_sku!r}")
