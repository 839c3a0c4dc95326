from abc import ABC, abstractmethod

from crosswalk.models.schemas import (
    CatalogProduct,
    CompetitorProduct,
    MatchCandidate,
    MatchingOptions,
)


class MatchingStrategy(ABC):
    """Abstract base class for matching strategies.

    Strategies hold only immutable configuration, so one instance can serve
    concurrent requests.
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def confidence_range(self) -> tuple[float, float]:
        """Declared (min, max) confidence of candidates this strategy emits."""

    @abstractmethod
    def can_handle(self, competitor: CompetitorProduct) -> bool:
        """Cheap applicability test based on which fields are available."""

    @abstractmethod
    def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
    ) -> list[MatchCandidate]:
        """
        Produce candidates from one comparison signal.

        Args:
            competitor: The competitor record being resolved.
            catalog: Read-only list of our catalog products.
            options: Threshold, result cap and tolerance windows.

        Returns:
            Candidates sorted by descending confidence, at most one per
            catalog item.
        """

    @staticmethod
    def rank(candidates: list[MatchCandidate], options: MatchingOptions) -> list[MatchCandidate]:
        """Threshold filter + stable sort + cap, shared by all strategies."""
        kept = [c for c in candidates
                if c.confidence > 0 and c.confidence >= options.confidence_threshold]
        kept.sort(key=lambda c: c.confidence, reverse=True)
        return kept[:options.max_results]
