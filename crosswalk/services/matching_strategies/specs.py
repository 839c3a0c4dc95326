import math
import re
from typing import Any, NamedTuple

from crosswalk.constants import DEFAULT_SPEC_WEIGHT, NUMERIC_SPEC_FIELDS, SPEC_WEIGHTS, TEXT_SPEC_FIELDS
from crosswalk.models.schemas import (
    CatalogProduct,
    CompetitorProduct,
    MatchCandidate,
    MatchingOptions,
    MatchMethod,
    ScoreBreakdown,
    SpecificationSummary,
)
from crosswalk.services.matching_strategies.base import MatchingStrategy
from crosswalk.utils.matching_helpers import (
    coerce_spec_value,
    extract_specifications_from_text,
    normalize_spec_map,
)

EPSILON = 1e-9


class SpecComparison(NamedTuple):
    field: str
    our_value: Any
    their_value: Any
    match: bool
    confidence: float
    tolerance: float | None = None


def numeric_field_confidence(difference: float, tolerance: float) -> float:
    """
    Confidence of one numeric spec comparison.

    Within tolerance: linear from 1.0 (identical) down to 0.5 at the boundary.
    Beyond tolerance: 0.5 decaying exponentially toward 0, so a marginal
    mismatch still scores higher than a gross one.
    """
    difference = abs(difference)
    if tolerance <= 0:
        return 1.0 if difference <= EPSILON else 0.5 * math.exp(-difference)
    if difference <= tolerance + EPSILON:
        return max(0.5, 1.0 - 0.5 * difference / tolerance)
    return 0.5 * math.exp(-(difference - tolerance) / tolerance)


def _canonical_text(value: Any) -> str:
    return re.sub(r'[^a-z0-9]', '', str(value).lower())


def competitor_specifications(competitor: CompetitorProduct) -> dict[str, Any]:
    """Explicit specification map wins; otherwise parse the free-text description."""
    if competitor.specifications:
        return normalize_spec_map(competitor.specifications)
    # SKU capacity codes are left to CapacityCorrelationStrategy
    return extract_specifications_from_text(competitor.description or "")


def catalog_specifications(product: CatalogProduct) -> dict[str, Any]:
    """Structured fields over the extra map; description text as last resort."""
    specs = normalize_spec_map(product.specifications)
    for field in NUMERIC_SPEC_FIELDS + TEXT_SPEC_FIELDS:
        value = coerce_spec_value(field, getattr(product, field))
        if value is not None:
            specs[field] = value

    if not specs:
        specs = extract_specifications_from_text(product.description or "")
    return specs


class SpecificationMatchStrategy(MatchingStrategy):
    name = "specification_match"
    description = "Matches products based on technical specifications like tonnage, SEER, AFUE"

    def __init__(self, weights: dict[str, float] | None = None,
                 default_weight: float = DEFAULT_SPEC_WEIGHT):
        self._weights = dict(weights or SPEC_WEIGHTS)
        self._default_weight = default_weight

    def confidence_range(self) -> tuple[float, float]:
        return (0.60, 0.95)

    def can_handle(self, competitor: CompetitorProduct) -> bool:
        return bool(competitor_specifications(competitor))

    def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
    ) -> list[MatchCandidate]:
        their_specs = competitor_specifications(competitor)
        if not their_specs:
            return []

        candidates = []
        for product in catalog:
            comparisons, missing, confidence = self.compare_specifications(
                their_specs, catalog_specifications(product), options
            )
            if not comparisons:
                continue
            candidates.append(self._candidate(product, comparisons, missing, confidence))

        return self.rank(candidates, options)

    def compare_specifications(
        self,
        their_specs: dict[str, Any],
        our_specs: dict[str, Any],
        options: MatchingOptions,
    ) -> tuple[list[SpecComparison], list[str], float]:
        """Weighted average over fields present on both sides only."""
        comparisons: list[SpecComparison] = []
        missing: list[str] = []
        total_weight = 0.0
        weighted_score = 0.0

        for field, their_value in their_specs.items():
            our_value = our_specs.get(field)
            if our_value is None:
                missing.append(field)
                continue

            weight = self._weights.get(field, self._default_weight)
            comparison = self.compare_value(field, our_value, their_value, options)
            comparisons.append(comparison)
            total_weight += weight
            weighted_score += comparison.confidence * weight

        confidence = weighted_score / total_weight if total_weight > 0 else 0.0
        return comparisons, missing, confidence

    @staticmethod
    def compare_value(field: str, our_value: Any, their_value: Any,
                      options: MatchingOptions) -> SpecComparison:
        numeric = (int, float)
        if isinstance(our_value, numeric) and isinstance(their_value, numeric) \
                and not isinstance(our_value, bool) and not isinstance(their_value, bool):
            tolerance = options.specifications.for_field(field)
            difference = abs(float(our_value) - float(their_value))
            return SpecComparison(
                field=field,
                our_value=our_value,
                their_value=their_value,
                match=difference <= tolerance + EPSILON,
                confidence=numeric_field_confidence(difference, tolerance),
                tolerance=tolerance,
            )

        if isinstance(our_value, str) and isinstance(their_value, str):
            match = _canonical_text(our_value) == _canonical_text(their_value)
            return SpecComparison(field, our_value, their_value, match, 1.0 if match else 0.0)

        # Mixed types never match
        return SpecComparison(field, our_value, their_value, False, 0.0)

    def _candidate(self, product: CatalogProduct, comparisons: list[SpecComparison],
                   missing: list[str], confidence: float) -> MatchCandidate:
        matched, mismatched, reasoning = [], [], []
        for comp in comparisons:
            if comp.match:
                matched.append(f'{comp.field}: {comp.their_value} ≈ {comp.our_value}')
                reasoning.append(f'✓ {comp.field}: {comp.their_value} matches {comp.our_value}')
            else:
                mismatched.append(f'{comp.field}: {comp.their_value} ≠ {comp.our_value}')
                reasoning.append(f'✗ {comp.field}: {comp.their_value} vs {comp.our_value}')

        reasoning.insert(0, f'Specification match: {len(matched)}/{len(comparisons)} specs matched')

        return MatchCandidate(
            target_sku=product.sku,
            catalog_product=product,
            confidence=confidence,
            match_method=MatchMethod.SPECIFICATIONS,
            reasoning=reasoning,
            specifications=SpecificationSummary(matched=matched, mismatched=mismatched, missing=missing),
            score=ScoreBreakdown(specifications=confidence, overall=confidence),
        )
