"""
Слияние кандидатов от нескольких стратегий в один рейтинг.

Candidates for the same catalog SKU are grouped, the most trusted one
becomes the primary, agreement between strategies adds a small boost and the
result is calibrated with business rules (product type, brand family,
price band, specification agreement).
"""
import logging
from dataclasses import dataclass

from pydantic import BaseModel

from crosswalk.config import settings
from crosswalk.exceptions import FusionInconsistencyError
from crosswalk.models.schemas import (
    CatalogProduct,
    CompetitorProduct,
    ConfidenceLevel,
    MatchCandidate,
    MatchMethod,
    ScoreBreakdown,
    SpecificationSummary,
)
from crosswalk.utils.matching_helpers import (
    HeuristicTables,
    check_brand_compatibility,
    check_price_reasonableness,
    check_product_type_match,
    get_heuristics,
)

logger = logging.getLogger(__name__)

# Higher = more trusted when several strategies hit the same SKU
METHOD_PRIORITY: dict[MatchMethod, int] = {
    MatchMethod.EXACT_SKU: 10,
    MatchMethod.EXACT_MODEL: 9,
    MatchMethod.EXISTING_MAPPING: 8,
    MatchMethod.SPECIFICATIONS: 7,
    MatchMethod.FUZZY_MODEL: 6,
    MatchMethod.HYBRID: 5,
    MatchMethod.AI_ENHANCED: 4,
    MatchMethod.BRAND_TRANSLATION: 3,
    MatchMethod.CAPACITY_CORRELATION: 2,
    MatchMethod.PRICE_BAND: 1,
}

EXACT_METHODS = (MatchMethod.EXACT_SKU, MatchMethod.EXACT_MODEL)


class ScoringWeights(BaseModel):
    # Method weights in calibration
    exact: float = 1.0
    model: float = 0.85
    specifications: float = 0.90
    existing_mapping: float = 1.0
    other: float = 0.5

    # Business-rule bonuses
    product_type_match: float = 0.15
    brand_compatibility: float = 0.10
    price_reasonableness: float = 0.05

    # Corroboration
    corroboration_step: float = 0.03
    corroboration_max: float = 0.15
    corroboration_cap: float = 0.95

    # Penalties
    type_mismatch_penalty: float = 0.8
    brand_mismatch_penalty: float = 0.9
    price_penalty: float = 0.95
    min_spec_ratio: float = 0.5

    def method_weight(self, method: MatchMethod) -> float:
        if method in EXACT_METHODS:
            return self.exact
        if method == MatchMethod.FUZZY_MODEL:
            return self.model
        if method == MatchMethod.SPECIFICATIONS:
            return self.specifications
        if method == MatchMethod.EXISTING_MAPPING:
            return self.existing_mapping
        return self.other


@dataclass
class ConfidenceFactors:
    """Business-rule inputs for one candidate. None = unknown."""

    has_exact_match: bool
    has_model_match: bool
    has_spec_match: bool
    product_types_match: bool | None
    brands_compatible: bool | None
    price_reasonable: bool | None
    spec_match_count: int
    total_specs_compared: int

    @property
    def spec_ratio(self) -> float | None:
        if self.total_specs_compared == 0:
            return None
        return self.spec_match_count / self.total_specs_compared


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


class ConfidenceScorer:
    def __init__(self, weights: ScoringWeights | None = None,
                 tables: HeuristicTables | None = None):
        self.weights = weights or ScoringWeights()
        self._tables = tables

    @property
    def tables(self) -> HeuristicTables:
        return self._tables or get_heuristics()

    def combine_multiple_matches(
        self,
        candidates: list[MatchCandidate],
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct] | None = None,
    ) -> list[MatchCandidate]:
        """
        Слияние кандидатов по SKU каталога.

        Returns one candidate per catalog SKU, sorted by descending
        confidence; ties keep catalog order (or first-seen order when no
        catalog is given).
        """
        if not candidates:
            return []

        if catalog is not None:
            order = {}
            for index, product in enumerate(catalog):
                order.setdefault(product.sku, index)
        else:
            order = None

        groups: dict[str, list[MatchCandidate]] = {}
        for candidate in candidates:
            groups.setdefault(candidate.target_sku, []).append(candidate)

        combined: list[tuple[int, MatchCandidate]] = []
        for position, (target_sku, group) in enumerate(groups.items()):
            try:
                index = self._catalog_index(target_sku, order, position)
            except FusionInconsistencyError as e:
                logger.warning(f"Dropping {len(group)} candidate(s): {e}")
                continue
            combined.append((index, self.combine_group(group, competitor)))

        combined.sort(key=lambda item: (-item[1].confidence, item[0]))
        return [candidate for _, candidate in combined]

    @staticmethod
    def _catalog_index(target_sku: str, order: dict[str, int] | None, position: int) -> int:
        if order is None:
            return position
        if target_sku not in order:
            raise FusionInconsistencyError(target_sku)
        return order[target_sku]

    def combine_group(self, group: list[MatchCandidate], competitor: CompetitorProduct) -> MatchCandidate:
        """Fuse all candidates that point at one catalog SKU."""
        ranked = sorted(
            group,
            key=lambda c: (METHOD_PRIORITY.get(c.match_method, 0), c.confidence),
            reverse=True,
        )
        primary = ranked[0]
        methods = _unique([c.match_method.value for c in ranked])

        reasoning = _unique([line for c in ranked for line in c.reasoning])
        summaries = [c.specifications for c in ranked if c.specifications is not None]
        specifications = None
        if summaries:
            specifications = SpecificationSummary(
                matched=_unique([s for summary in summaries for s in summary.matched]),
                mismatched=_unique([s for summary in summaries for s in summary.mismatched]),
                missing=_unique([s for summary in summaries for s in summary.missing]),
            )

        # Never below the strongest single signal in the group
        fused = max(c.confidence for c in group)
        if len(group) > 1:
            boost = min(self.weights.corroboration_max,
                        self.weights.corroboration_step * (len(group) - 1))
            fused = max(fused, min(self.weights.corroboration_cap, primary.confidence + boost))

        factors = self.analyze_factors(
            competitor, primary.catalog_product,
            [MatchMethod(m) for m in methods], specifications,
        )
        confidence = self.calibrate(fused, primary.match_method, factors)

        match_method = MatchMethod.HYBRID if len(methods) > 1 else primary.match_method
        return primary.model_copy(update={
            "confidence": confidence,
            "match_method": match_method,
            "reasoning": reasoning,
            "specifications": specifications,
            "score": ScoreBreakdown(
                exact=max(c.score.exact for c in group),
                model=max(c.score.model for c in group),
                specifications=max(c.score.specifications for c in group),
                overall=confidence,
            ),
        })

    def analyze_factors(
        self,
        competitor: CompetitorProduct,
        product: CatalogProduct,
        methods: list[MatchMethod],
        specifications: SpecificationSummary | None = None,
    ) -> ConfidenceFactors:
        matched = len(specifications.matched) if specifications else 0
        mismatched = len(specifications.mismatched) if specifications else 0
        return ConfidenceFactors(
            has_exact_match=any(m in EXACT_METHODS for m in methods),
            has_model_match=MatchMethod.FUZZY_MODEL in methods,
            has_spec_match=MatchMethod.SPECIFICATIONS in methods,
            product_types_match=check_product_type_match(competitor, product, self.tables),
            brands_compatible=check_brand_compatibility(competitor, product, self.tables),
            price_reasonable=check_price_reasonableness(competitor, product, self.tables),
            spec_match_count=matched,
            total_specs_compared=matched + mismatched,
        )

    def calibrate(self, fused: float, method: MatchMethod, factors: ConfidenceFactors) -> float:
        """
        Weighted blend of strategy confidence and known business bonuses,
        then multiplicative penalties. Unknown factors add no weight.
        """
        w = self.weights
        method_weight = w.method_weight(method)
        score = fused * method_weight
        total = method_weight

        bonuses = (
            (factors.product_types_match, w.product_type_match),
            (factors.brands_compatible, w.brand_compatibility),
            (factors.price_reasonable, w.price_reasonableness),
        )
        for known, weight in bonuses:
            if known is None:
                continue
            total += weight
            if known:
                score += weight

        calibrated = score / total if total > 0 else 0.0
        calibrated *= self.penalty_factor(factors)
        return max(0.0, min(1.0, calibrated))

    def penalty_factor(self, factors: ConfidenceFactors) -> float:
        w = self.weights
        penalty = 1.0

        if factors.product_types_match is False and factors.total_specs_compared > 0:
            penalty *= w.type_mismatch_penalty

        if factors.brands_compatible is False and not factors.has_exact_match \
                and not factors.has_spec_match:
            penalty *= w.brand_mismatch_penalty

        if factors.price_reasonable is False:
            penalty *= w.price_penalty

        ratio = factors.spec_ratio
        if ratio is not None and ratio < w.min_spec_ratio:
            penalty *= 0.7 + 0.3 * ratio

        return penalty

    def calculate_confidence(self, candidate: MatchCandidate, competitor: CompetitorProduct) -> float:
        """Calibrated confidence of a single candidate, no corroboration."""
        factors = self.analyze_factors(
            competitor, candidate.catalog_product, [candidate.match_method], candidate.specifications
        )
        return self.calibrate(candidate.confidence, candidate.match_method, factors)

    @staticmethod
    def get_confidence_level(confidence: float) -> ConfidenceLevel:
        if confidence >= settings.confidence_high:
            return ConfidenceLevel.HIGH
        if confidence >= settings.confidence_medium:
            return ConfidenceLevel.MEDIUM
        if confidence >= settings.confidence_low:
            return ConfidenceLevel.LOW
        return ConfidenceLevel.NONE

    def explain(self, candidate: MatchCandidate, competitor: CompetitorProduct) -> str:
        """
        Человекочитаемое объяснение уверенности.

        Пример: "HIGH confidence (92%): Exact match found, Brands are in same family"
        """
        factors = self.analyze_factors(
            competitor, candidate.catalog_product, [candidate.match_method], candidate.specifications
        )
        level = self.get_confidence_level(candidate.confidence)

        parts = []
        if candidate.match_method in EXACT_METHODS:
            parts.append("Exact match found")
        elif candidate.match_method == MatchMethod.SPECIFICATIONS:
            parts.append(f"{factors.spec_match_count}/{factors.total_specs_compared} specifications matched")
        elif candidate.match_method == MatchMethod.FUZZY_MODEL:
            parts.append("Model number similarity detected")
        elif candidate.match_method == MatchMethod.HYBRID:
            parts.append("Several strategies agree")
        elif candidate.match_method == MatchMethod.EXISTING_MAPPING:
            parts.append("Previously verified mapping")

        if factors.product_types_match:
            parts.append("Product types are compatible")
        if factors.brands_compatible:
            parts.append("Brands are in same family")
        if factors.price_reasonable is False:
            parts.append("Price may be outside normal range")

        return f"{level.value.upper()} confidence ({candidate.confidence * 100:.0f}%): {', '.join(parts)}"
