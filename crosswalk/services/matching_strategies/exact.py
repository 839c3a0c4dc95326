from crosswalk.config import settings
from crosswalk.models.schemas import (
    CatalogProduct,
    CompetitorProduct,
    MatchCandidate,
    MatchingOptions,
    MatchMethod,
    ScoreBreakdown,
)
from crosswalk.services.matching_strategies.base import MatchingStrategy
from crosswalk.utils.matching_helpers import check_product_type_match
from crosswalk.utils.normalizers import normalize_model, normalize_sku


class ExactMatchStrategy(MatchingStrategy):
    name = "exact_match"
    description = "Finds exact matches based on SKU and model number comparison"

    def confidence_range(self) -> tuple[float, float]:
        return (settings.confidence_exact_model_unverified, settings.confidence_exact_sku)

    def can_handle(self, competitor: CompetitorProduct) -> bool:
        return bool(normalize_sku(competitor.sku) or normalize_model(competitor.model))

    def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
    ) -> list[MatchCandidate]:
        norm_sku = normalize_sku(competitor.sku)
        norm_model = normalize_model(competitor.model)

        # One candidate per catalog item; SKU rule beats model rule
        best: dict[str, MatchCandidate] = {}
        for product in catalog:
            candidate = None
            if norm_sku and normalize_sku(product.sku) == norm_sku:
                candidate = self._sku_candidate(competitor, product)
            elif norm_model and normalize_model(product.model) == norm_model:
                candidate = self._model_candidate(competitor, product)

            if candidate is None:
                continue
            current = best.get(product.sku)
            if current is None or candidate.confidence > current.confidence:
                best[product.sku] = candidate

        return self.rank(list(best.values()), options)

    def _sku_candidate(self, competitor: CompetitorProduct, product: CatalogProduct) -> MatchCandidate:
        confidence = settings.confidence_exact_sku
        return MatchCandidate(
            target_sku=product.sku,
            catalog_product=product,
            confidence=confidence,
            match_method=MatchMethod.EXACT_SKU,
            reasoning=[f'Exact SKU match: "{competitor.sku}" = "{product.sku}"'],
            score=ScoreBreakdown(exact=1.0, overall=confidence),
        )

    def _model_candidate(self, competitor: CompetitorProduct, product: CatalogProduct) -> MatchCandidate:
        # Unknown type information counts as compatible
        type_compatible = check_product_type_match(competitor, product) is not False
        confidence = (settings.confidence_exact_model if type_compatible
                      else settings.confidence_exact_model_unverified)

        reasoning = [f'Exact model match: "{competitor.model}" = "{product.model}"']
        if not type_compatible:
            reasoning.append('Warning: Product types may differ')

        return MatchCandidate(
            target_sku=product.sku,
            catalog_product=product,
            confidence=confidence,
            match_method=MatchMethod.EXACT_MODEL,
            reasoning=reasoning,
            score=ScoreBreakdown(exact=1.0, model=1.0, overall=confidence),
        )
