"""
Extended signal generators.

Weaker, single-signal strategies used alongside the core four when enabled
explicitly in MatchingOptions.enabled_strategies. Their candidates rarely
stand on their own; they exist to corroborate the core signals in fusion.
"""
from crosswalk.models.schemas import (
    CatalogProduct,
    CompetitorProduct,
    MatchCandidate,
    MatchingOptions,
    MatchMethod,
    ScoreBreakdown,
)
from crosswalk.services.matching_strategies.base import MatchingStrategy
from crosswalk.services.matching_strategies.specs import catalog_specifications
from crosswalk.utils.matching_helpers import (
    HeuristicTables,
    check_product_type_match,
    coerce_spec_value,
    detect_brand,
    expected_price_range,
    extract_tonnage,
    get_heuristics,
    normalize_product_type,
)
from crosswalk.utils.normalizers import extract_search_terms, remove_brand_prefix


def competitor_tonnage(competitor: CompetitorProduct) -> float | None:
    if competitor.specifications:
        for key, value in competitor.specifications.items():
            if str(key).strip().lower() == "tonnage":
                return coerce_spec_value("tonnage", value)
    text = ' '.join(filter(None, [competitor.sku, competitor.model, competitor.description]))
    return extract_tonnage(text)


def catalog_tonnage(product: CatalogProduct) -> float | None:
    value = catalog_specifications(product).get("tonnage")
    return value if isinstance(value, (int, float)) else None


class BrandTranslationStrategy(MatchingStrategy):
    """Competitor series prefix (e.g. Goodman GSX) + agreeing capacity."""

    name = "brand_translation"
    description = "Translates competitor product series into capacity-equivalent catalog items"

    CONFIDENCE_TYPED = 0.75
    CONFIDENCE_UNTYPED = 0.68

    def __init__(self, tables: HeuristicTables | None = None):
        self._tables = tables

    @property
    def tables(self) -> HeuristicTables:
        return self._tables or get_heuristics()

    def confidence_range(self) -> tuple[float, float]:
        return (0.65, 0.85)

    def can_handle(self, competitor: CompetitorProduct) -> bool:
        brand = detect_brand(competitor.company, competitor.sku, self.tables)
        return brand in self.tables.brand_series_prefixes

    def series_prefix(self, competitor: CompetitorProduct) -> str | None:
        brand = detect_brand(competitor.company, competitor.sku, self.tables)
        prefixes = self.tables.brand_series_prefixes.get(brand, [])
        terms = extract_search_terms(competitor.sku, competitor.model)
        terms += [remove_brand_prefix(t) for t in terms]
        # Longest prefix first: GSX before GS
        for prefix in sorted(prefixes, key=len, reverse=True):
            if any(term.startswith(prefix) for term in terms):
                return prefix
        return None

    def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
    ) -> list[MatchCandidate]:
        prefix = self.series_prefix(competitor)
        their_tonnage = competitor_tonnage(competitor)
        if prefix is None or their_tonnage is None:
            return []

        tolerance = options.specifications.tonnage
        candidates = []
        for product in catalog:
            our_tonnage = catalog_tonnage(product)
            if our_tonnage is None or abs(our_tonnage - their_tonnage) > tolerance:
                continue
            typed = check_product_type_match(competitor, product, self.tables) is True
            confidence = self.CONFIDENCE_TYPED if typed else self.CONFIDENCE_UNTYPED
            candidates.append(MatchCandidate(
                target_sku=product.sku,
                catalog_product=product,
                confidence=confidence,
                match_method=MatchMethod.BRAND_TRANSLATION,
                reasoning=[f"Brand pattern '{prefix}' with matching capacity "
                           f"({their_tonnage} vs {our_tonnage} tons)"],
                score=ScoreBreakdown(overall=confidence),
            ))
        return self.rank(candidates, options)


class CapacityCorrelationStrategy(MatchingStrategy):
    """Relative tonnage agreement, including BTU / MBH stated capacities."""

    name = "capacity_correlation"
    description = "Correlates cooling/heating capacity (tonnage, BTU) with catalog items"

    CEILING = 0.87
    MIN_SCORE = 0.8

    def confidence_range(self) -> tuple[float, float]:
        return (self.CEILING * self.MIN_SCORE, self.CEILING)

    def can_handle(self, competitor: CompetitorProduct) -> bool:
        return competitor_tonnage(competitor) is not None

    def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
    ) -> list[MatchCandidate]:
        their_tonnage = competitor_tonnage(competitor)
        if their_tonnage is None:
            return []

        candidates = []
        for product in catalog:
            our_tonnage = catalog_tonnage(product)
            if not our_tonnage:
                continue
            score = max(0.0, 1 - abs(their_tonnage - our_tonnage) / our_tonnage)
            if score < self.MIN_SCORE:
                continue
            confidence = self.CEILING * score
            reasoning = [f"Capacity correlation: {their_tonnage} vs {our_tonnage} tons"]
            if score > 0.9:
                reasoning.append(f"Perfect tonnage match: {our_tonnage} tons" if score == 1.0
                                 else "Near tonnage match")
            candidates.append(MatchCandidate(
                target_sku=product.sku,
                catalog_product=product,
                confidence=confidence,
                match_method=MatchMethod.CAPACITY_CORRELATION,
                reasoning=reasoning,
                score=ScoreBreakdown(specifications=score, overall=confidence),
            ))
        return self.rank(candidates, options)


class PriceBandStrategy(MatchingStrategy):
    """Competitor price inside the per-ton price band of a typed catalog item."""

    name = "price_band"
    description = "Scores catalog items whose expected price band contains the competitor price"

    FLOOR = 0.40
    SPAN = 0.20

    def __init__(self, tables: HeuristicTables | None = None):
        self._tables = tables

    @property
    def tables(self) -> HeuristicTables:
        return self._tables or get_heuristics()

    def confidence_range(self) -> tuple[float, float]:
        return (self.FLOOR, self.FLOOR + self.SPAN)

    def can_handle(self, competitor: CompetitorProduct) -> bool:
        return competitor.price is not None and competitor.price > 0

    def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
    ) -> list[MatchCandidate]:
        price = competitor.price
        if not price:
            return []

        candidates = []
        for product in catalog:
            # Untyped items fall back to a band too broad to mean anything
            if normalize_product_type(product.type, self.tables) not in self.tables.price_bands_per_ton:
                continue
            low, high = expected_price_range(product, self.tables)
            if not low <= price <= high:
                continue
            midpoint, half_width = (low + high) / 2, (high - low) / 2
            closeness = 1 - abs(price - midpoint) / half_width if half_width else 1.0
            confidence = self.FLOOR + self.SPAN * closeness
            candidates.append(MatchCandidate(
                target_sku=product.sku,
                catalog_product=product,
                confidence=confidence,
                match_method=MatchMethod.PRICE_BAND,
                reasoning=[f"Price ${price:,.0f} within expected ${low:,.0f}-${high:,.0f} "
                           f"for {product.type}"],
                score=ScoreBreakdown(overall=confidence),
            ))
        return self.rank(candidates, options)
