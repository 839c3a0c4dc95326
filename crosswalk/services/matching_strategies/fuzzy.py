from typing import NamedTuple

from rapidfuzz.distance import Levenshtein, Postfix, Prefix

from crosswalk.models.schemas import (
    CatalogProduct,
    CompetitorProduct,
    MatchCandidate,
    MatchingOptions,
    MatchMethod,
    ScoreBreakdown,
)
from crosswalk.services.matching_strategies.base import MatchingStrategy
from crosswalk.utils.normalizers import extract_search_terms, normalize_model, normalize_sku

# Confidence ceilings per algorithm (strong overlap / weak overlap)
PREFIX_CEILING, PREFIX_WEAK = 0.85, 0.60
SUFFIX_CEILING, SUFFIX_WEAK = 0.80, 0.55
CONTAINS_CEILING = 0.75
LEVENSHTEIN_CEILING = 0.70

MIN_OVERLAP = 3
STRONG_OVERLAP = 4
MIN_LEVENSHTEIN_SIMILARITY = 0.6


class TermComparison(NamedTuple):
    method: str
    similarity: float
    confidence: float


NO_MATCH = TermComparison("none", 0.0, 0.0)


def prefix_match(search: str, target: str) -> TermComparison:
    if min(len(search), len(target)) < MIN_OVERLAP:
        return NO_MATCH
    length = Prefix.similarity(search, target)
    similarity = length / max(len(search), len(target))
    ceiling = PREFIX_CEILING if length >= STRONG_OVERLAP else PREFIX_WEAK
    return TermComparison("prefix", similarity, similarity * ceiling)


def suffix_match(search: str, target: str) -> TermComparison:
    if min(len(search), len(target)) < MIN_OVERLAP:
        return NO_MATCH
    length = Postfix.similarity(search, target)
    similarity = length / max(len(search), len(target))
    ceiling = SUFFIX_CEILING if length >= STRONG_OVERLAP else SUFFIX_WEAK
    return TermComparison("suffix", similarity, similarity * ceiling)


def contains_match(search: str, target: str) -> TermComparison:
    longer, shorter = (search, target) if len(search) >= len(target) else (target, search)
    if len(shorter) < STRONG_OVERLAP or shorter not in longer:
        return NO_MATCH
    similarity = len(shorter) / len(longer)
    return TermComparison("contains", similarity, similarity * CONTAINS_CEILING)


def levenshtein_match(search: str, target: str) -> TermComparison:
    if not search and not target:
        return NO_MATCH
    similarity = Levenshtein.normalized_similarity(search, target)
    if similarity < MIN_LEVENSHTEIN_SIMILARITY:
        return NO_MATCH
    return TermComparison("fuzzy", similarity, similarity * LEVENSHTEIN_CEILING)


ALGORITHMS = (prefix_match, suffix_match, contains_match, levenshtein_match)


class FuzzyModelMatchStrategy(MatchingStrategy):
    """
    Fuzzy model-number matching.

    Both sides are broken into model-like terms (brand prefix stripped,
    letter+digit runs, separator tokens). Every term pair is scored by
    prefix / suffix / containment / Levenshtein similarity and the best pair
    per catalog item becomes its candidate.
    """

    name = "model_match"
    description = "Finds matches using fuzzy model number comparison with multiple algorithms"

    def confidence_range(self) -> tuple[float, float]:
        return (0.50, PREFIX_CEILING)

    def can_handle(self, competitor: CompetitorProduct) -> bool:
        return bool(competitor.sku.strip() or (competitor.model or "").strip())

    def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
    ) -> list[MatchCandidate]:
        search_terms = extract_search_terms(competitor.sku, competitor.model)
        if not search_terms:
            return []

        their_sku = normalize_sku(competitor.sku)
        their_model = normalize_model(competitor.model)

        candidates = []
        for product in catalog:
            # Identical SKU/model belongs to ExactMatchStrategy
            if (their_sku and their_sku == normalize_sku(product.sku)) or \
                    (their_model and their_model == normalize_model(product.model)):
                continue
            our_terms = extract_search_terms(product.sku, product.model)
            best, their_term, our_term = self.compare_terms(search_terms, our_terms)
            if best.confidence <= 0:
                continue
            candidates.append(self._candidate(product, best, their_term, our_term))

        return self.rank(candidates, options)

    @staticmethod
    def compare_terms(search_terms: list[str], our_terms: list[str]) -> tuple[TermComparison, str, str]:
        best, best_pair = NO_MATCH, ("", "")
        for search in search_terms:
            for target in our_terms:
                for algorithm in ALGORITHMS:
                    result = algorithm(search, target)
                    if result.confidence > best.confidence:
                        best, best_pair = result, (search, target)
        return best, best_pair[0], best_pair[1]

    def _candidate(self, product: CatalogProduct, comparison: TermComparison,
                   their_term: str, our_term: str) -> MatchCandidate:
        return MatchCandidate(
            target_sku=product.sku,
            catalog_product=product,
            confidence=comparison.confidence,
            match_method=MatchMethod.FUZZY_MODEL,
            reasoning=[
                f'Model {comparison.method} match: "{their_term}" ~ "{our_term}"',
                f'Similarity: {comparison.similarity * 100:.1f}%',
            ],
            score=ScoreBreakdown(model=comparison.similarity, overall=comparison.confidence),
        )
