"""
Unit тесты для crosswalk/services/scorer.py
"""
import logging

import pytest

from crosswalk.models.schemas import (
    CatalogProduct,
    CompetitorProduct,
    ConfidenceLevel,
    MatchCandidate,
    MatchMethod,
    ScoreBreakdown,
    SpecificationSummary,
)
from crosswalk.services.scorer import ConfidenceScorer, ScoringWeights


def candidate(product: CatalogProduct, confidence: float, method: MatchMethod, **kwargs) -> MatchCandidate:
    return MatchCandidate(
        target_sku=product.sku,
        catalog_product=product,
        confidence=confidence,
        match_method=method,
        reasoning=kwargs.pop("reasoning", [f"{method.value} reason"]),
        **kwargs,
    )


@pytest.fixture
def scorer():
    return ConfidenceScorer()


@pytest.fixture
def condenser():
    return CatalogProduct(id=1, sku="CA-036", model="24ACC636", brand="Carrier",
                          type="air_conditioner", tonnage=3.0, seer=16.0)


@pytest.fixture
def bare():
    return CompetitorProduct(sku="X-1")


class TestFusion:
    """Тесты для combine_multiple_matches()"""

    def test_empty(self, scorer, bare):
        assert scorer.combine_multiple_matches([], bare) == []

    def test_single_candidate_without_business_info(self, scorer, bare, condenser):
        result = scorer.combine_multiple_matches([candidate(condenser, 0.98, MatchMethod.EXACT_SKU)], bare)
        assert len(result) == 1
        assert result[0].confidence == pytest.approx(0.98)
        assert result[0].match_method == MatchMethod.EXACT_SKU

    def test_primary_by_priority_and_hybrid_tag(self, scorer, bare, condenser):
        fuzzy = candidate(condenser, 0.60, MatchMethod.FUZZY_MODEL, reasoning=["fuzzy"],
                          score=ScoreBreakdown(model=0.7, overall=0.6))
        spec = candidate(condenser, 0.70, MatchMethod.SPECIFICATIONS, reasoning=["spec", "fuzzy"],
                         specifications=SpecificationSummary(matched=["tonnage: 3.0 ≈ 3.0"]),
                         score=ScoreBreakdown(specifications=0.7, overall=0.7))
        result = scorer.combine_multiple_matches([fuzzy, spec], bare)
        assert len(result) == 1
        fused = result[0]
        assert fused.match_method == MatchMethod.HYBRID
        # primary = specifications (7 > 6), +0.03 за второго свидетеля
        assert fused.confidence == pytest.approx(0.73)
        assert fused.reasoning == ["spec", "fuzzy"]
        assert fused.specifications.matched == ["tonnage: 3.0 ≈ 3.0"]
        assert fused.score.model == pytest.approx(0.7)
        assert fused.score.specifications == pytest.approx(0.7)
        assert fused.score.overall == pytest.approx(0.73)

    def test_same_method_is_not_hybrid(self, scorer, bare, condenser):
        result = scorer.combine_multiple_matches(
            [candidate(condenser, 0.6, MatchMethod.FUZZY_MODEL), candidate(condenser, 0.55, MatchMethod.FUZZY_MODEL)],
            bare,
        )
        assert result[0].match_method == MatchMethod.FUZZY_MODEL
        assert result[0].confidence == pytest.approx(0.63)

    def test_fused_not_below_strongest_candidate(self, scorer, bare, condenser):
        """fuzzy 0.85 + specifications 0.75: primary = specs, но результат >= 0.85"""
        result = scorer.combine_multiple_matches(
            [candidate(condenser, 0.85, MatchMethod.FUZZY_MODEL),
             candidate(condenser, 0.75, MatchMethod.SPECIFICATIONS)],
            bare,
            catalog=[condenser],
        )
        assert len(result) == 1
        assert 0.85 <= result[0].confidence <= 0.95
        assert result[0].match_method == MatchMethod.HYBRID

    def test_nan_confidence_clamped_to_zero(self, condenser):
        value = candidate(condenser, float("nan"), MatchMethod.SPECIFICATIONS)
        assert value.confidence == 0.0

    def test_boost_never_lowers_primary(self, scorer, bare, condenser):
        result = scorer.combine_multiple_matches(
            [candidate(condenser, 0.98, MatchMethod.EXACT_SKU), candidate(condenser, 0.7, MatchMethod.SPECIFICATIONS)],
            bare,
        )
        assert result[0].confidence == pytest.approx(0.98)
        assert result[0].match_method == MatchMethod.HYBRID

    def test_boost_capped(self, scorer, bare, condenser):
        methods = [MatchMethod.SPECIFICATIONS, MatchMethod.FUZZY_MODEL, MatchMethod.BRAND_TRANSLATION,
                   MatchMethod.CAPACITY_CORRELATION, MatchMethod.PRICE_BAND, MatchMethod.AI_ENHANCED]
        group = [candidate(condenser, 0.9 if m == MatchMethod.SPECIFICATIONS else 0.5, m) for m in methods]
        result = scorer.combine_multiple_matches(group, bare)
        assert result[0].confidence == pytest.approx(0.95)

    @pytest.mark.parametrize("confidences", [[0.0], [1.0, 1.0, 1.0], [0.3, 0.99, 0.5, 0.8]])
    def test_bounds(self, scorer, condenser, confidences):
        competitor = CompetitorProduct(sku="X", company="Goodman", description="gas furnace", price=49000)
        methods = list(MatchMethod)
        group = [candidate(condenser, c, methods[i]) for i, c in enumerate(confidences)]
        for fused in scorer.combine_multiple_matches(group, competitor):
            assert 0.0 <= fused.confidence <= 1.0

    def test_unknown_sku_dropped(self, scorer, bare, condenser, caplog):
        ghost = CatalogProduct(id=99, sku="GHOST")
        group = [candidate(condenser, 0.9, MatchMethod.EXACT_MODEL), candidate(ghost, 0.95, MatchMethod.EXACT_SKU)]
        with caplog.at_level(logging.WARNING):
            result = scorer.combine_multiple_matches(group, bare, catalog=[condenser])
        assert [c.target_sku for c in result] == ["CA-036"]
        assert "GHOST" in caplog.text

    def test_ties_keep_catalog_order(self, scorer, bare):
        first = CatalogProduct(id=1, sku="FIRST", tonnage=3.0)
        second = CatalogProduct(id=2, sku="SECOND", tonnage=3.0)
        group = [candidate(second, 0.7, MatchMethod.SPECIFICATIONS), candidate(first, 0.7, MatchMethod.SPECIFICATIONS)]
        result = scorer.combine_multiple_matches(group, bare, catalog=[first, second])
        assert [c.target_sku for c in result] == ["FIRST", "SECOND"]

    def test_one_result_per_sku(self, scorer, bare, catalog):
        group = [candidate(p, 0.6, MatchMethod.FUZZY_MODEL) for p in catalog]
        group += [candidate(p, 0.7, MatchMethod.SPECIFICATIONS) for p in catalog]
        result = scorer.combine_multiple_matches(group, bare, catalog=catalog)
        skus = [c.target_sku for c in result]
        assert sorted(skus) == sorted(p.sku for p in catalog)


class TestCalibration:
    """Бонусы и штрафы бизнес-правил"""

    def test_all_bonuses(self, scorer, condenser):
        competitor = CompetitorProduct(sku="X", company="Bryant", description="3 ton air conditioner", price=6000)
        value = scorer.calculate_confidence(candidate(condenser, 0.6, MatchMethod.FUZZY_MODEL), competitor)
        # (0.6 * 0.85 + 0.15 + 0.10 + 0.05) / (0.85 + 0.30)
        assert value == pytest.approx(0.81 / 1.15)

    def test_unknown_factors_add_no_weight(self, scorer, bare, condenser):
        value = scorer.calculate_confidence(candidate(condenser, 0.6, MatchMethod.FUZZY_MODEL), bare)
        assert value == pytest.approx(0.6)

    def test_brand_penalty_without_strong_signal(self, scorer, condenser):
        competitor = CompetitorProduct(sku="X", company="Goodman")
        value = scorer.calculate_confidence(candidate(condenser, 0.6, MatchMethod.FUZZY_MODEL), competitor)
        assert value == pytest.approx(0.51 / 0.95 * 0.9)

    def test_no_brand_penalty_for_exact(self, scorer, condenser):
        competitor = CompetitorProduct(sku="X", company="Goodman")
        value = scorer.calculate_confidence(candidate(condenser, 0.9, MatchMethod.EXACT_MODEL), competitor)
        assert value == pytest.approx(0.9 / 1.1)

    def test_type_penalty_when_specs_compared(self, scorer, condenser):
        competitor = CompetitorProduct(sku="X", description="gas furnace")
        spec = candidate(condenser, 0.8, MatchMethod.SPECIFICATIONS,
                         specifications=SpecificationSummary(matched=["tonnage", "seer"]))
        value = scorer.calculate_confidence(spec, competitor)
        assert value == pytest.approx(0.72 / 1.05 * 0.8)

    def test_price_penalty(self, scorer, condenser):
        competitor = CompetitorProduct(sku="X", price=100)
        value = scorer.calculate_confidence(candidate(condenser, 0.9, MatchMethod.EXACT_SKU), competitor)
        assert value == pytest.approx(0.9 / 1.05 * 0.95)

    def test_low_spec_ratio_penalty(self, scorer, bare, condenser):
        spec = candidate(condenser, 0.5, MatchMethod.SPECIFICATIONS,
                         specifications=SpecificationSummary(matched=["a"], mismatched=["b", "c", "d"]))
        assert scorer.calculate_confidence(spec, bare) == pytest.approx(0.5 * (0.7 + 0.3 * 0.25))

    def test_custom_weights(self, condenser):
        scorer = ConfidenceScorer(weights=ScoringWeights(product_type_match=0.0, brand_compatibility=0.0,
                                                         price_reasonableness=0.0))
        competitor = CompetitorProduct(sku="X", company="Bryant", description="air conditioner", price=6000)
        value = scorer.calculate_confidence(candidate(condenser, 0.6, MatchMethod.FUZZY_MODEL), competitor)
        assert value == pytest.approx(0.6)


class TestConfidenceLevel:
    @pytest.mark.parametrize("confidence,level", [
        (0.95, ConfidenceLevel.HIGH),
        (0.85, ConfidenceLevel.HIGH),
        (0.75, ConfidenceLevel.MEDIUM),
        (0.55, ConfidenceLevel.LOW),
        (0.25, ConfidenceLevel.NONE),
    ])
    def test_levels(self, confidence, level):
        assert ConfidenceScorer.get_confidence_level(confidence) == level

    def test_explain(self, scorer, condenser):
        competitor = CompetitorProduct(sku="X", company="Bryant")
        text = scorer.explain(candidate(condenser, 0.92, MatchMethod.EXACT_SKU), competitor)
        assert text == "HIGH confidence (92%): Exact match found, Brands are in same family"

    def test_explain_price_warning(self, scorer, condenser):
        competitor = CompetitorProduct(sku="X", price=100)
        text = scorer.explain(candidate(condenser, 0.5, MatchMethod.FUZZY_MODEL), competitor)
        assert text.startswith("LOW confidence (50%)")
        assert "Price may be outside normal range" in text
