import asyncio
import logging
import time
from threading import Lock
from typing import Callable, Optional

from crosswalk.config import settings
from crosswalk.exceptions import InputValidationError, StrategyExecutionError
from crosswalk.models.schemas import (
    DEFAULT_STRATEGIES,
    CatalogProduct,
    CompetitorProduct,
    ConfidenceLevel,
    MatchCandidate,
    MatchingOptions,
    MatchingResponse,
    MatchingStage,
    MatchingStats,
    MatchMethod,
    SpecTolerances,
    StrategyInfo,
)
from crosswalk.services.collaborators import (
    ExistingMappingLookup,
    InMemoryMappingStore,
    ResearchEnhancer,
    call_with_timeout,
)
from crosswalk.services.matching_strategies import (
    BrandTranslationStrategy,
    CapacityCorrelationStrategy,
    ExactMatchStrategy,
    FuzzyModelMatchStrategy,
    MatchingStrategy,
    PriceBandStrategy,
    SpecificationMatchStrategy,
)
from crosswalk.services.scorer import EXACT_METHODS, ConfidenceScorer
from crosswalk.utils.matching_helpers import HeuristicTables
from crosswalk.utils.normalizers import normalize_model, normalize_sku

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, CompetitorProduct], None]

EXACT_CATEGORY = EXACT_METHODS + (MatchMethod.EXISTING_MAPPING,)


class StatsAccumulator:
    """Счётчики matching (thread-safe, один писатель за раз)."""

    def __init__(self):
        self._lock = Lock()
        self._stats = MatchingStats()
        self._matched = 0

    def record(self, response: MatchingResponse):
        with self._lock:
            stats = self._stats
            stats.total_processed += 1
            stats.average_processing_time_ms += (
                response.processing_time_ms - stats.average_processing_time_ms
            ) / stats.total_processed

            for method in response.strategies_used:
                stats.strategies_usage[method.value] = stats.strategies_usage.get(method.value, 0) + 1

            best = response.best_match
            if best is None:
                stats.no_matches += 1
                return

            self._count_category(best)
            mean = sum(m.confidence for m in response.matches) / len(response.matches)
            self._matched += 1
            stats.average_confidence += (mean - stats.average_confidence) / self._matched

    def record_ai_match(self):
        with self._lock:
            self._stats.ai_matches += 1

    def _count_category(self, best: MatchCandidate):
        stats = self._stats
        method = best.match_method
        if method == MatchMethod.HYBRID:
            # Fused result: categorize by the strongest contributing axis
            if best.score.exact > 0:
                method = MatchMethod.EXACT_SKU
            elif best.score.specifications > 0:
                method = MatchMethod.SPECIFICATIONS
            elif best.score.model > 0:
                method = MatchMethod.FUZZY_MODEL

        if method in EXACT_CATEGORY:
            stats.exact_matches += 1
        elif method == MatchMethod.FUZZY_MODEL:
            stats.fuzzy_matches += 1
        elif method == MatchMethod.SPECIFICATIONS:
            stats.spec_matches += 1
        elif method == MatchMethod.AI_ENHANCED:
            stats.ai_matches += 1

    def snapshot(self) -> MatchingStats:
        with self._lock:
            return self._stats.model_copy(deep=True)

    def reset(self):
        with self._lock:
            self._stats = MatchingStats()
            self._matched = 0


class MatchingEngine:
    """
    Каскадный движок сопоставления SKU конкурента с нашим каталогом.

    Stages:
    1. Проверка входных данных → failed response при ошибке
    2. Существующий маппинг (коллаборатор, с таймаутом) → сразу результат
    3. Все включённые стратегии (каждая один раз, ошибки изолированы)
    4. Слияние кандидатов (ConfidenceScorer)
    5. Порог уверенности + max_results
    """

    def __init__(
        self,
        mapping_lookup: ExistingMappingLookup | None = None,
        research_enhancer: ResearchEnhancer | None = None,
        scorer: ConfidenceScorer | None = None,
        tables: HeuristicTables | None = None,
    ):
        self.mapping_lookup = mapping_lookup
        self.research_enhancer = research_enhancer
        self.scorer = scorer or ConfidenceScorer(tables=tables)
        self._stats = StatsAccumulator()
        self._strategies: dict[MatchMethod, MatchingStrategy] = {}
        self._register_strategies(tables)

    def _register_strategies(self, tables: HeuristicTables | None):
        exact = ExactMatchStrategy()
        self._strategies[MatchMethod.EXACT_SKU] = exact
        self._strategies[MatchMethod.EXACT_MODEL] = exact
        self._strategies[MatchMethod.FUZZY_MODEL] = FuzzyModelMatchStrategy()
        self._strategies[MatchMethod.SPECIFICATIONS] = SpecificationMatchStrategy()
        self._strategies[MatchMethod.BRAND_TRANSLATION] = BrandTranslationStrategy(tables)
        self._strategies[MatchMethod.CAPACITY_CORRELATION] = CapacityCorrelationStrategy()
        self._strategies[MatchMethod.PRICE_BAND] = PriceBandStrategy(tables)

    def register_strategy(self, method: MatchMethod, strategy: MatchingStrategy):
        self._strategies[method] = strategy

    # --- Matching ---

    async def find_matches(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions | None = None,
    ) -> MatchingResponse:
        options = options or self.get_default_options()
        started = time.perf_counter()

        response = await self._run(competitor, catalog, options, check_existing=True)
        response.processing_time_ms = (time.perf_counter() - started) * 1000
        self._stats.record(response)

        if options.use_ai and self.research_enhancer is not None \
                and response.stage == MatchingStage.COMPLETE:
            response = await self.enhance_with_research(response, catalog, options, self.research_enhancer)

        best = response.best_match
        if best:
            logger.info(
                f"Matched {competitor.sku or competitor.model!r}: {best.match_method.value} "
                f"@ {best.confidence:.0%} → {best.target_sku} ({response.processing_time_ms:.1f} ms)"
            )
        else:
            logger.info(f"No match for {competitor.sku or competitor.model!r} ({response.stage.value})")
        return response

    async def _run(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
        check_existing: bool,
        extra_candidates: Optional[list[MatchCandidate]] = None,
    ) -> MatchingResponse:
        response = MatchingResponse(
            competitor_product=competitor,
            total_candidates=len(catalog),
            stage=MatchingStage.NOT_STARTED,
        )

        try:
            self.validate_competitor(competitor, options)
        except InputValidationError as e:
            logger.warning(f"Rejected competitor record {competitor.sku!r}: {e}")
            response.errors = list(e.errors)
            response.stage = MatchingStage.FAILED
            return response

        # 1. Существующий маппинг
        if check_existing and self.mapping_lookup is not None:
            self._enter(response, MatchingStage.EXISTING_MAPPING_CHECK)
            existing = await call_with_timeout(
                self.mapping_lookup.lookup_existing_mapping(competitor), None, "Existing mapping lookup"
            )
            if existing is not None and existing.target_sku not in {p.sku for p in catalog}:
                logger.warning(
                    f"Ignoring saved mapping {competitor.sku!r} → {existing.target_sku!r}: "
                    f"not in the supplied catalog"
                )
                existing = None
            if existing is not None:
                response.matches = [existing]
                response.strategies_used = [MatchMethod.EXISTING_MAPPING]
                response.confidence = self.scorer.get_confidence_level(existing.confidence)
                self._enter(response, MatchingStage.COMPLETE)
                return response

        # 2. Стратегии
        self._enter(response, MatchingStage.STRATEGY_EXECUTION)
        candidates = self._run_strategies(competitor, catalog, options, response)
        if extra_candidates:
            candidates.extend(extra_candidates)
        response.strategies_used = list(dict.fromkeys(c.match_method for c in candidates))

        # 3. Слияние
        self._enter(response, MatchingStage.FUSION)
        fused = self.scorer.combine_multiple_matches(candidates, competitor, catalog)

        # 4. Фильтрация
        self._enter(response, MatchingStage.FILTERING)
        response.matches = [c for c in fused if c.confidence >= options.confidence_threshold][:options.max_results]
        if response.matches:
            response.confidence = self.scorer.get_confidence_level(response.matches[0].confidence)

        self._enter(response, MatchingStage.COMPLETE)
        return response

    def _run_strategies(
        self,
        competitor: CompetitorProduct,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
        response: MatchingResponse,
    ) -> list[MatchCandidate]:
        """Each distinct strategy instance runs once; failures become response errors."""
        if not catalog:
            return []

        candidates: list[MatchCandidate] = []
        seen: set[int] = set()
        for method in options.enabled_strategies:
            strategy = self._strategies.get(method)
            if strategy is None or id(strategy) in seen:
                continue
            seen.add(id(strategy))

            if not strategy.can_handle(competitor):
                continue
            try:
                found = strategy.find_matches(competitor, catalog, options)
            except Exception as e:
                error = StrategyExecutionError(strategy.name, competitor.sku, e)
                logger.warning(str(error), exc_info=True)
                response.errors.append(str(error))
                continue

            low, high = strategy.confidence_range()
            for candidate in found:
                if not low - 1e-9 <= candidate.confidence <= high + 1e-9:
                    logger.debug(
                        f"{strategy.name}: {candidate.target_sku} confidence {candidate.confidence:.3f} "
                        f"outside declared range {low:.2f}-{high:.2f}"
                    )
            candidates.extend(found)
        return candidates

    @staticmethod
    def _enter(response: MatchingResponse, stage: MatchingStage):
        logger.debug(f"{response.competitor_product.sku!r}: {response.stage.value} → {stage.value}")
        response.stage = stage

    def validate_competitor(self, competitor: CompetitorProduct, options: MatchingOptions | None = None):
        """Raises InputValidationError with every problem found."""
        errors = []
        if not normalize_sku(competitor.sku) and not normalize_model(competitor.model):
            errors.append("SKU or model is required")
        if options is not None and options.strict_mode and not competitor.company.strip():
            errors.append("Company name is required")
        if competitor.price is not None and not (
            settings.min_competitor_price <= competitor.price <= settings.max_competitor_price
        ):
            errors.append(
                f"Price must be between ${settings.min_competitor_price:,.0f} "
                f"and ${settings.max_competitor_price:,.0f}"
            )
        if errors:
            raise InputValidationError(errors)

    async def enhance_with_research(
        self,
        response: MatchingResponse,
        catalog: list[CatalogProduct],
        options: MatchingOptions,
        enhancer: ResearchEnhancer,
    ) -> MatchingResponse:
        """
        Research fallback for uncertain results.

        Only LOW / NONE responses are sent to the enhancer; its candidates
        are fused together with a fresh strategy pass.
        """
        if response.confidence not in (ConfidenceLevel.LOW, ConfidenceLevel.NONE):
            return response
        if response.stage == MatchingStage.FAILED:
            return response

        competitor = response.competitor_product
        found = await call_with_timeout(
            enhancer.enhance_with_research(competitor, list(response.matches)), [], "Research enhancer"
        )
        if not found:
            return response

        started = time.perf_counter()
        enhanced = await self._run(competitor, catalog, options, check_existing=False, extra_candidates=found)
        enhanced.processing_time_ms = response.processing_time_ms + (time.perf_counter() - started) * 1000
        enhanced.errors = response.errors + [e for e in enhanced.errors if e not in response.errors]

        best = enhanced.best_match
        if best is not None and best.target_sku in {c.target_sku for c in found}:
            self._stats.record_ai_match()
        logger.info(f"Research added {len(found)} candidate(s) for {competitor.sku!r}")
        return enhanced

    async def batch_process(
        self,
        competitors: list[CompetitorProduct],
        catalog: list[CatalogProduct],
        options: MatchingOptions | None = None,
        progress_callback: ProgressCallback | None = None,
        concurrency: int | None = None,
    ) -> list[MatchingResponse]:
        """
        Обработка списка позиций конкурента.

        Results keep input order. One failing item yields a failed response,
        never aborts the batch.
        """
        options = options or self.get_default_options()
        concurrency = max(1, concurrency or settings.batch_concurrency)
        total = len(competitors)
        semaphore = asyncio.Semaphore(concurrency)
        done = 0

        async def process(competitor: CompetitorProduct) -> MatchingResponse:
            nonlocal done
            async with semaphore:
                try:
                    result = await self.find_matches(competitor, catalog, options)
                except Exception as e:
                    logger.error(f"Failed to process {competitor.sku!r}: {e}", exc_info=True)
                    result = MatchingResponse(
                        competitor_product=competitor,
                        total_candidates=len(catalog),
                        stage=MatchingStage.FAILED,
                        errors=[str(e)],
                    )
                done += 1
                if progress_callback:
                    progress_callback(done, total, competitor)
                await asyncio.sleep(0)
                return result

        if concurrency == 1:
            return [await process(competitor) for competitor in competitors]
        return list(await asyncio.gather(*(process(c) for c in competitors)))

    # --- Options ---

    def get_default_options(self) -> MatchingOptions:
        return MatchingOptions(
            enabled_strategies=list(DEFAULT_STRATEGIES),
            confidence_threshold=0.5,
            max_results=10,
            specifications=SpecTolerances(tonnage=0.5, seer=2.0, afue=2.0, hspf=0.5),
        )

    def get_strict_options(self) -> MatchingOptions:
        return self.get_default_options().model_copy(update={
            "confidence_threshold": 0.75,
            "max_results": 5,
            "strict_mode": True,
            "specifications": SpecTolerances(tonnage=0.25, seer=1.0, afue=1.0, hspf=0.25),
        })

    def get_permissive_options(self) -> MatchingOptions:
        return self.get_default_options().model_copy(update={
            "confidence_threshold": 0.3,
            "max_results": 20,
            "specifications": SpecTolerances(tonnage=1.0, seer=3.0, afue=5.0, hspf=1.0),
        })

    def get_options(self, profile: str = "default") -> MatchingOptions:
        factories = {
            "default": self.get_default_options,
            "strict": self.get_strict_options,
            "permissive": self.get_permissive_options,
        }
        factory = factories.get(profile.strip().lower())
        if factory is None:
            raise ValueError(f"Unknown matching profile: {profile!r}")
        return factory()

    def suggest_options(self, competitors: list[CompetitorProduct]) -> MatchingOptions:
        """Подбор стратегий по тому, какие данные есть у конкурента."""
        options = self.get_default_options()

        has_descriptions = any(c.description and len(c.description) > 10 for c in competitors)
        has_specs = any(c.specifications for c in competitors)

        if not has_descriptions and not has_specs:
            # Только артикулы - точное и fuzzy сравнение
            return options.model_copy(update={
                "enabled_strategies": [MatchMethod.EXACT_SKU, MatchMethod.EXACT_MODEL, MatchMethod.FUZZY_MODEL],
                "confidence_threshold": 0.6,
            })
        if has_specs:
            return options.model_copy(update={"confidence_threshold": 0.4})
        return options

    def available_strategies(self) -> list[StrategyInfo]:
        infos = [
            StrategyInfo(
                method=method,
                name=strategy.name,
                description=strategy.description,
                confidence_range=strategy.confidence_range(),
            )
            for method, strategy in self._strategies.items()
        ]
        return sorted(infos, key=lambda info: (info.name, info.method.value))

    # --- Stats ---

    def get_stats(self) -> MatchingStats:
        return self._stats.snapshot()

    def reset_stats(self):
        self._stats.reset()


_matching_engine: Optional[MatchingEngine] = None


def get_matching_engine() -> MatchingEngine:
    """Singleton движка для API"""
    global _matching_engine
    if _matching_engine is None:
        _matching_engine = MatchingEngine(mapping_lookup=InMemoryMappingStore())
    return _matching_engine
