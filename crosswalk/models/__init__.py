from .schemas import (
    MatchMethod, ConfidenceLevel, MatchingStage,
    CompetitorProduct, CatalogProduct,
    ScoreBreakdown, SpecificationSummary, MatchCandidate,
    SpecTolerances, MatchingOptions,
    MatchingResponse, MatchingStats,
    MatchRequest, BatchMatchRequest, StrategyInfo, MappingCreate
)
