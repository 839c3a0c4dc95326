import math
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional, Any


class MatchMethod(str, Enum):
    EXACT_SKU = "exact_sku"
    EXACT_MODEL = "exact_model"
    FUZZY_MODEL = "fuzzy_model"
    SPECIFICATIONS = "specifications"
    HYBRID = "hybrid"
    EXISTING_MAPPING = "existing_mapping"
    AI_ENHANCED = "ai_enhanced"
    # Extended signals
    BRAND_TRANSLATION = "brand_translation"
    CAPACITY_CORRELATION = "capacity_correlation"
    PRICE_BAND = "price_band"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class MatchingStage(str, Enum):
    NOT_STARTED = "not_started"
    EXISTING_MAPPING_CHECK = "existing_mapping_check"
    STRATEGY_EXECUTION = "strategy_execution"
    FUSION = "fusion"
    FILTERING = "filtering"
    COMPLETE = "complete"
    FAILED = "failed"


# Products
class CompetitorProduct(BaseModel):
    sku: str = ""
    company: str = ""
    model: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    specifications: Optional[dict[str, Any]] = None
    source: Optional[str] = None

    class Config:
        frozen = True


class CatalogProduct(BaseModel):
    id: int | str
    sku: str
    model: str = ""
    brand: str = ""
    type: str = ""
    tonnage: Optional[float] = None
    seer: Optional[float] = None
    seer2: Optional[float] = None
    afue: Optional[float] = None
    hspf: Optional[float] = None
    refrigerant: Optional[str] = None
    stage: Optional[str] = None
    description: Optional[str] = None
    specifications: dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True


# Match candidates
class ScoreBreakdown(BaseModel):
    exact: float = 0.0
    model: float = 0.0
    specifications: float = 0.0
    overall: float = 0.0


class SpecificationSummary(BaseModel):
    matched: list[str] = Field(default_factory=list)
    mismatched: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)


class MatchCandidate(BaseModel):
    target_sku: str
    catalog_product: CatalogProduct
    confidence: float
    match_method: MatchMethod
    reasoning: list[str] = Field(default_factory=list)
    specifications: Optional[SpecificationSummary] = None
    score: ScoreBreakdown = Field(default_factory=ScoreBreakdown)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        value = float(value)
        if math.isnan(value):
            return 0.0
        return max(0.0, min(1.0, value))


# Options
class SpecTolerances(BaseModel):
    tonnage: float = Field(default=0.5, ge=0)
    seer: float = Field(default=2.0, ge=0)   # also used for SEER2
    afue: float = Field(default=2.0, ge=0)
    hspf: float = Field(default=0.5, ge=0)
    default: float = Field(default=0.1, ge=0)

    def for_field(self, field: str) -> float:
        if field in ("seer", "seer2"):
            return self.seer
        if field in ("tonnage", "afue", "hspf"):
            return getattr(self, field)
        return self.default


DEFAULT_STRATEGIES = [
    MatchMethod.EXACT_SKU,
    MatchMethod.EXACT_MODEL,
    MatchMethod.FUZZY_MODEL,
    MatchMethod.SPECIFICATIONS,
]


class MatchingOptions(BaseModel):
    enabled_strategies: list[MatchMethod] = Field(default_factory=lambda: list(DEFAULT_STRATEGIES))
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    max_results: int = Field(default=10, ge=1)
    use_ai: bool = False
    strict_mode: bool = False
    specifications: SpecTolerances = Field(default_factory=SpecTolerances)


# Responses
class MatchingResponse(BaseModel):
    competitor_product: CompetitorProduct
    matches: list[MatchCandidate] = Field(default_factory=list)
    total_candidates: int = 0
    strategies_used: list[MatchMethod] = Field(default_factory=list)
    confidence: ConfidenceLevel = ConfidenceLevel.NONE
    processing_time_ms: float = 0.0
    stage: MatchingStage = MatchingStage.COMPLETE
    errors: list[str] = Field(default_factory=list)

    @property
    def best_match(self) -> Optional[MatchCandidate]:
        return self.matches[0] if self.matches else None


class MatchingStats(BaseModel):
    total_processed: int = 0
    exact_matches: int = 0
    fuzzy_matches: int = 0
    spec_matches: int = 0
    ai_matches: int = 0
    no_matches: int = 0
    average_confidence: float = 0.0
    average_processing_time_ms: float = 0.0
    strategies_usage: dict[str, int] = Field(
        default_factory=lambda: {method.value: 0 for method in MatchMethod}
    )


# API payloads
class MatchRequest(BaseModel):
    competitor: CompetitorProduct
    catalog: list[CatalogProduct] = Field(default_factory=list)
    options: Optional[MatchingOptions] = None
    profile: str = "default"


class BatchMatchRequest(BaseModel):
    competitors: list[CompetitorProduct]
    catalog: list[CatalogProduct] = Field(default_factory=list)
    options: Optional[MatchingOptions] = None
    profile: str = "default"


class StrategyInfo(BaseModel):
    method: MatchMethod
    name: str
    description: str
    confidence_range: tuple[float, float]


class MappingCreate(BaseModel):
    company: str = ""
    sku: str
    product: CatalogProduct
