import json
import logging
import math
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from crosswalk.config import settings
from crosswalk.constants import (
    BRAND_FAMILIES,
    BRAND_SERIES_PREFIXES,
    BTU_PER_TON,
    DEFAULT_PRICE_BAND,
    DEFAULT_TONNAGE,
    NUMERIC_SPEC_FIELDS,
    PRICE_BANDS_PER_TON,
    PRODUCT_TYPE_ALIASES,
    PRODUCT_TYPE_KEYWORDS,
    REFRIGERANTS,
    SKU_PREFIX_BRANDS,
    SPEC_BOUNDS,
)
from crosswalk.models.schemas import CatalogProduct, CompetitorProduct
from crosswalk.utils.normalizers import normalize_brand

logger = logging.getLogger(__name__)


class HeuristicTables(BaseModel):
    """Industry lookup tables used for business-rule calibration."""

    product_type_keywords: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in PRODUCT_TYPE_KEYWORDS.items()}
    )
    product_type_aliases: dict[str, str] = Field(default_factory=lambda: dict(PRODUCT_TYPE_ALIASES))
    brand_families: list[list[str]] = Field(default_factory=lambda: [list(f) for f in BRAND_FAMILIES])
    price_bands_per_ton: dict[str, tuple[float, float]] = Field(
        default_factory=lambda: dict(PRICE_BANDS_PER_TON)
    )
    default_price_band: tuple[float, float] = DEFAULT_PRICE_BAND
    default_tonnage: float = DEFAULT_TONNAGE
    brand_series_prefixes: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in BRAND_SERIES_PREFIXES.items()}
    )
    sku_prefix_brands: dict[str, str] = Field(default_factory=lambda: dict(SKU_PREFIX_BRANDS))


def load_heuristics(path: str | Path | None = None) -> HeuristicTables:
    """Загрузка таблиц из JSON (ключи как в HeuristicTables), иначе дефолты."""
    if not path:
        return HeuristicTables()
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    logger.info(f"Loaded heuristic tables from {path}")
    return HeuristicTables(**data)


_heuristics: HeuristicTables | None = None


def get_heuristics() -> HeuristicTables:
    global _heuristics
    if _heuristics is None:
        _heuristics = load_heuristics(settings.heuristics_file or None)
    return _heuristics


# --- Product type ---

def normalize_product_type(product_type: str | None, tables: HeuristicTables | None = None) -> str:
    if not product_type:
        return ""
    tables = tables or get_heuristics()
    key = re.sub(r'[\s\-/]+', '_', product_type.strip().lower())
    return tables.product_type_aliases.get(key, key)


def check_product_type_match(
    competitor: CompetitorProduct,
    catalog_product: CatalogProduct,
    tables: HeuristicTables | None = None,
) -> bool | None:
    """
    Совместимость типа товара по ключевым словам в описании конкурента.

    Returns None when either side carries no type information.
    """
    tables = tables or get_heuristics()
    text = (competitor.description or "").lower()
    our_type = normalize_product_type(catalog_product.type, tables)
    if not text.strip() or not our_type:
        return None

    keywords = tables.product_type_keywords.get(our_type, [our_type.replace('_', ' ')])
    return any(keyword in text for keyword in keywords)


# --- Brand ---

def detect_brand(company: str | None, sku: str | None = None,
                 tables: HeuristicTables | None = None) -> str:
    """Бренд по названию компании, иначе по префиксу артикула (TRN-, LEN-...)."""
    tables = tables or get_heuristics()
    name = normalize_brand(company)
    if name:
        known = set(tables.brand_series_prefixes)
        for family in tables.brand_families:
            known.update(family)
        # Longest first: "american standard" before "standard"-like fragments
        for brand in sorted(known, key=len, reverse=True):
            if brand in name:
                return brand
        return name

    if sku:
        head = re.split(r'[-_\s]', sku.strip().upper(), maxsplit=1)[0]
        for prefix, brand in tables.sku_prefix_brands.items():
            if head.startswith(prefix):
                return brand
    return ""


def check_brand_compatibility(
    competitor: CompetitorProduct,
    catalog_product: CatalogProduct,
    tables: HeuristicTables | None = None,
) -> bool | None:
    """Same brand, or both brands in one platform family (Carrier/Bryant/Payne...)."""
    tables = tables or get_heuristics()
    their = normalize_brand(competitor.company)
    ours = normalize_brand(catalog_product.brand)
    if not their or not ours:
        return None

    if their in ours or ours in their:
        return True

    for family in tables.brand_families:
        their_in_family = any(brand in their for brand in family)
        ours_in_family = any(brand in ours for brand in family)
        if their_in_family and ours_in_family:
            return True
    return False


# --- Price ---

def expected_price_range(
    catalog_product: CatalogProduct,
    tables: HeuristicTables | None = None,
) -> tuple[float, float]:
    """Expected price band for a catalog item: per-ton band x tonnage."""
    tables = tables or get_heuristics()
    our_type = normalize_product_type(catalog_product.type, tables)
    low, high = tables.price_bands_per_ton.get(our_type, tables.default_price_band)
    tonnage = catalog_product.tonnage or tables.default_tonnage
    return low * tonnage, high * tonnage


def check_price_reasonableness(
    competitor: CompetitorProduct,
    catalog_product: CatalogProduct,
    tables: HeuristicTables | None = None,
) -> bool | None:
    if competitor.price is None:
        return None
    expected_min, expected_max = expected_price_range(catalog_product, tables)
    return expected_min * 0.5 <= competitor.price <= expected_max * 2.0


# --- Specifications from free text ---

_NUMBER = r'(\d+(?:\.\d+)?)'

SEER_PATTERNS = [re.compile(r'SEER(?!2)\s*' + _NUMBER), re.compile(_NUMBER + r'\s*SEER(?!2)')]
SEER2_PATTERNS = [re.compile(r'SEER2\s*' + _NUMBER), re.compile(_NUMBER + r'\s*SEER2')]
AFUE_PATTERNS = [re.compile(r'AFUE\s*' + _NUMBER), re.compile(_NUMBER + r'\s*%?\s*AFUE')]
HSPF_PATTERNS = [re.compile(r'HSPF\s*' + _NUMBER), re.compile(_NUMBER + r'\s*HSPF')]

# Rating tokens are removed before looking for capacity codes
RATING_TOKENS = re.compile(
    r'(SEER2?|AFUE|HSPF2?|EER)\s*\d+(\.\d+)?%?|\d+(\.\d+)?\s*%?\s*(SEER2?|AFUE|HSPF2?|EER)'
    r'|\bR[-\s]?\d{2,3}[A-Z]?\b'
)


def _first_in_bounds(text: str, patterns: list[re.Pattern], field: str) -> float | None:
    low, high = SPEC_BOUNDS[field]
    for pattern in patterns:
        for m in pattern.finditer(text):
            value = float(m.group(1))
            if low <= value <= high:
                return value
    return None


def tons_from_btu(btu: float) -> float | None:
    """12 000 BTU = 1 ton, rounded to the nearest half ton, accepted 1-5 tons."""
    tons = round(btu / BTU_PER_TON * 2) / 2
    low, high = SPEC_BOUNDS["tonnage"]
    if low <= tons <= high:
        return tons
    return None


def extract_tonnage(text: str) -> float | None:
    """
    Тоннаж из текста.

    Примеры:
        "3.5 TON" → 3.5
        "36,000 BTU" → 3.0
        "48 MBH" → 4.0
        "XR14-036" → 3.0   (036 = 36k BTU)
    """
    text = text.upper()
    low, high = SPEC_BOUNDS["tonnage"]

    for m in re.finditer(_NUMBER + r'\s*-?\s*TON', text):
        value = float(m.group(1))
        if low <= value <= high:
            return value

    for m in re.finditer(r'(\d{1,3}(?:,\d{3})+|\d{4,6})\s*BTU', text):
        tons = tons_from_btu(float(m.group(1).replace(',', '')))
        if tons:
            return tons

    for m in re.finditer(r'(\d{2,3})\s*(?:MBH|K\s*BTU)', text):
        tons = tons_from_btu(float(m.group(1)) * 1000)
        if tons:
            return tons

    # Capacity codes (018, 024, 036...) in thousands of BTU; nominal
    # capacities (multiples of 6k) win over other two-digit numbers
    stripped = RATING_TOKENS.sub(' ', text)
    codes = [float(c) for c in re.findall(r'(?<![\d.])(\d{2,3})(?![\d.])', stripped)]
    codes = [c for c in codes if 12 <= c <= 60]
    for value in sorted(codes, key=lambda c: c % 6 != 0):
        tons = tons_from_btu(value * 1000)
        if tons:
            return tons

    for m in re.finditer(_NUMBER + r'T\b', stripped):
        value = float(m.group(1))
        if low <= value <= high:
            return value
    return None


def extract_refrigerant(text: str) -> str | None:
    text = text.upper()
    for refrigerant in REFRIGERANTS:
        code = refrigerant[1:]
        if re.search(rf'\bR[-\s]?{code}\b', text):
            return refrigerant
    return None


def extract_stage(text: str) -> str | None:
    text = text.upper()
    if re.search(r'VARIABLE|\bVAR\b|INVERTER', text):
        return 'variable'
    if re.search(r'TWO[-\s]?STAGE|\b2[-\s]?STAGE', text):
        return 'two-stage'
    if re.search(r'SINGLE[-\s]?STAGE|\b1[-\s]?STAGE', text):
        return 'single'
    return None


def extract_specifications_from_text(text: str) -> dict[str, Any]:
    """Regex extraction of HVAC specs with plausibility bounds."""
    text = (text or "").upper()
    if not text.strip():
        return {}

    specs: dict[str, Any] = {}
    extractors = {
        'tonnage': lambda t: extract_tonnage(t),
        'seer': lambda t: _first_in_bounds(t, SEER_PATTERNS, 'seer'),
        'seer2': lambda t: _first_in_bounds(t, SEER2_PATTERNS, 'seer2'),
        'afue': lambda t: _first_in_bounds(t, AFUE_PATTERNS, 'afue'),
        'hspf': lambda t: _first_in_bounds(t, HSPF_PATTERNS, 'hspf'),
        'refrigerant': extract_refrigerant,
        'stage': extract_stage,
    }
    for field, extractor in extractors.items():
        value = extractor(text)
        if value is not None:
            specs[field] = value
    return specs


def coerce_spec_value(field: str, value: Any) -> Any:
    """Numeric spec fields given as strings ("3 ton", "16") become floats."""
    if value is None or value == "":
        return None
    if field in NUMERIC_SPEC_FIELDS:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            # NaN / inf count as missing
            return float(value) if math.isfinite(value) else None
        m = re.search(_NUMBER, str(value).replace(',', ''))
        return float(m.group(1)) if m else None
    if isinstance(value, str):
        return value.strip()
    return value


def normalize_spec_map(specs: dict[str, Any] | None) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in (specs or {}).items():
        field = str(key).strip().lower()
        coerced = coerce_spec_value(field, value)
        if coerced is not None:
            result[field] = coerced
    return result
