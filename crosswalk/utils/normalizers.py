import re

from crosswalk.constants import BRAND_PREFIXES

# Model-number shapes: TRN036A, XR16024, 16SEER036, LEN036ABC
MODEL_PATTERNS = [
    re.compile(r'[A-Z]{2,4}\d{2,6}[A-Z]?'),
    re.compile(r'\d{2,3}[A-Z]{2,6}\d{3,6}'),
    re.compile(r'[A-Z]{3,6}\d{3,8}'),
]


def normalize_sku(sku: str | None) -> str:
    """Нормализация артикула: верхний регистр, только буквы и цифры.

    Idempotent: normalize_sku("XR14-036") == normalize_sku("xr14036") == "XR14036"
    """
    if not sku:
        return ""
    result = sku.upper().strip()
    # Убираем разделители, затем всё что не буква/цифра
    result = re.sub(r'[-\s_]+', '', result)
    result = re.sub(r'[^A-Z0-9]', '', result)
    return result


def normalize_model(model: str | None) -> str:
    """Model numbers are compared exactly like SKUs."""
    return normalize_sku(model)


def normalize_brand(brand: str | None) -> str:
    if not brand:
        return ""
    return ' '.join(brand.lower().replace('&', ' and ').split())


def remove_brand_prefix(value: str) -> str:
    """Strip a known brand abbreviation from the front of an upper-cased model."""
    for prefix in BRAND_PREFIXES:
        if value.startswith(prefix):
            remainder = value[len(prefix):]
            if len(remainder) >= 3:
                return re.sub(r'^[-_\s]+', '', remainder)
    return value


def extract_model_parts(value: str) -> list[str]:
    """
    Извлекает части, похожие на номер модели.

    Примеры:
        "TRN-036-14" → ["036-14", "TRN", "036"]
        "4TTR4036L1000A" → ["TTR4036L", "TTR4036", "4TTR4036L1000A"]
    """
    parts: list[str] = []
    upper = value.upper().strip()

    without_brand = remove_brand_prefix(upper)
    if without_brand != upper:
        parts.append(without_brand)

    for pattern in MODEL_PATTERNS:
        parts.extend(pattern.findall(upper))

    parts.extend(p for p in re.split(r'[-_\s]', upper) if len(p) >= 3)

    return list(dict.fromkeys(parts))


def extract_search_terms(sku: str | None, model: str | None = None) -> list[str]:
    """
    Термы для fuzzy сравнения: полный SKU/модель + их части.

    Terms are compared after normalize_sku(), so separators do not matter.
    """
    terms: list[str] = []
    for value in (sku, model):
        if not value:
            continue
        terms.append(value)
        terms.extend(extract_model_parts(value))

    normalized = (normalize_sku(t) for t in terms)
    return list(dict.fromkeys(t for t in normalized if t))
