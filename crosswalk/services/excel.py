import json
import logging
from io import BytesIO
from typing import Any, BinaryIO

import pandas as pd

from crosswalk.constants import NUMERIC_SPEC_FIELDS, TEXT_SPEC_FIELDS
from crosswalk.models.schemas import CatalogProduct, CompetitorProduct, MatchingResponse
from crosswalk.utils.matching_helpers import coerce_spec_value

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json", "xlsx")

EXPORT_COLUMNS = [
    'Competitor SKU',
    'Competitor Company',
    'Competitor Price',
    'Our SKU',
    'Our Model',
    'Confidence',
    'Match Method',
    'Processing Time (ms)',
]


class ExcelService:
    """Импорт прайсов конкурентов / каталога и экспорт результатов сопоставления"""

    # Возможные названия колонок
    SKU_COLUMNS = ['sku', 'артикул', 'part number', 'part no', 'code', 'код']
    MODEL_COLUMNS = ['model', 'модель']
    COMPANY_COLUMNS = ['company', 'manufacturer', 'brand', 'производитель', 'бренд', 'марка']
    DESCRIPTION_COLUMNS = ['description', 'desc', 'описание', 'name', 'наименование']
    PRICE_COLUMNS = ['price', 'cost', 'цена', 'стоимость']
    TYPE_COLUMNS = ['type', 'category', 'тип', 'категория']

    @classmethod
    def _read(cls, file: BinaryIO, filename: str) -> pd.DataFrame:
        # Всё читаем как строки, чтобы не терять ведущие нули (036)
        if filename.lower().endswith('.csv'):
            df = pd.read_csv(file, encoding='utf-8', dtype=str)
        else:
            df = pd.read_excel(file, dtype=str)
        df.columns = [str(col).lower().strip() for col in df.columns]
        return df

    @classmethod
    def _find_column(cls, columns: list, candidates: list, exclude: tuple = ()) -> str | None:
        """Поиск колонки по возможным названиям (точное совпадение важнее вхождения)"""
        columns = [col for col in columns if col not in exclude]
        for col in columns:
            if col in candidates:
                return col
        for col in columns:
            for candidate in candidates:
                if candidate in col:
                    return col
        return None

    @staticmethod
    def _cell(row: pd.Series, col: str | None) -> str:
        if col is None or pd.isna(row[col]):
            return ""
        return str(row[col]).replace('\xa0', ' ').strip()

    @staticmethod
    def _price(row: pd.Series, col: str | None) -> float | None:
        if col is None or pd.isna(row[col]):
            return None
        try:
            return float(str(row[col]).replace('$', '').replace(',', '').strip())
        except ValueError:
            return None

    @classmethod
    def _spec_columns(cls, columns: list) -> dict[str, str]:
        fields = {}
        for field in NUMERIC_SPEC_FIELDS + TEXT_SPEC_FIELDS:
            if field in columns:
                fields[field] = field
        return fields

    @classmethod
    def parse_competitor_file(cls, file: BinaryIO, filename: str, company: str = "") -> list[CompetitorProduct]:
        """Парсинг Excel/CSV с позициями конкурента"""
        df = cls._read(file, filename)

        sku_col = cls._find_column(df.columns, cls.SKU_COLUMNS)
        model_col = cls._find_column(df.columns, cls.MODEL_COLUMNS, exclude=(sku_col,))
        if not sku_col and not model_col:
            raise ValueError("No SKU or model column found")

        company_col = cls._find_column(df.columns, cls.COMPANY_COLUMNS)
        description_col = cls._find_column(df.columns, cls.DESCRIPTION_COLUMNS, exclude=(company_col,))
        price_col = cls._find_column(df.columns, cls.PRICE_COLUMNS)
        spec_cols = cls._spec_columns(list(df.columns))

        products = []
        for _, row in df.iterrows():
            sku = cls._cell(row, sku_col)
            model = cls._cell(row, model_col)
            # Пропускаем пустые строки
            if not sku and not model:
                continue

            specifications = {}
            for field, col in spec_cols.items():
                value = coerce_spec_value(field, None if pd.isna(row[col]) else row[col])
                if value is not None:
                    specifications[field] = value

            products.append(CompetitorProduct(
                sku=sku,
                company=cls._cell(row, company_col) or company,
                model=model or None,
                description=cls._cell(row, description_col) or None,
                price=cls._price(row, price_col),
                specifications=specifications or None,
                source=filename,
            ))

        logger.info(f"Parsed {len(products)} competitor rows from {filename}")
        return products

    @classmethod
    def parse_catalog_file(cls, file: BinaryIO, filename: str) -> list[CatalogProduct]:
        """Парсинг нашего каталога"""
        df = cls._read(file, filename)

        sku_col = cls._find_column(df.columns, cls.SKU_COLUMNS)
        if not sku_col:
            raise ValueError("No SKU column found")

        id_col = 'id' if 'id' in df.columns else None
        model_col = cls._find_column(df.columns, cls.MODEL_COLUMNS, exclude=(sku_col,))
        brand_col = cls._find_column(df.columns, cls.COMPANY_COLUMNS)
        type_col = cls._find_column(df.columns, cls.TYPE_COLUMNS)
        description_col = cls._find_column(df.columns, cls.DESCRIPTION_COLUMNS, exclude=(brand_col,))
        spec_cols = cls._spec_columns(list(df.columns))

        products = []
        seen_skus = set()
        for position, (_, row) in enumerate(df.iterrows(), start=1):
            sku = cls._cell(row, sku_col)
            # Дедупликация по SKU (оставляем первый)
            if not sku or sku in seen_skus:
                continue
            seen_skus.add(sku)

            fields: dict[str, Any] = {}
            for field, col in spec_cols.items():
                value = coerce_spec_value(field, None if pd.isna(row[col]) else row[col])
                if value is not None:
                    fields[field] = value

            products.append(CatalogProduct(
                id=cls._cell(row, id_col) or position,
                sku=sku,
                model=cls._cell(row, model_col),
                brand=cls._cell(row, brand_col),
                type=cls._cell(row, type_col),
                description=cls._cell(row, description_col) or None,
                **fields,
            ))

        logger.info(f"Parsed {len(products)} catalog products from {filename}")
        return products

    # --- Export ---

    @classmethod
    def result_rows(cls, responses: list[MatchingResponse]) -> list[dict]:
        """Одна строка на совпадение; NO MATCH если совпадений нет"""
        rows = []
        for response in responses:
            competitor = response.competitor_product
            base = {
                'Competitor SKU': competitor.sku,
                'Competitor Company': competitor.company,
                'Competitor Price': competitor.price if competitor.price is not None else '',
            }
            if not response.matches:
                rows.append({
                    **base,
                    'Our SKU': 'NO MATCH',
                    'Our Model': '',
                    'Confidence': '0%',
                    'Match Method': 'none',
                    'Processing Time (ms)': round(response.processing_time_ms, 1),
                })
                continue
            for match in response.matches:
                rows.append({
                    **base,
                    'Our SKU': match.target_sku,
                    'Our Model': match.catalog_product.model,
                    'Confidence': f"{match.confidence * 100:.1f}%",
                    'Match Method': match.match_method.value,
                    'Processing Time (ms)': round(response.processing_time_ms, 1),
                })
        return rows

    @classmethod
    def export_csv(cls, responses: list[MatchingResponse]) -> str:
        df = pd.DataFrame(cls.result_rows(responses), columns=EXPORT_COLUMNS)
        return df.to_csv(index=False)

    @classmethod
    def export_json(cls, responses: list[MatchingResponse]) -> str:
        return json.dumps([r.model_dump(mode="json") for r in responses], ensure_ascii=False, indent=2)

    @classmethod
    def export_xlsx(cls, responses: list[MatchingResponse]) -> bytes:
        df = pd.DataFrame(cls.result_rows(responses), columns=EXPORT_COLUMNS)

        # Экспорт в BytesIO
        output = BytesIO()
        with pd.ExcelWriter(output, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Crosswalk')
        output.seek(0)
        return output.getvalue()

    @classmethod
    def export_results(cls, responses: list[MatchingResponse], fmt: str = "csv") -> str | bytes:
        fmt = fmt.lower()
        if fmt == "csv":
            return cls.export_csv(responses)
        if fmt == "json":
            return cls.export_json(responses)
        if fmt == "xlsx":
            return cls.export_xlsx(responses)
        raise ValueError(f"Unsupported export format: {fmt}")
