"""
Unit тесты для crosswalk/services/excel.py (импорт прайсов и экспорт результатов)
"""
import json
from io import BytesIO

import pandas as pd
import pytest

from crosswalk.models.schemas import (
    CompetitorProduct,
    MatchCandidate,
    MatchingResponse,
    MatchMethod,
)
from crosswalk.services.excel import EXPORT_COLUMNS, ExcelService


def csv_file(text: str) -> BytesIO:
    return BytesIO(text.encode('utf-8'))


@pytest.fixture
def responses(catalog):
    product = catalog[0]
    matched = MatchingResponse(
        competitor_product=CompetitorProduct(sku="LEN-036-16", company="Lennox", price=5200.0),
        matches=[MatchCandidate(target_sku=product.sku, catalog_product=product,
                                confidence=0.98, match_method=MatchMethod.EXACT_SKU)],
        processing_time_ms=1.234,
    )
    unmatched = MatchingResponse(competitor_product=CompetitorProduct(sku="ZZZ-1", company="Acme"))
    return [matched, unmatched]


class TestParseCompetitorFile:
    def test_columns_by_alias(self):
        data = (
            "Part Number,Manufacturer,Description,Price,Tonnage\n"
            "GSX14-0361,Goodman,3 ton 14 SEER condenser,\"$2,450.00\",3\n"
            ",,,,\n"
            "036-TRN,Trane,,n/a,\n"
        )
        products = ExcelService.parse_competitor_file(csv_file(data), "goodman.csv")

        assert len(products) == 2
        first = products[0]
        assert first.sku == "GSX14-0361"
        assert first.company == "Goodman"
        assert first.description == "3 ton 14 SEER condenser"
        assert first.price == 2450.0
        assert first.specifications == {"tonnage": 3.0}
        assert first.source == "goodman.csv"

        second = products[1]
        assert second.price is None
        assert second.specifications is None
        assert second.description is None

    def test_leading_zeros_kept(self):
        products = ExcelService.parse_competitor_file(csv_file("sku\n036\n"), "codes.csv")
        assert products[0].sku == "036"

    def test_default_company(self):
        products = ExcelService.parse_competitor_file(csv_file("Артикул,Цена\nXR14-036,1000\n"), "p.csv",
                                                      company="Trane")
        assert products[0].company == "Trane"
        assert products[0].price == 1000.0

    def test_model_only_file(self):
        products = ExcelService.parse_competitor_file(csv_file("Model\n4TTR4036L1000A\n"), "m.csv")
        assert products[0].sku == ""
        assert products[0].model == "4TTR4036L1000A"

    def test_no_identifier_column(self):
        with pytest.raises(ValueError):
            ExcelService.parse_competitor_file(csv_file("Price\n100\n"), "bad.csv")


class TestParseCatalogFile:
    def test_catalog_columns(self):
        data = (
            "id,SKU,Model,Brand,Type,Tonnage,SEER,Refrigerant\n"
            "10,LEN-036-16,EL16XC1036,Lennox,air_conditioner,3,16,R-410A\n"
            "11,LEN-036-16,DUPLICATE,Lennox,air_conditioner,3,16,\n"
            "12,CAR-58SB0A070,58SB0A070,Carrier,furnace,,,\n"
        )
        products = ExcelService.parse_catalog_file(csv_file(data), "catalog.csv")

        assert [p.sku for p in products] == ["LEN-036-16", "CAR-58SB0A070"]
        first = products[0]
        assert first.id == "10"
        assert first.model == "EL16XC1036"
        assert first.brand == "Lennox"
        assert first.tonnage == 3.0
        assert first.seer == 16.0
        assert first.refrigerant == "R-410A"
        assert products[1].tonnage is None

    def test_position_as_id(self):
        products = ExcelService.parse_catalog_file(csv_file("sku,width\nA-1,10\nB-2,12\n"), "c.csv")
        assert [p.id for p in products] == [1, 2]

    def test_missing_sku_column(self):
        with pytest.raises(ValueError):
            ExcelService.parse_catalog_file(csv_file("model,brand\nX,Y\n"), "c.csv")

    def test_xlsx_roundtrip_through_pandas(self):
        output = BytesIO()
        pd.DataFrame({"SKU": ["GDM-GSX140481"], "Tonnage": ["4"]}).to_excel(output, index=False)
        output.seek(0)
        products = ExcelService.parse_catalog_file(output, "catalog.xlsx")
        assert products[0].sku == "GDM-GSX140481"
        assert products[0].tonnage == 4.0


class TestExport:
    def test_rows(self, responses):
        rows = ExcelService.result_rows(responses)
        assert len(rows) == 2
        assert rows[0]['Our SKU'] == "LEN-036-16"
        assert rows[0]['Confidence'] == "98.0%"
        assert rows[0]['Match Method'] == "exact_sku"
        assert rows[0]['Processing Time (ms)'] == 1.2

    def test_no_match_row(self, responses):
        row = ExcelService.result_rows(responses)[1]
        assert row['Our SKU'] == 'NO MATCH'
        assert row['Confidence'] == '0%'
        assert row['Match Method'] == 'none'
        assert row['Competitor Price'] == ''

    def test_csv(self, responses):
        text = ExcelService.export_results(responses, "csv")
        lines = text.strip().splitlines()
        assert lines[0] == ','.join(EXPORT_COLUMNS)
        assert len(lines) == 3
        assert "NO MATCH" in lines[2]

    def test_json(self, responses):
        data = json.loads(ExcelService.export_results(responses, "JSON"))
        assert data[0]["matches"][0]["match_method"] == "exact_sku"
        assert data[1]["matches"] == []

    def test_xlsx(self, responses):
        content = ExcelService.export_results(responses, "xlsx")
        df = pd.read_excel(BytesIO(content), sheet_name='Crosswalk')
        assert list(df.columns) == EXPORT_COLUMNS
        assert df['Our SKU'].tolist() == ["LEN-036-16", "NO MATCH"]

    def test_unsupported_format(self, responses):
        with pytest.raises(ValueError):
            ExcelService.export_results(responses, "pdf")
