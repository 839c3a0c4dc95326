"""
API сопоставления SKU конкурентов с каталогом.
"""
from io import BytesIO

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from crosswalk.models.schemas import (
    BatchMatchRequest,
    MappingCreate,
    MatchingOptions,
    MatchingResponse,
    MatchingStats,
    MatchRequest,
    StrategyInfo,
)
from crosswalk.services.collaborators import InMemoryMappingStore
from crosswalk.services.excel import EXPORT_FORMATS, ExcelService
from crosswalk.services.matching import MatchingEngine, get_matching_engine

router = APIRouter(prefix="/matching", tags=["matching"])

SPREADSHEET_EXTENSIONS = ('.xlsx', '.xls', '.csv')


def resolve_options(engine: MatchingEngine, options: MatchingOptions | None, profile: str) -> MatchingOptions:
    """Явные опции важнее профиля"""
    if options is not None:
        return options
    try:
        return engine.get_options(profile)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/match", response_model=MatchingResponse)
async def match_product(request: MatchRequest):
    """Сопоставить одну позицию конкурента"""
    engine = get_matching_engine()
    options = resolve_options(engine, request.options, request.profile)
    return await engine.find_matches(request.competitor, request.catalog, options)


@router.post("/batch", response_model=list[MatchingResponse])
async def match_batch(request: BatchMatchRequest):
    """Пакетное сопоставление (порядок ответов = порядок запроса)"""
    engine = get_matching_engine()
    options = resolve_options(engine, request.options, request.profile)
    return await engine.batch_process(request.competitors, request.catalog, options)


@router.post("/upload", response_model=list[MatchingResponse])
async def match_upload(
    competitor_file: UploadFile = File(...),
    catalog_file: UploadFile = File(...),
    company: str = Form(""),
    profile: str = Form("default"),
):
    """Загрузить прайс конкурента и каталог (Excel/CSV) и выполнить сопоставление"""
    for upload in (competitor_file, catalog_file):
        if not upload.filename.lower().endswith(SPREADSHEET_EXTENSIONS):
            raise HTTPException(status_code=400, detail="Only Excel and CSV files are supported")

    try:
        competitors = ExcelService.parse_competitor_file(
            BytesIO(await competitor_file.read()), competitor_file.filename, company=company
        )
        catalog = ExcelService.parse_catalog_file(BytesIO(await catalog_file.read()), catalog_file.filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not competitors:
        raise HTTPException(status_code=400, detail="Competitor file has no rows")

    engine = get_matching_engine()
    options = resolve_options(engine, None, profile)
    return await engine.batch_process(competitors, catalog, options)


@router.post("/export")
async def export_results(responses: list[MatchingResponse], format: str = "csv"):
    """Экспорт результатов в CSV / JSON / XLSX"""
    fmt = format.lower()
    if fmt not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")

    if fmt == "xlsx":
        return StreamingResponse(
            BytesIO(ExcelService.export_xlsx(responses)),
            media_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            headers={'Content-Disposition': 'attachment; filename=crosswalk_results.xlsx'}
        )
    if fmt == "json":
        return Response(ExcelService.export_json(responses), media_type="application/json")
    return Response(
        ExcelService.export_csv(responses),
        media_type="text/csv",
        headers={'Content-Disposition': 'attachment; filename=crosswalk_results.csv'}
    )


@router.post("/mappings", status_code=201)
async def save_mapping(mapping: MappingCreate):
    """Сохранить подтверждённый маппинг (используется до запуска стратегий)"""
    engine = get_matching_engine()
    if not isinstance(engine.mapping_lookup, InMemoryMappingStore):
        raise HTTPException(status_code=501, detail="Mapping store is not writable")
    try:
        engine.mapping_lookup.save_mapping(mapping.company, mapping.sku, mapping.product)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "saved", "sku": mapping.sku, "target_sku": mapping.product.sku}


@router.get("/stats", response_model=MatchingStats)
async def get_stats():
    """Статистика matching"""
    return get_matching_engine().get_stats()


@router.post("/stats/reset")
async def reset_stats():
    """Сбросить статистику matching"""
    get_matching_engine().reset_stats()
    return {"status": "ok", "message": "Stats reset"}


@router.get("/strategies", response_model=list[StrategyInfo])
async def list_strategies():
    return get_matching_engine().available_strategies()


@router.get("/options/{profile}", response_model=MatchingOptions)
async def get_profile_options(profile: str):
    return resolve_options(get_matching_engine(), None, profile)
