import pytest

from crosswalk.models.schemas import CatalogProduct, CompetitorProduct
from crosswalk.services.collaborators import InMemoryMappingStore
from crosswalk.services.matching import MatchingEngine


@pytest.fixture
def catalog() -> list[CatalogProduct]:
    """Небольшой каталог: 3 кондиционера и газовый котёл"""
    return [
        CatalogProduct(id=1, sku="LEN-036-16", model="EL16XC1036", brand="Lennox",
                       type="air_conditioner", tonnage=3.0, seer=16.0),
        CatalogProduct(id=2, sku="TRN-4TTR4036", model="4TTR4036L1000A", brand="Trane",
                       type="air_conditioner", tonnage=3.0, seer=14.0),
        CatalogProduct(id=3, sku="GDM-GSX140481", model="GSX140481", brand="Goodman",
                       type="air_conditioner", tonnage=4.0, seer=14.0),
        CatalogProduct(id=4, sku="CAR-58SB0A070", model="58SB0A070", brand="Carrier",
                       type="furnace", afue=80.0),
    ]


@pytest.fixture
def scenario_a_competitor() -> CompetitorProduct:
    return CompetitorProduct(sku="LEN-036-16")


@pytest.fixture
def mapping_store() -> InMemoryMappingStore:
    return InMemoryMappingStore()


@pytest.fixture
def engine(mapping_store) -> MatchingEngine:
    return MatchingEngine(mapping_lookup=mapping_store)
