"""
External collaborators of the matching engine.

The engine only knows these two protocols; persistence and web/AI research
live outside this package. InMemoryMappingStore is the built-in lookup used
by the API and tests.
"""
import asyncio
import logging
from threading import Lock
from typing import Awaitable, Protocol, TypeVar, runtime_checkable

from crosswalk.config import settings
from crosswalk.models.schemas import CatalogProduct, CompetitorProduct, MatchCandidate, MatchMethod
from crosswalk.utils.normalizers import normalize_brand, normalize_sku

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ExistingMappingLookup(Protocol):
    async def lookup_existing_mapping(self, competitor: CompetitorProduct) -> MatchCandidate | None:
        ...


@runtime_checkable
class ResearchEnhancer(Protocol):
    async def enhance_with_research(
        self, competitor: CompetitorProduct, uncertain: list[MatchCandidate]
    ) -> list[MatchCandidate]:
        ...


async def call_with_timeout(awaitable: Awaitable[T], default: T, what: str,
                            timeout: float | None = None) -> T:
    """
    Ждём коллаборатора не дольше timeout.

    Timeout or failure means "no evidence": the default is returned and the
    request carries on.
    """
    timeout = settings.collaborator_timeout_seconds if timeout is None else timeout
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{what} timed out after {timeout}s")
    except Exception as e:
        logger.warning(f"{what} failed: {e}")
    return default


class InMemoryMappingStore:
    """Verified competitor→catalog mappings keyed by (company, SKU), thread-safe."""

    def __init__(self, confidence: float = 0.95):
        self._confidence = confidence
        self._mappings: dict[tuple[str, str], CatalogProduct] = {}
        self._lock = Lock()

    @staticmethod
    def _key(company: str, sku: str) -> tuple[str, str]:
        return normalize_brand(company), normalize_sku(sku)

    def save_mapping(self, company: str, sku: str, product: CatalogProduct):
        key = self._key(company, sku)
        if not key[1]:
            raise ValueError("Mapping requires a competitor SKU")
        with self._lock:
            self._mappings[key] = product
        logger.info(f"Saved mapping {company or '-'}/{sku} → {product.sku}")

    def remove_mapping(self, company: str, sku: str) -> bool:
        with self._lock:
            return self._mappings.pop(self._key(company, sku), None) is not None

    def clear(self):
        with self._lock:
            self._mappings = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._mappings)

    async def lookup_existing_mapping(self, competitor: CompetitorProduct) -> MatchCandidate | None:
        key = self._key(competitor.company, competitor.sku)
        if not key[1]:
            return None
        with self._lock:
            product = self._mappings.get(key)
        if product is None:
            return None
        return MatchCandidate(
            target_sku=product.sku,
            catalog_product=product,
            confidence=self._confidence,
            match_method=MatchMethod.EXISTING_MAPPING,
            reasoning=[f'Verified mapping: "{competitor.sku}" → "{product.sku}"'],
        )
