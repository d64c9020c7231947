from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

from ..integrations.fipe.mapper import BrandRef
from ..messaging.publisher import BrandPublisher
from ..utils.taxonomy import VEHICLE_TYPES, require_vehicle_type

logger = logging.getLogger(__name__)


class BrandSource(Protocol):
    def list_brands(self, vehicle_type: str) -> List[BrandRef]: ...


@dataclass
class InitialLoadSummary:
    published: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.published.values())

    def as_dict(self) -> dict:
        return {"porTipo": dict(self.published), "total": self.total}


class InitialLoadService:
    """Fetches every brand from the catalog API and queues one message per brand."""

    def __init__(self, client: BrandSource, publisher: BrandPublisher) -> None:
        self.client = client
        self.publisher = publisher

    def fetch_brands(self, vehicle_type: str) -> List[BrandRef]:
        vt = require_vehicle_type(vehicle_type)
        brands = self.client.list_brands(vt)
        logger.info("fetched %d brands of type %s", len(brands), vt)
        return brands

    def run(self, vehicle_types: Optional[Iterable[str]] = None) -> InitialLoadSummary:
        types = [require_vehicle_type(t) for t in (vehicle_types or VEHICLE_TYPES)]
        summary = InitialLoadSummary()
        logger.info("initial load started for %s", ", ".join(types))
        for vt in types:
            brands = self.fetch_brands(vt)
            summary.published[vt] = self.publisher.publish_batch(brands, vt)
        logger.info("initial load finished, %d brands queued", summary.total)
        return summary


__all__ = ["InitialLoadService", "InitialLoadSummary"]
