from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..errors import UpstreamUnavailable
from ..integrations.fipe.mapper import ModelRef
from ..models import Brand, VehicleModel
from ..utils.redis_cache import CatalogCache
from ..utils.taxonomy import VEHICLE_TYPES, require_text, require_vehicle_type

logger = logging.getLogger("ingestion")


class ModelSource(Protocol):
    def list_models(self, vehicle_type: str, brand_code: str) -> List[ModelRef]: ...


@dataclass
class IngestionResult:
    brand_code: str
    brand_created: bool
    inserted: int = 0
    skipped: int = 0
    failed: int = 0


class BrandIngestionProcessor:
    """
    Persists one brand and its models.

    The brand is upserted and committed first, so it survives a later failure
    to fetch models. Models are inserted one by one inside savepoints; a model
    already present (by FIPE code) is skipped, a failing insert is logged and
    the loop goes on. Running the same brand twice leaves the store unchanged.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        client: ModelSource,
        *,
        cache: Optional[CatalogCache] = None,
        max_retries: int = 3,
        retry_delay_ms: int = 5000,
        delay_between_requests_ms: int = 100,
    ) -> None:
        self.session_factory = session_factory
        self.client = client
        self.cache = cache
        self.max_retries = max(1, max_retries)
        self.retry_delay = max(0, retry_delay_ms) / 1000.0
        self.delay_between_requests = max(0, delay_between_requests_ms) / 1000.0

    def process(self, brand_code: str, brand_name: str, vehicle_type: str) -> IngestionResult:
        code = require_text(brand_code, "Código da marca é obrigatório")
        name = require_text(brand_name, "Nome da marca é obrigatório")
        vt = require_vehicle_type(vehicle_type)
        logger.info("processing brand %s (%s) type=%s", name, code, vt)

        with self.session_factory() as db:
            brand, created = self._upsert_brand(db, code, name, vt)
            result = IngestionResult(brand_code=code, brand_created=created)
            if created and self.cache is not None:
                self.cache.invalidate_brand(code)

            try:
                models = self._fetch_models(vt, code)
            except UpstreamUnavailable:
                logger.error("giving up on models for brand %s after %d attempts", code, self.max_retries)
                raise

            if not models:
                logger.warning("no models found for brand %s (%s)", name, code)
                return result

            self._save_models(db, brand, models, result)

        if result.inserted and self.cache is not None:
            self.cache.invalidate_model_lists(code)
        logger.info(
            "brand %s done: inserted=%d skipped=%d failed=%d",
            code, result.inserted, result.skipped, result.failed,
        )
        return result

    def _upsert_brand(self, db: Session, code: str, name: str, vehicle_type: str) -> Tuple[Brand, bool]:
        existing = db.execute(select(Brand).where(Brand.fipe_code == code)).scalar_one_or_none()
        if existing:
            logger.debug("brand already stored: %s", code)
            return existing, False
        now = datetime.utcnow()
        brand = Brand(fipe_code=code, name=name, vehicle_type=vehicle_type, created_at=now, updated_at=now)
        db.add(brand)
        try:
            db.commit()
        except IntegrityError:
            # another consumer inserted the same brand first
            db.rollback()
            logger.info("brand %s inserted concurrently, reusing it", code)
            return db.execute(select(Brand).where(Brand.fipe_code == code)).scalar_one(), False
        db.refresh(brand)
        logger.info("new brand saved: %s (id=%s)", name, brand.id)
        return brand, True

    def _fetch_models(self, vehicle_type: str, brand_code: str) -> List[ModelRef]:
        retrying = Retrying(
            retry=retry_if_exception_type(UpstreamUnavailable),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_fixed(self.retry_delay),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return list(retrying(self.client.list_models, vehicle_type, brand_code) or [])

    def _save_models(self, db: Session, brand: Brand, models: List[ModelRef], result: IngestionResult) -> None:
        for ref in models:
            try:
                exists = db.execute(
                    select(VehicleModel.id).where(VehicleModel.fipe_code == ref.code)
                ).first()
                if exists:
                    logger.debug("model already stored: %s", ref.code)
                    result.skipped += 1
                    continue
                now = datetime.utcnow()
                with db.begin_nested():
                    db.add(VehicleModel(
                        fipe_code=ref.code,
                        name=ref.name,
                        brand_id=brand.id,
                        created_at=now,
                        updated_at=now,
                    ))
                result.inserted += 1
            except IntegrityError:
                logger.debug("model %s inserted concurrently, skipping", ref.code)
                result.skipped += 1
                continue
            except Exception as exc:
                logger.error("failed to save model %s (%s): %s", ref.name, ref.code, exc)
                result.failed += 1
                continue
            if self.delay_between_requests:
                time.sleep(self.delay_between_requests)
        db.commit()

    # --- monitoring helpers ---
    def is_brand_processed(self, brand_code: str) -> bool:
        with self.session_factory() as db:
            brand_id = db.execute(select(Brand.id).where(Brand.fipe_code == brand_code)).scalar_one_or_none()
            if brand_id is None:
                return False
            count = db.execute(
                select(func.count()).select_from(VehicleModel).where(VehicleModel.brand_id == brand_id)
            ).scalar_one()
            return count > 0

    def processing_stats(self) -> Dict[str, int]:
        with self.session_factory() as db:
            stats: Dict[str, int] = {
                "total_brands": db.execute(select(func.count()).select_from(Brand)).scalar_one(),
                "total_models": db.execute(select(func.count()).select_from(VehicleModel)).scalar_one(),
            }
            rows = db.execute(
                select(func.lower(Brand.vehicle_type), func.count()).group_by(func.lower(Brand.vehicle_type))
            ).all()
            by_type = {vt: 0 for vt in VEHICLE_TYPES}
            for vt, count in rows:
                if vt in by_type:
                    by_type[vt] = int(count)
            for vt, count in by_type.items():
                stats[f"brands_{vt}"] = count
            return stats


__all__ = ["BrandIngestionProcessor", "IngestionResult", "ModelSource"]
