from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import DuplicateKey, NotFound, ValidationError
from ..models import Brand, VehicleModel
from ..schemas.fipe import BrandOut, ModelOut
from ..utils.redis_cache import (
    BRAND_SCOPE,
    CacheKind,
    CatalogCache,
    brand_scope,
    build_brand_count_key,
    build_brand_list_key,
    build_entity_key,
    build_model_count_key,
    build_model_list_key,
    model_list_scope,
    model_scope,
)
from ..utils.taxonomy import require_text, require_vehicle_type

logger = logging.getLogger(__name__)


def _check_page(page: int, size: int) -> None:
    if page < 0:
        raise ValidationError("Página deve ser maior ou igual a zero")
    if size <= 0:
        raise ValidationError("Tamanho da página deve ser maior que zero")


def _brand_out(row: Brand) -> BrandOut:
    return BrandOut.model_validate(row)


def _model_out(row: VehicleModel, brand_code: Optional[str]) -> ModelOut:
    return ModelOut(
        fipe_code=row.fipe_code,
        name=row.name,
        notes=row.notes,
        brand_code=brand_code,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _cached_entity(cached: Any, schema: Type[SchemaT]) -> Optional[SchemaT]:
    if cached is None:
        return None
    try:
        return schema.model_validate(cached)
    except SchemaError as exc:
        logger.warning("ignoring malformed %s cache entry: %s", schema.__name__, exc)
        return None


def _cached_page(cached: Any, schema: Type[SchemaT]) -> Optional[Tuple[List[SchemaT], int]]:
    """Decode a cached list page; anything not shaped like one is a miss."""
    if cached is None:
        return None
    items = cached.get("items") if isinstance(cached, dict) else None
    total = cached.get("total") if isinstance(cached, dict) else None
    if not isinstance(items, list) or not isinstance(total, int) or isinstance(total, bool):
        logger.warning("ignoring malformed %s page in cache", schema.__name__)
        return None
    decoded = []
    for item in items:
        out = _cached_entity(item, schema)
        if out is None:
            return None
        decoded.append(out)
    return decoded, total


def _cached_count(cached: Any) -> Optional[int]:
    if cached is None:
        return None
    if not isinstance(cached, int) or isinstance(cached, bool):
        logger.warning("ignoring malformed count in cache: %r", cached)
        return None
    return cached


class QueryService:
    """Read and edit side of the catalog, cache-aside over the store."""

    def __init__(self, db: Session, cache: CatalogCache) -> None:
        self.db = db
        self.cache = cache

    def _find_brand(self, code: str) -> Optional[Brand]:
        return self.db.execute(select(Brand).where(Brand.fipe_code == code)).scalar_one_or_none()

    def _find_model(self, code: str) -> Optional[VehicleModel]:
        return self.db.execute(
            select(VehicleModel).where(VehicleModel.fipe_code == code)
        ).scalar_one_or_none()

    # --- brands ---
    def list_brands(
        self, vehicle_type: Optional[str] = None, page: int = 0, size: int = 50
    ) -> Tuple[List[BrandOut], int]:
        _check_page(page, size)
        vt = vehicle_type.strip().lower() if vehicle_type and vehicle_type.strip() else None
        version = self.cache.version(BRAND_SCOPE)
        key = build_brand_list_key(vt, page, size, version or 0)
        if version is not None:
            hit = _cached_page(self.cache.get(CacheKind.BRAND_LIST, key), BrandOut)
            if hit is not None:
                return hit

        stmt = select(Brand)
        if vt:
            stmt = stmt.where(func.lower(Brand.vehicle_type) == vt)
        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = self.db.execute(
            stmt.order_by(Brand.name.asc(), Brand.id.asc()).offset(page * size).limit(size)
        ).scalars().all()
        items = [_brand_out(r) for r in rows]
        if version is not None:
            self.cache.put(
                CacheKind.BRAND_LIST,
                key,
                {"items": [i.model_dump(mode="json", by_alias=True) for i in items], "total": total},
            )
        return items, total

    def count_brands(self, vehicle_type: Optional[str] = None) -> int:
        vt = vehicle_type.strip().lower() if vehicle_type and vehicle_type.strip() else None
        version = self.cache.version(BRAND_SCOPE)
        key = build_brand_count_key(vt, version or 0)
        if version is not None:
            cached = _cached_count(self.cache.get(CacheKind.STATS, key))
            if cached is not None:
                return cached
        stmt = select(func.count()).select_from(Brand)
        if vt:
            stmt = stmt.where(func.lower(Brand.vehicle_type) == vt)
        total = self.db.execute(stmt).scalar_one()
        if version is not None:
            self.cache.put(CacheKind.STATS, key, total)
        return total

    def get_brand(self, code: str) -> BrandOut:
        code = require_text(code, "Código da marca é obrigatório")
        version = self.cache.version(brand_scope(code))
        key = build_entity_key(code, version or 0)
        if version is not None:
            cached = _cached_entity(self.cache.get(CacheKind.BRAND, key), BrandOut)
            if cached is not None:
                return cached
        row = self._find_brand(code)
        if row is None:
            raise NotFound(f"Marca não encontrada: {code}")
        out = _brand_out(row)
        if version is not None:
            self.cache.put(CacheKind.BRAND, key, out.model_dump(mode="json", by_alias=True))
        return out

    def create_brand(self, code: str, name: str, vehicle_type: str) -> BrandOut:
        code = require_text(code, "Código da marca é obrigatório")
        name = require_text(name, "Nome da marca é obrigatório")
        vt = require_vehicle_type(vehicle_type)
        if self._find_brand(code) is not None:
            raise DuplicateKey(f"Marca já existe com código: {code}")
        now = datetime.utcnow()
        row = Brand(fipe_code=code, name=name, vehicle_type=vt, created_at=now, updated_at=now)
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateKey(f"Marca já existe com código: {code}") from exc
        self.db.refresh(row)
        self.cache.invalidate_brand(code)
        logger.info("brand created: %s - %s (%s)", code, name, vt)
        return _brand_out(row)

    # --- models ---
    def list_models_by_brand(
        self, brand_code: str, page: int = 0, size: int = 50
    ) -> Tuple[List[ModelOut], int]:
        _check_page(page, size)
        brand_code = require_text(brand_code, "Código da marca é obrigatório")
        version = self.cache.version(model_list_scope(brand_code))
        key = build_model_list_key(brand_code, page, size, version or 0)
        if version is not None:
            hit = _cached_page(self.cache.get(CacheKind.MODEL_LIST, key), ModelOut)
            if hit is not None:
                return hit

        brand = self._find_brand(brand_code)
        if brand is None:
            raise NotFound(f"Marca não encontrada: {brand_code}")
        stmt = select(VehicleModel).where(VehicleModel.brand_id == brand.id)
        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = self.db.execute(
            stmt.order_by(VehicleModel.name.asc(), VehicleModel.id.asc()).offset(page * size).limit(size)
        ).scalars().all()
        items = [_model_out(r, brand.fipe_code) for r in rows]
        if version is not None:
            self.cache.put(
                CacheKind.MODEL_LIST,
                key,
                {"items": [i.model_dump(mode="json", by_alias=True) for i in items], "total": total},
            )
        return items, total

    def count_models(self, brand_code: str) -> int:
        version = self.cache.version(model_list_scope(brand_code))
        key = build_model_count_key(brand_code, version or 0)
        if version is not None:
            cached = _cached_count(self.cache.get(CacheKind.STATS, key))
            if cached is not None:
                return cached
        total = self.db.execute(
            select(func.count())
            .select_from(VehicleModel)
            .join(Brand, VehicleModel.brand_id == Brand.id)
            .where(Brand.fipe_code == brand_code)
        ).scalar_one()
        if version is not None:
            self.cache.put(CacheKind.STATS, key, total)
        return total

    def get_model(self, code: str) -> ModelOut:
        code = require_text(code, "Código do modelo é obrigatório")
        version = self.cache.version(model_scope(code))
        key = build_entity_key(code, version or 0)
        if version is not None:
            cached = _cached_entity(self.cache.get(CacheKind.MODEL, key), ModelOut)
            if cached is not None:
                return cached
        row = self._find_model(code)
        if row is None:
            raise NotFound(f"Modelo não encontrado: {code}")
        out = _model_out(row, row.brand.fipe_code if row.brand else None)
        if version is not None:
            self.cache.put(CacheKind.MODEL, key, out.model_dump(mode="json", by_alias=True))
        return out

    def update_model(self, code: str, name: Optional[str] = None, notes: Optional[str] = None) -> ModelOut:
        code = require_text(code, "Código do modelo é obrigatório")
        row = self._find_model(code)
        if row is None:
            raise NotFound(f"Modelo não encontrado: {code}")
        if name is not None and name.strip():
            row.name = name.strip()
        if notes is not None:
            row.notes = notes
        row.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(row)
        brand_code = row.brand.fipe_code if row.brand else None
        self.cache.invalidate_model(code)
        if brand_code:
            self.cache.invalidate_model_lists(brand_code)
        logger.info("model updated: %s", code)
        return _model_out(row, brand_code)


__all__ = ["QueryService"]
