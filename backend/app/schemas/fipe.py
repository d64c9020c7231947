from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class BrandOut(BaseModel):
    fipe_code: str = Field(alias="codigo")
    name: str = Field(alias="nome")
    vehicle_type: str = Field(alias="tipoVeiculo")
    created_at: Optional[datetime] = Field(default=None, alias="dataCriacao")
    updated_at: Optional[datetime] = Field(default=None, alias="dataAtualizacao")

    class Config:
        from_attributes = True
        populate_by_name = True


class ModelOut(BaseModel):
    fipe_code: str = Field(alias="codigo")
    name: str = Field(alias="nome")
    notes: Optional[str] = Field(default=None, alias="observacoes")
    brand_code: Optional[str] = Field(default=None, alias="codigoMarca")
    created_at: Optional[datetime] = Field(default=None, alias="dataCriacao")
    updated_at: Optional[datetime] = Field(default=None, alias="dataAtualizacao")

    class Config:
        from_attributes = True
        populate_by_name = True


class BrandsPage(BaseModel):
    brands: List[BrandOut] = Field(alias="marcas")
    page: int
    size: int
    total: int
    total_pages: int = Field(alias="totalPages")

    class Config:
        populate_by_name = True


class ModelsPage(BaseModel):
    brand_code: str = Field(alias="codigoMarca")
    brand_name: Optional[str] = Field(default=None, alias="nomeMarca")
    models: List[ModelOut] = Field(alias="modelos")
    page: int
    size: int
    total: int
    total_pages: int = Field(alias="totalPages")

    class Config:
        populate_by_name = True


class BrandCreateIn(BaseModel):
    codigo: Optional[str] = None
    nome: Optional[str] = None
    tipoVeiculo: Optional[str] = None


class ModelUpdateIn(BaseModel):
    nome: Optional[str] = None
    observacoes: Optional[str] = None


class ApiResponse(BaseModel):
    status: str
    message: str
    data: Optional[Any] = None


class ErrorOut(BaseModel):
    error: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def total_pages(total: int, size: int) -> int:
    if size <= 0:
        return 0
    return (total + size - 1) // size
