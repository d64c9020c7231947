import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from ..deps import (
    get_fipe_client,
    get_initial_load_service,
    get_publisher,
    get_query_service,
)
from ..errors import InternalError, PublishError
from ..integrations.fipe import FipeClient
from ..messaging import BrandPublisher
from ..schemas.fipe import (
    ApiResponse,
    BrandCreateIn,
    BrandOut,
    BrandsPage,
    ModelOut,
    ModelsPage,
    ModelUpdateIn,
    total_pages,
)
from ..services.initial_load_service import InitialLoadService
from ..services.query_service import QueryService

router = APIRouter(prefix="/api/v1/fipe", tags=["fipe"])
logger = logging.getLogger(__name__)


@router.post("/initial-load", status_code=status.HTTP_202_ACCEPTED, response_model=ApiResponse)
def initial_load(service: InitialLoadService = Depends(get_initial_load_service)):
    logger.info("initial load requested")
    summary = service.run()
    return ApiResponse(
        status="success",
        message="Carga inicial iniciada com sucesso",
        data=summary.as_dict(),
    )


@router.post("/brands", status_code=status.HTTP_201_CREATED, response_model=BrandOut)
def create_brand(
    payload: BrandCreateIn,
    service: QueryService = Depends(get_query_service),
    publisher: BrandPublisher = Depends(get_publisher),
):
    brand = service.create_brand(payload.codigo, payload.nome, payload.tipoVeiculo)
    try:
        publisher.publish(brand.fipe_code, brand.name, brand.vehicle_type)
    except PublishError as exc:
        raise InternalError(
            f"Marca criada, mas falha ao enviar para processamento: {exc}") from exc
    return brand


@router.get("/brands", response_model=BrandsPage)
def list_brands(
    tipoVeiculo: Optional[str] = Query(None),
    page: int = Query(0, ge=0),
    size: int = Query(50, ge=1, le=500),
    service: QueryService = Depends(get_query_service),
):
    items, total = service.list_brands(tipoVeiculo, page, size)
    return BrandsPage(brands=items, page=page, size=size, total=total, total_pages=total_pages(total, size))


@router.get("/brands/{code}/models", response_model=ModelsPage)
def list_models(
    code: str,
    page: int = Query(0, ge=0),
    size: int = Query(50, ge=1, le=500),
    service: QueryService = Depends(get_query_service),
):
    items, total = service.list_models_by_brand(code, page, size)
    brand = service.get_brand(code)
    return ModelsPage(
        brand_code=brand.fipe_code,
        brand_name=brand.name,
        models=items,
        page=page,
        size=size,
        total=total,
        total_pages=total_pages(total, size),
    )


@router.put("/models/{code}", response_model=ModelOut)
def update_model(
    code: str,
    payload: ModelUpdateIn,
    service: QueryService = Depends(get_query_service),
):
    return service.update_model(code, payload.nome, payload.observacoes)


@router.get("/health")
def health(client: FipeClient = Depends(get_fipe_client)):
    fipe_up = client.ping()
    return JSONResponse({
        "status": "UP",
        "fipeApi": "UP" if fipe_up else "DOWN",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })
