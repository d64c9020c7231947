from __future__ import annotations

from typing import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .integrations.fipe import FipeClient
from .messaging import BrandPublisher, RedisBrokerQueue
from .services.ingestion_service import BrandIngestionProcessor
from .services.initial_load_service import InitialLoadService
from .services.query_service import QueryService
from .utils.redis_cache import CatalogCache


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_fipe_client(request: Request) -> FipeClient:
    return request.app.state.fipe_client


def get_cache(request: Request) -> CatalogCache:
    return request.app.state.cache


def get_queue(request: Request) -> RedisBrokerQueue:
    return request.app.state.queue


def get_publisher(request: Request) -> BrandPublisher:
    return request.app.state.publisher


def get_query_service(
    db: Session = Depends(get_db), cache: CatalogCache = Depends(get_cache)
) -> QueryService:
    return QueryService(db, cache)


def get_initial_load_service(
    client: FipeClient = Depends(get_fipe_client),
    publisher: BrandPublisher = Depends(get_publisher),
) -> InitialLoadService:
    return InitialLoadService(client, publisher)


def get_processor(request: Request) -> BrandIngestionProcessor:
    return request.app.state.processor
