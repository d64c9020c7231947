from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ...errors import UpstreamUnavailable
from ...utils.taxonomy import require_vehicle_type
from .mapper import BrandRef, ModelRef, map_brands, map_models

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """Transient upstream failure: timeout, transport error, 5xx or 429."""


class FipeClient:
    """
    HTTP client for the FIPE catalog API.

    Every call is bounded by ``timeout`` and retried ``max_retries`` times
    (fixed ``backoff`` seconds apart) on transient failures before
    ``UpstreamUnavailable`` is raised.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff: float = 1.0,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(0, max_retries)
        self.backoff = max(0.0, backoff)
        headers = {"Accept": "application/json"}
        if user_agent:
            headers["User-Agent"] = user_agent
        self.client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception_type(RetryableError),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_fixed(self.backoff),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _get_once(self, path: str) -> Any:
        try:
            resp = self.client.get(path)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise RetryableError(f"GET {path}: {type(exc).__name__}: {exc}") from exc
        if resp.status_code >= 500 or resp.status_code == 429:
            raise RetryableError(f"GET {path}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise UpstreamUnavailable(
                f"FIPE respondeu HTTP {resp.status_code} para {path}", status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"Resposta inválida da API FIPE para {path}") from exc

    def _get_json(self, path: str) -> Any:
        try:
            return self._retrying()(self._get_once, path)
        except RetryableError as exc:
            logger.error("FIPE request failed after %s attempts: %s", self.max_retries + 1, exc)
            raise UpstreamUnavailable(f"API FIPE indisponível: {exc}") from exc

    def list_brands(self, vehicle_type: str) -> List[BrandRef]:
        vt = require_vehicle_type(vehicle_type)
        brands = map_brands(self._get_json(f"/{vt}/marcas"))
        logger.info("fetched %d brands for %s", len(brands), vt)
        return brands

    def list_models(self, vehicle_type: str, brand_code: str) -> List[ModelRef]:
        vt = require_vehicle_type(vehicle_type)
        models = map_models(self._get_json(f"/{vt}/marcas/{brand_code}/modelos"))
        logger.debug("fetched %d models for brand %s (%s)", len(models), brand_code, vt)
        return models

    def ping(self) -> bool:
        """Single unretried request, for health checks."""
        try:
            self._get_once("/carros/marcas")
            return True
        except (RetryableError, UpstreamUnavailable) as exc:
            logger.warning("FIPE API unavailable: %s", exc)
            return False


__all__ = ["FipeClient", "RetryableError"]
