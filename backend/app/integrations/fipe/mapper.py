from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrandRef:
    code: str
    name: str


@dataclass(frozen=True)
class ModelRef:
    code: str
    name: str


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _map_refs(items: Any, kind: str) -> List[Dict[str, str]]:
    if not items:
        return []
    if not isinstance(items, list):
        logger.warning("unexpected %s payload type: %s", kind, type(items).__name__)
        return []
    out: List[Dict[str, str]] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        # FIPE returns brand codes as strings and model codes as integers
        code = _clean(item.get("codigo"))
        name = _clean(item.get("nome"))
        if not code or not name:
            logger.warning("skipping %s without code/name: %r", kind, item)
            continue
        out.append({"code": code, "name": name})
    return out


def map_brands(payload: Any) -> List[BrandRef]:
    return [BrandRef(**row) for row in _map_refs(payload, "brand")]


def map_models(payload: Any) -> List[ModelRef]:
    items = payload.get("modelos") if isinstance(payload, dict) else None
    return [ModelRef(**row) for row in _map_refs(items, "model")]


__all__ = ["BrandRef", "ModelRef", "map_brands", "map_models"]
