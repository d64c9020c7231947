from __future__ import annotations

import time
from typing import Optional

from pydantic import BaseModel, Field


def now_millis() -> int:
    return int(time.time() * 1000)


class BrandMessage(BaseModel):
    """Brand-processing request carried by the queue.

    Wire shape: ``{"codigoMarca", "nomeMarca", "tipoVeiculo", "timestamp"}``.
    """

    brand_code: Optional[str] = Field(default=None, alias="codigoMarca")
    brand_name: Optional[str] = Field(default=None, alias="nomeMarca")
    vehicle_type: Optional[str] = Field(default=None, alias="tipoVeiculo")
    timestamp: int = Field(default_factory=now_millis)

    class Config:
        populate_by_name = True

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "BrandMessage":
        return cls.model_validate_json(raw)
