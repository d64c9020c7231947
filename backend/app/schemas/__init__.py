from .fipe import (
    ApiResponse,
    BrandCreateIn,
    BrandOut,
    BrandsPage,
    ErrorOut,
    ModelOut,
    ModelsPage,
    ModelUpdateIn,
    total_pages,
)
from .messages import BrandMessage

__all__ = [
    "ApiResponse",
    "BrandCreateIn",
    "BrandOut",
    "BrandsPage",
    "ErrorOut",
    "ModelOut",
    "ModelsPage",
    "ModelUpdateIn",
    "BrandMessage",
    "total_pages",
]
