from .client import FipeClient, RetryableError
from .mapper import BrandRef, ModelRef, map_brands, map_models

__all__ = ["FipeClient", "RetryableError", "BrandRef", "ModelRef", "map_brands", "map_models"]
