from .brand import Base, Brand
from .vehicle_model import VehicleModel

__all__ = [
    "Base",
    "Brand",
    "VehicleModel",
]
