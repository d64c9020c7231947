from __future__ import annotations

from typing import Optional

from ..errors import ValidationError

VEHICLE_TYPES = ("carros", "motos", "caminhoes")


def normalize_vehicle_type(value: Optional[str]) -> Optional[str]:
    """Lowercased vehicle type, or None when it is not one of the FIPE partitions."""
    if value is None:
        return None
    t = value.strip().lower()
    return t if t in VEHICLE_TYPES else None


def require_vehicle_type(value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValidationError("Tipo de veículo é obrigatório")
    t = normalize_vehicle_type(value)
    if t is None:
        raise ValidationError(f"Tipo de veículo inválido: {value}")
    return t


def require_text(value: Optional[str], message: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(message)
    return str(value).strip()


__all__ = ["VEHICLE_TYPES", "normalize_vehicle_type", "require_vehicle_type", "require_text"]
