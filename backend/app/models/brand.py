from __future__ import annotations

from datetime import datetime
from typing import List

from sqlalchemy import String, DateTime, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Brand(Base):
    __tablename__ = "marcas"
    __table_args__ = (UniqueConstraint("codigo_fipe", name="uq_marcas_codigo_fipe"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    fipe_code: Mapped[str] = mapped_column("codigo_fipe", String(32), nullable=False)
    name: Mapped[str] = mapped_column("nome", String(255), nullable=False, index=True)
    vehicle_type: Mapped[str] = mapped_column("tipo_veiculo", String(16), nullable=False, index=True)  # carros, motos, caminhoes
    created_at: Mapped[datetime] = mapped_column(
        "data_criacao", DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        "data_atualizacao", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    models: Mapped[List["VehicleModel"]] = relationship(
        "VehicleModel", back_populates="brand", cascade="all, delete-orphan", passive_deletes=True)
