from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .brand import Base


class VehicleModel(Base):
    __tablename__ = "modelos"
    __table_args__ = (UniqueConstraint("codigo_fipe", name="uq_modelos_codigo_fipe"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    fipe_code: Mapped[str] = mapped_column("codigo_fipe", String(32), nullable=False)
    name: Mapped[str] = mapped_column("nome", String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column("observacoes", Text, nullable=True)
    brand_id: Mapped[int] = mapped_column(
        "marca_id", ForeignKey("marcas.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        "data_criacao", DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        "data_atualizacao", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    brand = relationship("Brand", back_populates="models")
