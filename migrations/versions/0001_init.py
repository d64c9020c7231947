"""brands and models catalog"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_init"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "marcas",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("codigo_fipe", sa.String(length=32), nullable=False),
        sa.Column("nome", sa.String(length=255), nullable=False),
        sa.Column("tipo_veiculo", sa.String(length=16), nullable=False),
        sa.Column("data_criacao", sa.DateTime(), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("data_atualizacao", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("codigo_fipe", name="uq_marcas_codigo_fipe"),
    )
    op.create_index("ix_marcas_id", "marcas", ["id"])
    op.create_index("ix_marcas_nome", "marcas", ["nome"])
    op.create_index("ix_marcas_tipo_veiculo", "marcas", ["tipo_veiculo"])

    op.create_table(
        "modelos",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("codigo_fipe", sa.String(length=32), nullable=False),
        sa.Column("nome", sa.String(length=255), nullable=False),
        sa.Column("observacoes", sa.Text(), nullable=True),
        sa.Column("marca_id", sa.Integer(),
                  sa.ForeignKey("marcas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("data_criacao", sa.DateTime(), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("data_atualizacao", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("codigo_fipe", name="uq_modelos_codigo_fipe"),
    )
    op.create_index("ix_modelos_id", "modelos", ["id"])
    op.create_index("ix_modelos_marca_id", "modelos", ["marca_id"])


def downgrade() -> None:
    op.drop_index("ix_modelos_marca_id", table_name="modelos")
    op.drop_index("ix_modelos_id", table_name="modelos")
    op.drop_table("modelos")
    op.drop_index("ix_marcas_tipo_veiculo", table_name="marcas")
    op.drop_index("ix_marcas_nome", table_name="marcas")
    op.drop_index("ix_marcas_id", table_name="marcas")
    op.drop_table("marcas")
