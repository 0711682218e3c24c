"""create manual chunks and figures

Revision ID: 3b8e1c0d9a47
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
from pgvector.sqlalchemy import Vector
import sqlalchemy as sa

from manualqa.db.models import EMBEDDING_DIM


# revision identifiers, used by Alembic.
revision: str = "3b8e1c0d9a47"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "chunks_text",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("manual_id", sa.String(length=128), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=True),
        sa.Column("doc_version", sa.String(length=64), nullable=False),
        sa.Column("page_start", sa.Integer(), nullable=False),
        sa.Column("page_end", sa.Integer(), nullable=False),
        sa.Column("section_path", sa.JSON(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", Vector(EMBEDDING_DIM), nullable=True),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chunks_text_manual_id", "chunks_text", ["manual_id"], unique=False)
    op.create_index("ix_chunks_text_tenant_id", "chunks_text", ["tenant_id"], unique=False)
    op.create_index("idx_chunks_text_manual_pages", "chunks_text", ["manual_id", "page_start"], unique=False)
    op.execute(
        "CREATE INDEX idx_chunks_text_embedding ON chunks_text "
        "USING hnsw (embedding vector_cosine_ops)"
    )

    op.create_table(
        "figures",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("manual_id", sa.String(length=128), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=True),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("storage_url", sa.String(length=1024), nullable=True),
        sa.Column("kind", sa.String(length=64), nullable=True),
        sa.Column("figure_type", sa.String(length=64), nullable=True),
        sa.Column("caption_text", sa.Text(), nullable=True),
        sa.Column("ocr_text", sa.Text(), nullable=True),
        sa.Column("semantic_tags", sa.JSON(), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=True),
        sa.Column("detected_components", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_figures_manual_id", "figures", ["manual_id"], unique=False)
    op.create_index("idx_figures_manual_page", "figures", ["manual_id", "page_number"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_figures_manual_page", table_name="figures")
    op.drop_index("ix_figures_manual_id", table_name="figures")
    op.drop_table("figures")

    op.execute("DROP INDEX IF EXISTS idx_chunks_text_embedding")
    op.drop_index("idx_chunks_text_manual_pages", table_name="chunks_text")
    op.drop_index("ix_chunks_text_tenant_id", table_name="chunks_text")
    op.drop_index("ix_chunks_text_manual_id", table_name="chunks_text")
    op.drop_table("chunks_text")
