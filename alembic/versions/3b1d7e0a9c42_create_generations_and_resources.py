"""create_generations_and_resources

Revision ID: 3b1d7e0a9c42
Revises:
Create Date: 2026-10-12 09:14:37.218410

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1d7e0a9c42"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create generations and resources tables."""
    op.create_table(
        "generations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("EDIT", "GENERATE", "VIDEO", name="generationkind"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("PENDING", "PROCESSING", "SUCCESS", "ERROR", name="generationstatus"),
            nullable=False,
        ),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("resolution", sqlmodel.sql.sqltypes.AutoString(length=16), nullable=False),
        sa.Column("aspect_ratio", sqlmodel.sql.sqltypes.AutoString(length=8), nullable=False),
        sa.Column("model_tier", sa.Enum("BASIC", "PRO", name="modeltier"), nullable=False),
        sa.Column("variation_count", sa.Integer(), nullable=False),
        sa.Column("result_urls", sa.JSON(), nullable=False),
        sa.Column("error_message", sqlmodel.sql.sqltypes.AutoString(length=2000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generations_owner_id", "generations", ["owner_id"])
    op.create_index("ix_generations_status", "generations", ["status"])
    op.create_index("ix_generations_created_at", "generations", ["created_at"])
    # Gallery listing: owner's success rows newest first
    op.create_index(
        "ix_generations_owner_status_created",
        "generations",
        ["owner_id", "status", sa.text("created_at DESC")],
    )

    op.create_table(
        "resources",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column("generation_id", sa.Uuid(), nullable=True),
        sa.Column("storage_path", sqlmodel.sql.sqltypes.AutoString(length=1024), nullable=False),
        sa.Column("mime_type", sqlmodel.sql.sqltypes.AutoString(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_resources_owner_id", "resources", ["owner_id"])
    op.create_index("ix_resources_generation_id", "resources", ["generation_id"])


def downgrade() -> None:
    """Drop generations and resources tables."""
    op.drop_index("ix_resources_generation_id", table_name="resources")
    op.drop_index("ix_resources_owner_id", table_name="resources")
    op.drop_table("resources")

    op.drop_index("ix_generations_owner_status_created", table_name="generations")
    op.drop_index("ix_generations_created_at", table_name="generations")
    op.drop_index("ix_generations_status", table_name="generations")
    op.drop_index("ix_generations_owner_id", table_name="generations")
    op.drop_table("generations")

    sa.Enum(name="modeltier").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="generationstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="generationkind").drop(op.get_bind(), checkfirst=True)
