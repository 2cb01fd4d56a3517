"""Create station documents table

Creates station_documents, the v2 store: one JSONB document per station,
keyed by the stringified station number with a unique index on number.

Revision ID: create_station_documents
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "create_station_documents"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS station_documents (
            id VARCHAR(16) PRIMARY KEY,
            number INTEGER NOT NULL,
            document JSONB NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
        )
    """
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ix_station_documents_number ON station_documents (number)"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_station_documents_number")
    op.execute("DROP TABLE IF EXISTS station_documents")
