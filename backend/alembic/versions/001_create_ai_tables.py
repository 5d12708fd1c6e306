"""Create master data and AI smart-input tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  brands and fragrances (the master data names are matched against),
       ai_cost_tracking, ai_feedback and ai_note_suggestion_feedback.
Rollback: downgrade() drops all five tables.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def upgrade() -> None:
    # ── Master data ───────────────────────────────────────────────────────
    op.create_table(
        "brands",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name_ja", sa.String(255), nullable=False, comment="Brand name in Japanese"),
        sa.Column("name_en", sa.String(255), nullable=False, comment="Brand name in English"),
        sa.Column("description_ja", sa.Text(), nullable=True),
        sa.Column("description_en", sa.Text(), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("founded_year", sa.Integer(), nullable=True),
        sa.Column("website", sa.String(255), nullable=True),
        sa.Column("logo", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_brands_name_ja", "brands", ["name_ja"])
    op.create_index("idx_brands_name_en", "brands", ["name_en"])

    op.create_table(
        "fragrances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("brand_id", sa.Integer(), nullable=False),
        sa.Column("name_ja", sa.String(255), nullable=False),
        sa.Column("name_en", sa.String(255), nullable=False),
        sa.Column("description_ja", sa.Text(), nullable=True),
        sa.Column("description_en", sa.Text(), nullable=True),
        sa.Column("concentration_type_id", sa.Integer(), nullable=True),
        sa.Column("release_year", sa.Integer(), nullable=True),
        sa.Column("image", sa.String(255), nullable=True),
        # {"top": [...], "middle": [...], "base": [...]}
        sa.Column("notes", sa.JSON(), nullable=True),
        sa.Column("is_discontinued", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["brand_id"], ["brands.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_fragrances_brand_id", "fragrances", ["brand_id"])
    op.create_index("idx_fragrances_name_en", "fragrances", ["name_en"])

    # ── AI usage and feedback ─────────────────────────────────────────────
    op.create_table(
        "ai_cost_tracking",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("operation_type", sa.String(50), nullable=False),
        sa.Column("tokens_used", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "estimated_cost",
            sa.Numeric(10, 6),
            server_default=sa.text("0"),
            nullable=False,
            comment="Estimated USD cost of the call",
        ),
        sa.Column("api_response_time_ms", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    # Limit checks filter on (user_id, created_at) for every AI request
    op.create_index("idx_ai_cost_tracking_user_created", "ai_cost_tracking", ["user_id", "created_at"])
    op.create_index("idx_ai_cost_tracking_provider", "ai_cost_tracking", ["provider"])

    op.create_table(
        "ai_feedback",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("session_id", sa.String(255), nullable=True),
        sa.Column("operation_type", sa.String(50), nullable=False),
        sa.Column("query_type", sa.String(50), nullable=True),
        sa.Column("query", sa.String(255), nullable=False),
        sa.Column("request_params", sa.JSON(), nullable=True),
        sa.Column("ai_provider", sa.String(50), nullable=False),
        sa.Column("ai_model", sa.String(50), nullable=True),
        sa.Column("ai_suggestions", sa.JSON(), nullable=True),
        sa.Column("user_action", sa.String(20), nullable=False),
        sa.Column("selected_suggestion", sa.JSON(), nullable=True),
        sa.Column("final_input", sa.String(255), nullable=True),
        sa.Column("relevance_score", sa.Float(), nullable=True),
        sa.Column("was_helpful", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("user_notes", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("context_data", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_ai_feedback_operation_action", "ai_feedback", ["operation_type", "user_action"])
    op.create_index("idx_ai_feedback_user_id", "ai_feedback", ["user_id"])

    op.create_table(
        "ai_note_suggestion_feedback",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("suggestion_id", sa.String(64), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("feedback_type", sa.String(20), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("corrected_notes", sa.JSON(), nullable=True),
        sa.Column("corrected_attributes", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_note_feedback_suggestion_id", "ai_note_suggestion_feedback", ["suggestion_id"])


def downgrade() -> None:
    op.drop_index("idx_note_feedback_suggestion_id", table_name="ai_note_suggestion_feedback")
    op.drop_table("ai_note_suggestion_feedback")
    op.drop_index("idx_ai_feedback_user_id", table_name="ai_feedback")
    op.drop_index("idx_ai_feedback_operation_action", table_name="ai_feedback")
    op.drop_table("ai_feedback")
    op.drop_index("idx_ai_cost_tracking_provider", table_name="ai_cost_tracking")
    op.drop_index("idx_ai_cost_tracking_user_created", table_name="ai_cost_tracking")
    op.drop_table("ai_cost_tracking")
    op.drop_index("idx_fragrances_name_en", table_name="fragrances")
    op.drop_index("idx_fragrances_brand_id", table_name="fragrances")
    op.drop_table("fragrances")
    op.drop_index("idx_brands_name_en", table_name="brands")
    op.drop_index("idx_brands_name_ja", table_name="brands")
    op.drop_table("brands")
