"""agents, reviews, supported networks and chain confirmations

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(50)),
        sa.Column("icon_url", sa.String(255)),
        sa.Column("endpoint_url", sa.String(255)),
        sa.Column("price_per_call", sa.Numeric(12, 6), nullable=False),
        sa.Column("agent_secret", sa.String(128)),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("agentcard_json", sa.Text()),
        sa.Column("feedback_signer_address", sa.String(42)),
        sa.Column("published_at", sa.DateTime(timezone=True)),
        sa.Column("reviews_enabled_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_agents_owner", "agents", ["owner_id"])
    op.create_index("idx_agents_status", "agents", ["status"])

    op.create_table(
        "agent_reviews",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("agent_id", sa.String(36), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("reviewer_address", sa.String(42), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_reviews_agent", "agent_reviews", ["agent_id"])
    op.create_index("idx_reviews_status", "agent_reviews", ["status"])

    op.create_table(
        "supported_networks",
        sa.Column("chain_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("network", sa.String(30), nullable=False),
        sa.Column("rpc_url", sa.String(255), nullable=False),
        sa.Column("identity_registry_address", sa.String(42)),
        sa.Column("reputation_registry_address", sa.String(42)),
        sa.Column("block_explorer_url", sa.String(255)),
        sa.Column("is_testnet", sa.Boolean(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "chain_confirmations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("operation", sa.String(30), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("tx_hash", sa.String(66)),
        sa.Column("chain_id", sa.Integer()),
        sa.Column("result_id", sa.String(78)),
        sa.Column("result_source", sa.String(20)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("entity_id", "operation", name="uq_confirmation_entity_operation"),
        sa.UniqueConstraint("operation", "chain_id", "tx_hash", name="uq_confirmation_tx"),
    )
    op.create_index("idx_confirmation_state", "chain_confirmations", ["state"])


def downgrade() -> None:
    op.drop_index("idx_confirmation_state", table_name="chain_confirmations")
    op.drop_table("chain_confirmations")
    op.drop_table("supported_networks")
    op.drop_index("idx_reviews_status", table_name="agent_reviews")
    op.drop_index("idx_reviews_agent", table_name="agent_reviews")
    op.drop_table("agent_reviews")
    op.drop_index("idx_agents_status", table_name="agents")
    op.drop_index("idx_agents_owner", table_name="agents")
    op.drop_table("agents")
