"""initial schema: accounts, billing profiles and products

Revision ID: 3f1a9c0d7b21
Revises: 
Create Date: 2026-10-19 09:12:44.118204

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1a9c0d7b21'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_user_role = sa.Enum("OWNER", "ADMIN", "MEMBER", name="userrole")
_plan_id = sa.Enum("FREE", "PRO", "BUSINESS", name="planid")
_subscription_status = sa.Enum("NONE", "ACTIVE", "PAST_DUE", "CANCELED", name="subscriptionstatus")
_billing_cycle = sa.Enum("MONTHLY", "YEARLY", name="billingcycle")
_product_status = sa.Enum("ACTIVE", "ARCHIVED", name="productstatus")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("role", _user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "api_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("token_hash", sa.String(), nullable=False),
        sa.Column("token_prefix", sa.String(12), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("last_used_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_api_tokens_tenant_id", "api_tokens", ["tenant_id"])
    op.create_index("ix_api_tokens_user_id", "api_tokens", ["user_id"])
    op.create_index("ix_api_tokens_token_hash", "api_tokens", ["token_hash"], unique=True)

    op.create_table(
        "billing_profiles",
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), primary_key=True),
        sa.Column("external_customer_id", sa.String(255), nullable=True),
        sa.Column("external_subscription_id", sa.String(255), nullable=True),
        sa.Column("plan_id", _plan_id, nullable=False),
        sa.Column("subscription_status", _subscription_status, nullable=False),
        sa.Column("billing_cycle", _billing_cycle, nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_billing_profiles_external_customer_id",
        "billing_profiles", ["external_customer_id"], unique=True,
    )
    op.create_index(
        "ix_billing_profiles_external_subscription_id",
        "billing_profiles", ["external_subscription_id"],
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", _product_status, nullable=False),
        sa.Column("archived_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_products_tenant_id", "products", ["tenant_id"])
    op.create_index(
        "ix_products_tenant_status_created", "products", ["tenant_id", "status", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("products")
    op.drop_table("billing_profiles")
    op.drop_table("api_tokens")
    op.drop_table("users")
    op.drop_table("tenants")
    bind = op.get_bind()
    for enum in (_product_status, _billing_cycle, _subscription_status, _plan_id, _user_role):
        enum.drop(bind, checkfirst=True)
