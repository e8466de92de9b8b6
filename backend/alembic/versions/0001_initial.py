"""Initial schema: catalog, profiles, assignments, billing, reminders.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Catalog ──────────────────────────────────────────────

    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("status", sa.String(30), server_default="active"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "services",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("billing_type", sa.String(30), nullable=False),
        sa.Column("category_id", sa.String(36), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("category_name", sa.String(255)),
        sa.Column("has_discount", sa.Boolean(), server_default="false"),
        sa.Column("discount_type", sa.String(30)),
        sa.Column("discount_value", sa.Numeric(12, 2)),
        sa.Column("discount_reason", sa.String(255)),
        sa.Column("discount_start_date", sa.DateTime()),
        sa.Column("discount_end_date", sa.DateTime()),
        sa.Column("tags", sa.JSON()),
        sa.Column("features", sa.JSON()),
        sa.Column("is_featured", sa.Boolean(), server_default="false"),
        sa.Column("duration_in_days", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("image", sa.String(1024)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_services_category_id", "services", ["category_id"])

    # ── Clients ──────────────────────────────────────────────

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("phone", sa.String(50)),
        sa.Column("invite_type", sa.String(30), server_default="non invite"),
        sa.Column("invite_email", sa.String(255)),
        sa.Column("invite_by", sa.String(255)),
        sa.Column("invite_status", sa.String(30)),
        sa.Column("invite_expiry", sa.DateTime()),
        sa.Column("email_verified", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    # ── Assignments & renewal lines ──────────────────────────

    op.create_table(
        "assigned_services",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("service_catalog_id", sa.String(36), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("invoice_id", sa.String(50), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("cycle", sa.String(30), nullable=False),
        sa.Column("isaccepted", sa.String(30), server_default="pending"),
        sa.Column("status", sa.String(30), server_default="active"),
        sa.Column("note", sa.Text()),
        sa.Column("auto_invoice", sa.Boolean(), server_default="false"),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("assign_by", sa.String(255)),
        sa.Column("client_name", sa.String(255)),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("service_name", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_assigned_services_client_id", "assigned_services", ["client_id"])
    op.create_index("ix_assigned_services_service_catalog_id", "assigned_services", ["service_catalog_id"])
    op.create_index("ix_assigned_services_invoice_id", "assigned_services", ["invoice_id"])
    op.create_index("ix_assigned_services_email", "assigned_services", ["email"])
    op.create_index("ix_assigned_services_created_at", "assigned_services", ["created_at"])

    op.create_table(
        "renewal_line_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "assignment_id", sa.String(36),
            sa.ForeignKey("assigned_services.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("haspaid", sa.Boolean(), server_default="false"),
    )
    op.create_index("ix_renewal_line_items_assignment_id", "renewal_line_items", ["assignment_id"])

    # ── Billing ──────────────────────────────────────────────

    op.create_table(
        "billing_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_email", sa.String(255), nullable=False),
        sa.Column("user_id", sa.String(255)),
        sa.Column("assign_service_id", sa.String(36), nullable=False),
        sa.Column("renewal_id", sa.String(36), nullable=False),
        sa.Column("invoice_id", sa.String(50)),
        sa.Column("service_name", sa.String(255)),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payment_status", sa.String(30), server_default="pending"),
        sa.Column("payment_method", sa.String(30), server_default="card"),
        sa.Column("stripe_payment_intent_id", sa.String(255)),
        sa.Column("stripe_payment_method_id", sa.String(255)),
        sa.Column("payment_date", sa.DateTime()),
        sa.Column("failure_reason", sa.Text()),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_billing_history_user_email", "billing_history", ["user_email"])
    op.create_index("ix_billing_history_assign_service_id", "billing_history", ["assign_service_id"])
    op.create_index("ix_billing_history_payment_status", "billing_history", ["payment_status"])
    op.create_index("ix_billing_history_created_at", "billing_history", ["created_at"])
    # At most one in-flight or settled payment per renewal line
    op.create_index(
        "uq_billing_history_active_renewal",
        "billing_history",
        ["renewal_id"],
        unique=True,
        postgresql_where=sa.text("payment_status IN ('pending', 'completed')"),
    )

    # ── Reminder ledger ──────────────────────────────────────

    op.create_table(
        "renewal_reminders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("renewal_id", sa.String(36), nullable=False),
        sa.Column("assignment_id", sa.String(36), nullable=False),
        sa.Column("offset_days", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("sent_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "renewal_id", "offset_days", "due_date",
            name="uq_renewal_reminders_offset",
        ),
    )
    op.create_index("ix_renewal_reminders_renewal_id", "renewal_reminders", ["renewal_id"])


def downgrade() -> None:
    op.drop_table("renewal_reminders")
    op.drop_index("uq_billing_history_active_renewal", table_name="billing_history")
    op.drop_table("billing_history")
    op.drop_table("renewal_line_items")
    op.drop_table("assigned_services")
    op.drop_table("profiles")
    op.drop_table("services")
    op.drop_table("categories")
