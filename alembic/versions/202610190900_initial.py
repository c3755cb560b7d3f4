"""initial schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=120)),
        sa.Column("password_hash", sa.String(length=100), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "partners",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user1_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("user2_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "active", "blocked", name="partnerstatus"),
            nullable=False,
        ),
        sa.Column(
            "initiated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False
        ),
        *_timestamps(),
        sa.CheckConstraint("user1_id <> user2_id", name="ck_partner_distinct_users"),
    )
    op.create_index("ix_partners_user1_status", "partners", ["user1_id", "status"])
    op.create_index("ix_partners_user2_status", "partners", ["user2_id", "status"])

    op.create_table(
        "partner_invitations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "from_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("to_email", sa.String(length=255), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False, unique=True),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "accepted", "rejected", "expired", name="invitationstatus"
            ),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_invitations_status_expires",
        "partner_invitations",
        ["status", "expires_at"],
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=16), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "subcategories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=16), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "payment_sources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("credit_card", "savings_account", name="paymentsourcetype"),
            nullable=False,
        ),
        sa.Column("icon", sa.String(length=16)),
        *_timestamps(),
        sa.UniqueConstraint("type", "name", name="uq_payment_source_type_name"),
    )

    op.create_table(
        "credit_cards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("card_name", sa.String(length=100), nullable=False),
        sa.Column("card_number_last4", sa.String(length=4)),
        sa.Column("credit_limit_cents", sa.Integer()),
        sa.Column(
            "opening_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "current_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("due_date", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint(
            "current_balance_cents >= 0", name="ck_credit_card_balance_positive"
        ),
    )

    op.create_table(
        "credit_card_repayments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "credit_card_id",
            sa.Integer(),
            sa.ForeignKey("credit_cards.id"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_repayment_amount_positive"),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("partner_id", sa.Integer(), sa.ForeignKey("partners.id")),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("subcategory_id", sa.Integer(), sa.ForeignKey("subcategories.id")),
        sa.Column(
            "payment_source_id", sa.Integer(), sa.ForeignKey("payment_sources.id")
        ),
        sa.Column("credit_card_id", sa.Integer(), sa.ForeignKey("credit_cards.id")),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("time", sa.String(length=8)),
        sa.Column("notes", sa.Text()),
        sa.Column("custom_icon", sa.String(length=16)),
        sa.Column("paid_by_user_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("amount_paid_by_user_cents", sa.Integer()),
        sa.Column("amount_paid_by_partner_cents", sa.Integer()),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "date"])
    op.create_index(
        "ix_expenses_user_category_date",
        "expenses",
        ["user_id", "category_id", "date"],
    )
    op.create_index("ix_expenses_credit_card", "expenses", ["credit_card_id"])

    op.create_table(
        "investment_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("icon", sa.String(length=16), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "investment_type_id",
            sa.Integer(),
            sa.ForeignKey("investment_types.id"),
            nullable=False,
        ),
        sa.Column("maturity_date", sa.Date()),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "transaction_type",
            sa.Enum("deposit", "withdrawal", name="investmenttransactiontype"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text()),
        sa.Column("interest_rate", sa.Numeric(6, 3)),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_investments_amount_positive"),
    )
    op.create_index("ix_investments_user_date", "investments", ["user_id", "date"])


def downgrade():
    op.drop_index("ix_investments_user_date", table_name="investments")
    op.drop_table("investments")
    op.drop_table("investment_types")
    op.drop_index("ix_expenses_credit_card", table_name="expenses")
    op.drop_index("ix_expenses_user_category_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("credit_card_repayments")
    op.drop_table("credit_cards")
    op.drop_table("payment_sources")
    op.drop_table("subcategories")
    op.drop_table("categories")
    op.drop_index("ix_invitations_status_expires", table_name="partner_invitations")
    op.drop_table("partner_invitations")
    op.drop_index("ix_partners_user2_status", table_name="partners")
    op.drop_index("ix_partners_user1_status", table_name="partners")
    op.drop_table("partners")
    op.drop_table("users")
