"""initial budget schema

Revision ID: 202410180900
Revises:
Create Date: 2024-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410180900"
down_revision = None
branch_labels = None
depends_on = None


FREQUENCY = sa.Enum("weekly", "biweekly", "monthly", "once", name="frequency")
EXPENSE_CATEGORY = sa.Enum(
    "fixed", "variable", "subscription", name="expensecategory"
)


def _entry_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("frequency", FREQUENCY),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "income_entries",
        *_entry_columns(),
        sa.Column("source", sa.String(length=120), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_income_amount_positive"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_income_month_range"),
    )
    op.create_index(
        "ix_income_owner_period", "income_entries", ["owner_id", "year", "month"]
    )

    op.create_table(
        "expense_entries",
        *_entry_columns(),
        sa.Column("category", EXPENSE_CATEGORY, nullable=False),
        sa.Column(
            "subcategory", sa.String(length=120), nullable=False, server_default=""
        ),
        sa.Column("due_date", sa.Date()),
        sa.Column("due_day_of_month", sa.Integer()),
        sa.Column("actual_amount_cents", sa.Integer()),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expense_amount_positive"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_expense_month_range"),
        sa.CheckConstraint(
            "due_day_of_month IS NULL OR due_day_of_month BETWEEN 1 AND 31",
            name="ck_expense_due_day_range",
        ),
    )
    op.create_index(
        "ix_expense_owner_period", "expense_entries", ["owner_id", "year", "month"]
    )
    op.create_index(
        "ix_expense_owner_category_period",
        "expense_entries",
        ["owner_id", "category", "year", "month"],
    )
    op.create_index(
        "ix_expense_owner_series",
        "expense_entries",
        ["owner_id", "category", "subcategory", "recurring"],
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expense_entries.id", ondelete="SET NULL"),
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=40), nullable=False),
        sa.Column("subcategory", sa.String(length=120)),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index(
        "ix_transactions_owner_period_date",
        "transactions",
        ["owner_id", "year", "month", "date"],
    )

    op.create_table(
        "monthly_summaries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("total_income", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "total_fixed_expenses", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "total_variable_expenses", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "total_subscriptions", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "paid_fixed_expenses", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "paid_variable_expenses", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "paid_subscriptions", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_summary_owner_period", "monthly_summaries", ["owner_id", "year", "month"]
    )


def downgrade():
    op.drop_index("ix_summary_owner_period", table_name="monthly_summaries")
    op.drop_table("monthly_summaries")
    op.drop_index("ix_transactions_owner_period_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_expense_owner_series", table_name="expense_entries")
    op.drop_index("ix_expense_owner_category_period", table_name="expense_entries")
    op.drop_index("ix_expense_owner_period", table_name="expense_entries")
    op.drop_table("expense_entries")
    op.drop_index("ix_income_owner_period", table_name="income_entries")
    op.drop_table("income_entries")
