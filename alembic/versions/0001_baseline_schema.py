"""baseline schema: users and transactions

Revision ID: 0001_baseline_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_baseline_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id serial PRIMARY KEY,
            email varchar(255) NOT NULL,
            username varchar(100) NOT NULL,
            msisdn varchar(32),
            balance numeric(12, 2) NOT NULL DEFAULT 0,
            is_active boolean NOT NULL DEFAULT true,
            created_at timestamp with time zone NOT NULL DEFAULT now(),
            updated_at timestamp with time zone NOT NULL DEFAULT now(),
            CONSTRAINT users_email_key UNIQUE (email),
            CONSTRAINT users_balance_non_negative CHECK (balance >= 0)
        );
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id serial PRIMARY KEY,
            transaction_id varchar(64) NOT NULL,
            type varchar(16) NOT NULL,
            status varchar(16) NOT NULL DEFAULT 'PENDING',
            amount numeric(12, 2) NOT NULL,
            currency varchar(3) NOT NULL DEFAULT 'KES',
            reference varchar(64) NOT NULL,
            msisdn varchar(32),
            airtel_money_id varchar(128),
            airtel_reference_id varchar(128),
            description varchar(255),
            user_id integer NOT NULL REFERENCES users (id),
            created_at timestamp with time zone NOT NULL DEFAULT now(),
            updated_at timestamp with time zone NOT NULL DEFAULT now(),
            CONSTRAINT transactions_transaction_id_key UNIQUE (transaction_id),
            CONSTRAINT transactions_amount_positive CHECK (amount > 0),
            CONSTRAINT transactions_type_check
                CHECK (type IN ('DEPOSIT', 'WITHDRAWAL', 'BET', 'WINNING')),
            CONSTRAINT transactions_status_check
                CHECK (status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED'))
        );
        """
    )
    # callback correlation lookups
    op.execute("CREATE INDEX IF NOT EXISTS ix_transactions_airtel_money_id ON transactions (airtel_money_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_transactions_airtel_reference_id ON transactions (airtel_reference_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_transactions_reference ON transactions (reference);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_transactions_user_id_created_at ON transactions (user_id, created_at DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS transactions;")
    op.execute("DROP TABLE IF EXISTS users;")
