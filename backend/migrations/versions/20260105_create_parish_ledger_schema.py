"""Create members, bank, finance and ingestion tables.

Revision ID: create_parish_ledger_schema
Revises:
Create Date: 2026-01-05
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'create_parish_ledger_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Members (household subset)
    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone_number', sa.String(30), nullable=True),
        sa.Column('family_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('is_head_of_household', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('yearly_pledge', sa.Numeric(12, 2), nullable=True),
        sa.Column('date_joined_parish', sa.Date(), nullable=True),
        sa.Column('role', sa.String(30), nullable=False, server_default='member'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('idx_member_family', 'members', ['family_id'])
    op.create_index('idx_member_name', 'members', ['last_name', 'first_name'])
    # At most one flagged head per household, whether the head stores family_id or leaves it null
    op.create_index(
        'uq_member_household_head', 'members', [sa.text('coalesce(family_id, id)')],
        unique=True, postgresql_where=sa.text('is_head_of_household'),
    )

    op.create_table(
        'zelle_memo_matches',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('memo', sa.String(255), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('memo', name='uq_zelle_memo_matches_memo'),
    )
    op.create_index('idx_zelle_memo_member', 'zelle_memo_matches', ['member_id'])

    # Upload log
    op.create_table(
        'ingestion_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_hash', sa.String(64), nullable=True),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('uploaded_by', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('records_in_file', sa.Integer(), nullable=True),
        sa.Column('records_created', sa.Integer(), nullable=True),
        sa.Column('records_updated', sa.Integer(), nullable=True),
        sa.Column('records_skipped', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('warnings', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    # Bank statement lines
    op.create_table(
        'bank_transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('transaction_hash', sa.String(64), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('payer_name', sa.String(200), nullable=True),
        sa.Column('external_ref_id', sa.String(100), nullable=True),
        sa.Column('check_number', sa.String(30), nullable=True),
        sa.Column('balance', sa.Numeric(12, 2), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('ingestion_id', sa.Integer(), sa.ForeignKey('ingestion_log.id'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('transaction_hash', name='uq_bank_transactions_hash'),
    )
    op.create_index('idx_bank_transaction_date', 'bank_transactions', ['date'])
    op.create_index('idx_bank_transaction_status', 'bank_transactions', ['status'])

    # GL reference data
    op.create_table(
        'income_categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('gl_code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('payment_type_mapping', sa.String(40), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('display_order', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('gl_code', name='uq_income_categories_gl_code'),
    )
    op.create_table(
        'expense_categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('gl_code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('gl_code', name='uq_expense_categories_gl_code'),
    )

    # Payments
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('collected_by', sa.Integer(), sa.ForeignKey('members.id'), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_type', sa.String(40), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='succeeded'),
        sa.Column('receipt_number', sa.String(50), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('external_id', sa.String(100), nullable=True),
        sa.Column('donation_id', sa.Integer(), nullable=True),
        sa.Column('for_year', sa.Integer(), nullable=True),
        sa.Column('income_category_id', sa.Integer(), sa.ForeignKey('income_categories.id'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('external_id', name='uq_transactions_external_id'),
        sa.CheckConstraint('amount > 0', name='ck_transactions_amount_positive'),
    )
    op.create_index('idx_transaction_member', 'transactions', ['member_id'])
    op.create_index('idx_transaction_payment_date', 'transactions', ['payment_date'])
    op.create_index('idx_transaction_type', 'transactions', ['payment_type'])

    # General ledger
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('type', sa.String(40), nullable=False),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('member_id', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('collected_by', sa.Integer(), sa.ForeignKey('members.id'), nullable=True),
        sa.Column('payment_method', sa.String(20), nullable=True),
        sa.Column('memo', sa.Text(), nullable=True),
        sa.Column('receipt_number', sa.String(50), nullable=True),
        sa.Column('external_id', sa.String(100), nullable=True),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('transactions.id'), nullable=True),
        sa.Column('source_system', sa.String(20), nullable=False, server_default='manual'),
        *_timestamps(),
        sa.UniqueConstraint('transaction_id', name='uq_ledger_entries_transaction_id'),
    )
    op.create_index('idx_ledger_entry_date', 'ledger_entries', ['entry_date'])
    op.create_index('idx_ledger_entry_category', 'ledger_entries', ['category'])

    op.create_table(
        'ledger_outbox',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('transactions.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('transaction_id', name='uq_ledger_outbox_transaction_id'),
    )


def downgrade() -> None:
    op.drop_table('ledger_outbox')
    op.drop_index('idx_ledger_entry_category', table_name='ledger_entries')
    op.drop_index('idx_ledger_entry_date', table_name='ledger_entries')
    op.drop_table('ledger_entries')
    op.drop_index('idx_transaction_type', table_name='transactions')
    op.drop_index('idx_transaction_payment_date', table_name='transactions')
    op.drop_index('idx_transaction_member', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('expense_categories')
    op.drop_table('income_categories')
    op.drop_index('idx_bank_transaction_status', table_name='bank_transactions')
    op.drop_index('idx_bank_transaction_date', table_name='bank_transactions')
    op.drop_table('bank_transactions')
    op.drop_table('ingestion_log')
    op.drop_index('idx_zelle_memo_member', table_name='zelle_memo_matches')
    op.drop_table('zelle_memo_matches')
    op.drop_index('uq_member_household_head', table_name='members')
    op.drop_index('idx_member_name', table_name='members')
    op.drop_index('idx_member_family', table_name='members')
    op.drop_table('members')
