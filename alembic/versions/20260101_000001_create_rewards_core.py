"""Create rewards core tables.

Referral chains, commissions, vesting credit grants, balances,
task completions and withdrawal requests.

Revision ID: 20260101_000001
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20260101_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BUCKETS = ('immediate', 'after_1_day', 'after_7_days', 'after_30_days')


def upgrade() -> None:
    """Create rewards core tables."""

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('referral_code', sa.String(20), nullable=False),
        sa.Column('vip_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('vip_expiry', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('vip_level >= 0 AND vip_level <= 3', name='check_user_vip_level_range'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_referral_code', 'users', ['referral_code'], unique=True)
    op.create_index('ix_users_vip_level', 'users', ['vip_level'])

    # Referral chains
    op.create_table(
        'referral_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('total_commissions_earned', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('total_commissions_paid', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_referral_records_user_id', 'referral_records', ['user_id'], unique=True)
    op.create_index('ix_referral_records_referral_code', 'referral_records', ['referral_code'])

    op.create_table(
        'referral_chain_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.DECIMAL(5, 2), nullable=False, comment='Rate at capture time, informational'),
        sa.ForeignKeyConstraint(['record_id'], ['referral_records.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('record_id', 'level', name='uq_chain_record_level'),
        sa.UniqueConstraint('record_id', 'referrer_id', name='uq_chain_record_referrer'),
        sa.CheckConstraint('level >= 1 AND level <= 3', name='check_chain_level_range'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_referral_chain_entries_record_id', 'referral_chain_entries', ['record_id'])
    op.create_index('ix_referral_chain_entries_referrer_id', 'referral_chain_entries', ['referrer_id'])

    op.create_table(
        'commission_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('from_user_id', sa.Integer(), nullable=False),
        sa.Column('to_user_id', sa.Integer(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.DECIMAL(5, 2), nullable=False),
        sa.Column('original_amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('commission_amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('transaction_type', sa.String(30), nullable=False),
        sa.Column('external_transaction_id', sa.String(128), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fraud_score', sa.Integer(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True, comment='Event metadata (vip level, payment method...)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['from_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['to_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('from_user_id', 'external_transaction_id', 'level', name='uq_commission_payer_txn_level'),
        sa.CheckConstraint('level >= 1 AND level <= 3', name='check_commission_level_range'),
        sa.CheckConstraint('commission_amount >= 0', name='check_commission_amount_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_commission_to_user_created', 'commission_transactions', ['to_user_id', 'created_at'])
    op.create_index('idx_commission_from_user_created', 'commission_transactions', ['from_user_id', 'created_at'])
    op.create_index('ix_commission_transactions_transaction_type', 'commission_transactions', ['transaction_type'])
    op.create_index('ix_commission_transactions_external_transaction_id', 'commission_transactions', ['external_transaction_id'])
    op.create_index('ix_commission_transactions_status', 'commission_transactions', ['status'])

    # Credit grants and vesting
    bucket_columns = []
    bucket_checks = []
    for bucket in BUCKETS:
        bucket_columns.append(sa.Column(f'schedule_{bucket}', sa.DECIMAL(18, 2), nullable=False, server_default='0'))
        bucket_columns.append(sa.Column(f'progress_{bucket}', sa.DECIMAL(18, 2), nullable=False, server_default='0'))
        bucket_checks.append(sa.CheckConstraint(f'schedule_{bucket} >= 0', name=f'check_grant_schedule_{bucket}_non_negative'))
        bucket_checks.append(sa.CheckConstraint(
            f'progress_{bucket} = 0 OR progress_{bucket} = schedule_{bucket}',
            name=f'check_grant_progress_{bucket}_all_or_nothing',
        ))

    op.create_table(
        'credit_grants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('grant_type', sa.String(30), nullable=False),
        sa.Column('source', sa.String(30), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='vesting'),
        *bucket_columns,
        sa.Column('is_vested', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('vested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fraud_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fraud_flags', sa.JSON(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount > 0', name='check_grant_amount_positive'),
        *bucket_checks,
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_credit_grants_user_id', 'credit_grants', ['user_id'])
    op.create_index('ix_credit_grants_source', 'credit_grants', ['source'])
    op.create_index('ix_credit_grants_status', 'credit_grants', ['status'])
    op.create_index('idx_credit_grants_user_created', 'credit_grants', ['user_id', 'created_at'])
    op.create_index('idx_credit_grants_status_vested', 'credit_grants', ['status', 'is_vested'])

    op.create_table(
        'credit_vesting_releases',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('grant_id', sa.Integer(), nullable=False),
        sa.Column('bucket', sa.String(20), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['grant_id'], ['credit_grants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('grant_id', 'bucket', name='uq_release_grant_bucket'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_credit_vesting_releases_grant_id', 'credit_vesting_releases', ['grant_id'])

    # Balances
    op.create_table(
        'balance_accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('total_credits', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('available_credits', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('withdrawable_credits', sa.DECIMAL(18, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.CheckConstraint('withdrawable_credits >= 0', name='check_balance_withdrawable_non_negative'),
        sa.CheckConstraint('withdrawable_credits <= available_credits', name='check_balance_withdrawable_le_available'),
        sa.CheckConstraint('available_credits <= total_credits', name='check_balance_available_le_total'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_balance_accounts_user_id', 'balance_accounts', ['user_id'], unique=True)

    op.create_table(
        'balance_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(30), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False, comment='Signed: credits positive, debits negative'),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('reference_type', sa.String(30), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_balance_tx_user_created', 'balance_transactions', ['user_id', 'created_at'])
    op.create_index('idx_balance_tx_reference', 'balance_transactions', ['reference_type', 'reference_id'])

    # Task completions (fraud signal source)
    op.create_table(
        'task_completions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('task_type', sa.String(30), nullable=False),
        sa.Column('external_transaction_id', sa.String(128), nullable=True),
        sa.Column('device_fingerprint', sa.String(128), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('estimated_seconds', sa.Integer(), nullable=False),
        sa.Column('reward_amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('fraud_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fraud_flags', sa.JSON(), nullable=True),
        sa.Column('grant_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['grant_id'], ['credit_grants.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_task_completions_external_transaction_id', 'task_completions', ['external_transaction_id'])
    op.create_index('ix_task_completions_status', 'task_completions', ['status'])
    op.create_index('idx_task_completions_user_completed', 'task_completions', ['user_id', 'completed_at'])
    op.create_index('idx_task_completions_device_completed', 'task_completions', ['device_fingerprint', 'completed_at'])
    op.create_index('idx_task_completions_ip_completed', 'task_completions', ['ip_address', 'completed_at'])

    op.create_table(
        'withdrawal_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.DECIMAL(18, 2), nullable=False),
        sa.Column('method', sa.String(30), nullable=False),
        sa.Column('payment_details', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('fraud_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fraud_flags', sa.JSON(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount > 0', name='check_withdrawal_amount_positive'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_withdrawal_requests_status', 'withdrawal_requests', ['status'])
    op.create_index('idx_withdrawals_user_created', 'withdrawal_requests', ['user_id', 'created_at'])


def downgrade() -> None:
    """Drop rewards core tables."""

    # Drop in reverse dependency order; indexes go with their tables
    op.drop_table('withdrawal_requests')
    op.drop_table('task_completions')
    op.drop_table('balance_transactions')
    op.drop_table('balance_accounts')
    op.drop_table('credit_vesting_releases')
    op.drop_table('credit_grants')
    op.drop_table('commission_transactions')
    op.drop_table('referral_chain_entries')
    op.drop_table('referral_records')
    op.drop_table('users')
