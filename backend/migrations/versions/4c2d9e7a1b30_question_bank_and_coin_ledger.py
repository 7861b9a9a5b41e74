"""question bank and coin ledger tables

Revision ID: 4c2d9e7a1b30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2d9e7a1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    tables = set(insp.get_table_names())

    if 'categories' not in tables:
        op.create_table(
            'categories',
            sa.Column('id', sa.String(length=64), nullable=False),
            sa.Column('labels', sa.JSON(), nullable=False),
            sa.Column('color', sa.String(length=16), nullable=True),
            sa.Column('icon_name', sa.String(length=64), nullable=True),
            sa.Column('icon_type', sa.String(length=32), nullable=True),
            sa.Column('coins_required', sa.Integer(), nullable=False),
            sa.Column('is_premium', sa.Boolean(), nullable=False),
            sa.Column('order_index', sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )

    if 'questions' not in tables:
        op.create_table(
            'questions',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('category_id', sa.String(length=64), nullable=False),
            sa.Column('texts', sa.JSON(), nullable=False),
            sa.Column('have_answers', sa.Boolean(), nullable=False),
            sa.Column('answers', sa.JSON(), nullable=False),
            sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_questions_category_id', 'questions', ['category_id'])

    if 'coins' not in tables:
        op.create_table(
            'coins',
            sa.Column('app_user_id', sa.String(length=128), nullable=False),
            sa.Column('balance', sa.Integer(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False),
            sa.Column('updated_at', sa.BigInteger(), nullable=False),
            sa.CheckConstraint('balance >= 0', name='ck_coins_balance_non_negative'),
            sa.PrimaryKeyConstraint('app_user_id'),
        )

    if 'coin_transactions' not in tables:
        op.create_table(
            'coin_transactions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('app_user_id', sa.String(length=128), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False),
            sa.Column('transaction_type', sa.String(length=32), nullable=False),
            sa.Column('balance_after', sa.Integer(), nullable=False),
            sa.Column('external_id', sa.String(length=128), nullable=True),
            sa.Column('created_at', sa.BigInteger(), nullable=False),
            sa.ForeignKeyConstraint(['app_user_id'], ['coins.app_user_id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('external_id'),
        )
        op.create_index('ix_coin_transactions_app_user_id', 'coin_transactions', ['app_user_id'])


def downgrade():
    op.drop_index('ix_coin_transactions_app_user_id', table_name='coin_transactions')
    op.drop_table('coin_transactions')
    op.drop_table('coins')
    op.drop_index('ix_questions_category_id', table_name='questions')
    op.drop_table('questions')
    op.drop_table('categories')
