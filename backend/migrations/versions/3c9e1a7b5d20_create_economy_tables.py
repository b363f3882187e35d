"""create realm, balance, trade offer, army and city tables

Revision ID: 3c9e1a7b5d20
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9e1a7b5d20'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'realm',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'realm_member',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('realm_id', sa.Integer(), sa.ForeignKey('realm.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('realm_id', 'user_id', name='uq_realm_member'),
    )

    op.create_table(
        'resource_balance',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('realm_id', sa.Integer(), sa.ForeignKey('realm.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('currency', sa.Float(), nullable=False, server_default='0'),
        sa.Column('wood', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stone', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metal', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('food', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('livestock', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('realm_id', 'user_id', name='uq_resource_balance_realm_user'),
        sa.CheckConstraint('currency >= 0', name='ck_balance_currency'),
        sa.CheckConstraint('wood >= 0', name='ck_balance_wood'),
        sa.CheckConstraint('stone >= 0', name='ck_balance_stone'),
        sa.CheckConstraint('metal >= 0', name='ck_balance_metal'),
        sa.CheckConstraint('food >= 0', name='ck_balance_food'),
        sa.CheckConstraint('livestock >= 0', name='ck_balance_livestock'),
    )
    op.create_index('ix_resource_balance_realm_id', 'resource_balance', ['realm_id'])
    op.create_index('ix_resource_balance_user_id', 'resource_balance', ['user_id'])

    op.create_table(
        'trade_offer',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('creator_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('realm_id', sa.Integer(), sa.ForeignKey('realm.id'), nullable=False),
        sa.Column('giving_resource', sa.String(length=16), nullable=False),
        sa.Column('giving_amount', sa.Float(), nullable=False),
        sa.Column('receiving_resource', sa.String(length=16), nullable=False),
        sa.Column('receiving_amount', sa.Float(), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=False),
        sa.Column('uses_remaining', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('giving_amount > 0', name='ck_offer_giving_amount'),
        sa.CheckConstraint('receiving_amount > 0', name='ck_offer_receiving_amount'),
        sa.CheckConstraint('max_uses >= 1', name='ck_offer_max_uses'),
        sa.CheckConstraint('uses_remaining >= 0 AND uses_remaining <= max_uses', name='ck_offer_uses_remaining'),
    )
    op.create_index('ix_trade_offer_realm_id', 'trade_offer', ['realm_id'])

    op.create_table(
        'army',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('realm_id', sa.Integer(), sa.ForeignKey('realm.id'), nullable=True),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_army_realm_id', 'army', ['realm_id'])
    op.create_index('ix_army_owner_id', 'army', ['owner_id'])

    op.create_table(
        'army_unit',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('army_id', sa.Integer(), sa.ForeignKey('army.id'), nullable=False),
        sa.Column('unit_type', sa.String(length=32), nullable=False),
        sa.Column('tier', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('tier >= 2 AND tier <= 5', name='ck_unit_tier'),
        sa.CheckConstraint('quantity >= 1', name='ck_unit_quantity'),
    )
    op.create_index('ix_army_unit_army_id', 'army_unit', ['army_id'])

    op.create_table(
        'city',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('realm_id', sa.Integer(), sa.ForeignKey('realm.id'), nullable=False),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('upgrade_tier', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('upgrade_tier >= 1 AND upgrade_tier <= 5', name='ck_city_tier'),
    )
    op.create_index('ix_city_realm_id', 'city', ['realm_id'])
    op.create_index('ix_city_owner_id', 'city', ['owner_id'])


def downgrade():
    op.drop_table('city')
    op.drop_table('army_unit')
    op.drop_table('army')
    op.drop_table('trade_offer')
    op.drop_table('resource_balance')
    op.drop_table('realm_member')
    op.drop_table('realm')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
