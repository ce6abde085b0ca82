"""Affiliate, points ledger and rewards schema

Revision ID: 0001_affiliate_points
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0001_affiliate_points'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('role', sa.Enum('USER', 'ADMIN', name='userrole'), server_default='USER', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_table('affiliates',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('affiliate_code', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('tier', sa.Enum('BRONZE', 'SILVER', 'GOLD', 'PLATINUM', name='affiliatetier'), nullable=False),
        sa.Column('tier_updated_at', sa.DateTime(), nullable=True),
        sa.Column('total_points_earned', sa.Integer(), nullable=False),
        sa.Column('current_points_balance', sa.Integer(), nullable=False),
        sa.Column('total_referrals', sa.Integer(), nullable=False),
        sa.Column('active_referrals', sa.Integer(), nullable=False),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sa.UniqueConstraint('affiliate_code')
    )
    op.create_table('points_configs',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('action_type', sa.Enum('REFERRAL_SIGNUP', 'REFERRAL_FIRST_ORDER', 'REFERRAL_REPEAT_ORDER', 'OWN_PURCHASE', name='pointsactiontype'), nullable=False),
        sa.Column('rule_kind', sa.Enum('FIXED', 'TIERED', name='pointsrulekind'), nullable=False),
        sa.Column('points_amount', sa.Integer(), nullable=False),
        sa.Column('tiers', sa.JSON(), nullable=True),
        sa.Column('min_order_value', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_points_per_transaction', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_points_configs_action_type', 'points_configs', ['action_type'])
    op.create_table('coupons',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('discount_type', sa.Enum('PERCENTAGE', 'FIXED', name='discounttype'), nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('min_purchase_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_discount_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('user_usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('source', sa.Enum('ADMIN', 'REDEMPTION', name='couponsource'), nullable=False),
        sa.Column('assigned_user_id', sa.UUID(), nullable=True),
        sa.Column('included_products', sa.JSON(), nullable=True),
        sa.Column('excluded_products', sa.JSON(), nullable=True),
        sa.Column('included_categories', sa.JSON(), nullable=True),
        sa.Column('excluded_categories', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['assigned_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    op.create_table('rewards',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('points_cost', sa.Integer(), nullable=False),
        # type already created with coupons
        sa.Column('discount_type', postgresql.ENUM('PERCENTAGE', 'FIXED', name='discounttype', create_type=False), nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('min_purchase_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_discount_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=True),
        sa.Column('redeemed_count', sa.Integer(), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=True),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('affiliate_referrals',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('affiliate_id', sa.UUID(), nullable=False),
        sa.Column('referred_user_id', sa.UUID(), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'ACTIVE', 'INACTIVE', name='referralstatus'), nullable=False),
        sa.Column('referral_date', sa.DateTime(), nullable=False),
        sa.Column('first_order_id', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['affiliate_id'], ['affiliates.id']),
        sa.ForeignKeyConstraint(['referred_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referred_user_id')
    )
    op.create_index('ix_affiliate_referrals_affiliate_id', 'affiliate_referrals', ['affiliate_id'])
    op.create_table('affiliate_link_clicks',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('affiliate_id', sa.UUID(), nullable=False),
        sa.Column('clicked_at', sa.DateTime(), nullable=False),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('converted', sa.Boolean(), nullable=False),
        sa.Column('converted_at', sa.DateTime(), nullable=True),
        sa.Column('converted_user_id', sa.UUID(), nullable=True),
        sa.ForeignKeyConstraint(['affiliate_id'], ['affiliates.id']),
        sa.ForeignKeyConstraint(['converted_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_affiliate_link_clicks_affiliate_id', 'affiliate_link_clicks', ['affiliate_id'])
    op.create_table('points_transactions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.Enum('AFFILIATE_REFERRAL', 'AFFILIATE_PURCHASE', 'REDEMPTION', 'MANUAL_ADJUSTMENT', name='pointstransactiontype'), nullable=False),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('related_entity_id', sa.UUID(), nullable=True),
        sa.Column('dedupe_key', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedupe_key')
    )
    op.create_index('ix_points_transactions_user_created', 'points_transactions', ['user_id', 'created_at'])
    op.create_table('points_redemptions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('reward_id', sa.UUID(), nullable=False),
        sa.Column('points_cost', sa.Integer(), nullable=False),
        sa.Column('coupon_code', sa.String(), nullable=False),
        sa.Column('coupon_id', sa.UUID(), nullable=True),
        sa.Column('status', sa.Enum('ISSUED', 'USED', name='redemptionstatus'), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id']),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('coupon_code')
    )
    op.create_index('ix_points_redemptions_user_id', 'points_redemptions', ['user_id'])
    op.create_index('ix_points_redemptions_reward_id', 'points_redemptions', ['reward_id'])
    op.create_table('orders',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('coupon_code', sa.String(), nullable=True),
        sa.Column('affiliate_referral_id', sa.UUID(), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'PAID', 'CANCELLED', name='orderstatus'), nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['affiliate_referral_id'], ['affiliate_referrals.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_coupon_code', 'orders', ['coupon_code'])
    op.create_index('ix_orders_affiliate_referral_id', 'orders', ['affiliate_referral_id'])
    op.create_table('order_items',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('order_id', sa.UUID(), nullable=False),
        sa.Column('product_id', sa.String(), nullable=False),
        sa.Column('category_id', sa.String(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_table('notifications',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('type', sa.Enum('SYSTEM', 'AFFILIATE', name='notificationtype'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('metadata_json', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_table('audit_log',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('actor_id', sa.UUID(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('entity', sa.String(), nullable=False),
        sa.Column('entity_id', sa.UUID(), nullable=True),
        sa.Column('payload_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_table('pending_effects',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('payload_json', sa.JSON(), nullable=False),
        sa.Column('dedupe_key', sa.String(), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'DONE', 'FAILED', name='effectstatus'), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedupe_key')
    )
    op.create_index('ix_pending_effects_status', 'pending_effects', ['status'])


def downgrade() -> None:
    for table in (
        'pending_effects', 'audit_log', 'notifications', 'order_items', 'orders',
        'points_redemptions', 'points_transactions', 'affiliate_link_clicks',
        'affiliate_referrals', 'rewards', 'coupons', 'points_configs', 'affiliates', 'users',
    ):
        op.drop_table(table)
    for enum in (
        'effectstatus', 'notificationtype', 'orderstatus', 'redemptionstatus', 'pointstransactiontype',
        'referralstatus', 'couponsource', 'discounttype', 'pointsrulekind', 'pointsactiontype',
        'affiliatetier', 'userrole',
    ):
        sa.Enum(name=enum).drop(op.get_bind(), checkfirst=True)
