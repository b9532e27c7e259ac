"""Initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

Creates the SEVEN T tables:
- users, subscription_plans: tenants and billing tiers
- products, product_logs: catalog and stock movements
- orders, order_items: orders detected from conversations
- leads, notifications, credit_usage, admin_anomalies
- tools, agents, conversations, messages: WhatsApp
- campaigns, campaign_recipients: bulk sends
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column('id', UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade():
    # =========================================================================
    # USERS AND PLANS
    # =========================================================================

    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('company', sa.String(255), nullable=True),
        sa.Column('plan', sa.String(50), server_default='free', nullable=False),
        sa.Column('credits', sa.Integer(), server_default='100', nullable=False),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )

    op.create_table(
        'subscription_plans',
        _id(),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('price_currency', sa.String(3), server_default='XOF', nullable=False),
        sa.Column('limits', JSONB(), server_default='{}', nullable=False),
        sa.Column('features', JSONB(), server_default='{}', nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_subscription_plans_name'),
    )

    # =========================================================================
    # CATALOG
    # =========================================================================

    op.create_table(
        'products',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_products_user_active', 'products', ['user_id', 'is_active'])

    op.create_table(
        'product_logs',
        _id(),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(30), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('stock_before', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('order_id', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_product_logs_user_created', 'product_logs', ['user_id', 'created_at'])
    op.create_index('idx_product_logs_product', 'product_logs', ['product_id'])

    # =========================================================================
    # ORDERS
    # =========================================================================

    op.create_table(
        'orders',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('conversation_id', UUID(as_uuid=True), nullable=True),
        sa.Column('agent_id', UUID(as_uuid=True), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('total_amount', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('currency', sa.String(3), server_default='XOF', nullable=False),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('payment_method', sa.String(20), server_default='on_delivery', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('validated_by', UUID(as_uuid=True), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_orders_user_status', 'orders', ['user_id', 'status'])
    op.create_index('idx_orders_conversation_status', 'orders', ['conversation_id', 'status'])
    op.create_index('idx_orders_user_created', 'orders', ['user_id', 'created_at'])

    op.create_table(
        'order_items',
        _id(),
        sa.Column('order_id', UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('product_sku', sa.String(100), nullable=True),
        sa.Column('quantity', sa.Integer(), server_default='1', nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_price', sa.Numeric(14, 2), server_default='0', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_order_items_order', 'order_items', ['order_id'])

    # =========================================================================
    # LEADS, NOTIFICATIONS, CREDITS, ANOMALIES
    # =========================================================================

    op.create_table(
        'leads',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('company', sa.String(255), nullable=True),
        sa.Column('source', sa.String(50), server_default='whatsapp', nullable=False),
        sa.Column('status', sa.String(20), server_default='new', nullable=False),
        sa.Column('is_suggested', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('ai_confidence', sa.Float(), nullable=True),
        sa.Column('ai_reason', sa.Text(), nullable=True),
        sa.Column('agent_id', UUID(as_uuid=True), nullable=True),
        sa.Column('conversation_id', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'phone', name='uq_leads_user_phone'),
    )
    op.create_index('idx_leads_conversation', 'leads', ['conversation_id'])
    op.create_index('idx_leads_user_suggested', 'leads', ['user_id', 'is_suggested'])

    op.create_table(
        'notifications',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(20), server_default='info', nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('link', sa.String(255), nullable=True),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_notifications_user_read', 'notifications', ['user_id', 'is_read'])
    op.create_index('idx_notifications_user_created', 'notifications', ['user_id', 'created_at'])

    op.create_table(
        'credit_usage',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('amount', sa.Integer(), server_default='0', nullable=False),
        sa.Column('metadata', JSONB(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_credit_usage_user_created', 'credit_usage', ['user_id', 'created_at'])

    op.create_table(
        'admin_anomalies',
        _id(),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), server_default='medium', nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('metadata', JSONB(), nullable=True),
        sa.Column('is_resolved', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_admin_anomalies_resolved', 'admin_anomalies', ['is_resolved', 'created_at'])

    # =========================================================================
    # WHATSAPP
    # =========================================================================

    op.create_table(
        'tools',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(50), server_default='whatsapp', nullable=False),
        sa.Column('label', sa.String(255), nullable=True),
        sa.Column('status', sa.String(30), server_default='disconnected', nullable=False),
        sa.Column('provider', sa.String(50), server_default='stub', nullable=False),
        sa.Column('instance_name', sa.String(100), nullable=True),
        sa.Column('api_url', sa.String(500), nullable=True),
        sa.Column('api_key_encrypted', sa.Text(), nullable=True),
        sa.Column('config', JSONB(), server_default='{}', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('instance_name', name='uq_tools_instance_name'),
    )

    op.create_table(
        'agents',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('tool_id', UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('model', sa.String(100), nullable=True),
        sa.Column('system_prompt', sa.Text(), nullable=True),
        sa.Column('temperature', sa.Float(), server_default='0.7', nullable=False),
        sa.Column('max_tokens', sa.Integer(), server_default='500', nullable=False),
        sa.Column('whatsapp_connected', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('whatsapp_number', sa.String(30), nullable=True),
        sa.Column('auto_reply', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('lead_detection', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('order_detection', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('response_delay', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tool_id'], ['tools.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_agents_tool', 'agents', ['tool_id'])

    op.create_table(
        'conversations',
        _id(),
        sa.Column('agent_id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('contact_jid', sa.String(100), nullable=False),
        sa.Column('contact_number', sa.String(30), nullable=True),
        sa.Column('contact_name', sa.String(255), nullable=True),
        sa.Column('push_name', sa.String(255), nullable=True),
        sa.Column('notify_name', sa.String(255), nullable=True),
        sa.Column('saved_contact_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(30), server_default='active', nullable=False),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('message_count', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('agent_id', 'contact_jid', name='uq_conversations_agent_contact'),
    )
    op.create_index('idx_conversations_user_last', 'conversations', ['user_id', 'last_message_at'])

    op.create_table(
        'messages',
        _id(),
        sa.Column('conversation_id', UUID(as_uuid=True), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('content', sa.Text(), server_default='', nullable=False),
        sa.Column('message_type', sa.String(30), server_default='text', nullable=False),
        sa.Column('provider_message_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), server_default='received', nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('provider_message_id', name='uq_messages_provider_message_id'),
    )
    op.create_index('idx_messages_conversation_created', 'messages', ['conversation_id', 'created_at'])

    # =========================================================================
    # CAMPAIGNS
    # =========================================================================

    op.create_table(
        'campaigns',
        _id(),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('agent_id', UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), server_default='draft', nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('failed_count', sa.Integer(), server_default='0', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_campaigns_status_scheduled', 'campaigns', ['status', 'scheduled_at'])

    op.create_table(
        'campaign_recipients',
        _id(),
        sa.Column('campaign_id', UUID(as_uuid=True), nullable=False),
        sa.Column('contact_number', sa.String(30), nullable=False),
        sa.Column('contact_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_campaign_recipients_campaign_status', 'campaign_recipients', ['campaign_id', 'status'])


def downgrade():
    op.drop_table('campaign_recipients')
    op.drop_table('campaigns')
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('agents')
    op.drop_table('tools')
    op.drop_table('admin_anomalies')
    op.drop_table('credit_usage')
    op.drop_table('notifications')
    op.drop_table('leads')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('product_logs')
    op.drop_table('products')
    op.drop_table('subscription_plans')
    op.drop_table('users')
