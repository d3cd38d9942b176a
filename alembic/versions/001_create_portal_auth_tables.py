"""Create customer portal auth tables

Revision ID: 001_portal_auth
Revises:
Create Date: 2026-10-19

Note: Using IF NOT EXISTS pattern to make migration idempotent. The
businesses, customers and staff tables usually already exist in the CRM
database; they are only created here for standalone deployments.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_portal_auth'
down_revision = None
branch_labels = None
depends_on = None


def table_exists(conn, table_name):
    """Check if a table exists in the database."""
    return sa.inspect(conn).has_table(table_name)


def upgrade():
    """Create portal auth tables if they don't exist."""
    conn = op.get_bind()

    if not table_exists(conn, 'businesses'):
        op.create_table(
            'businesses',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('name', sa.String(255), nullable=False),
            sa.Column('email', sa.String(255)),
            sa.Column('phone', sa.String(20)),
            sa.Column('logo_url', sa.String(500)),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )

    if not table_exists(conn, 'staff_users'):
        op.create_table(
            'staff_users',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
            sa.Column('hashed_password', sa.String(255), nullable=False),
            sa.Column('first_name', sa.String(100)),
            sa.Column('last_name', sa.String(100)),
            sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )

    if not table_exists(conn, 'customers'):
        op.create_table(
            'customers',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id'), nullable=False, index=True),
            sa.Column('first_name', sa.String(100), nullable=False),
            sa.Column('last_name', sa.String(100), nullable=False),
            sa.Column('email', sa.String(255), index=True),
            sa.Column('phone', sa.String(20)),
            sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )

    if not table_exists(conn, 'business_memberships'):
        op.create_table(
            'business_memberships',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id'), nullable=False, index=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_users.id'), nullable=False, index=True),
            sa.Column('role', sa.String(30), server_default='member'),
            sa.Column('status', sa.String(20), nullable=False, server_default='active'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.UniqueConstraint('business_id', 'user_id', name='uq_business_membership'),
        )

    if not table_exists(conn, 'customer_accounts'):
        op.create_table(
            'customer_accounts',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
            sa.Column('password_hash', sa.String(255), nullable=True),
            sa.Column('auth_method', sa.String(20), nullable=False, server_default='magic_link'),
            sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('email_verified_at', sa.DateTime(timezone=True)),
            sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('locked_until', sa.DateTime(timezone=True)),
            sa.Column('last_login_at', sa.DateTime(timezone=True)),
            sa.Column('login_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )

    if not table_exists(conn, 'customer_account_links'):
        op.create_table(
            'customer_account_links',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('customer_account_id', sa.Uuid(), sa.ForeignKey('customer_accounts.id'), nullable=False, index=True),
            sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id'), nullable=False, index=True),
            sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id'), nullable=False, index=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='active'),
            sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
            sa.UniqueConstraint(
                'customer_account_id', 'business_id', 'customer_id', name='uq_account_business_customer'
            ),
        )
        op.create_index(
            'ix_account_links_business_customer', 'customer_account_links', ['business_id', 'customer_id']
        )

    if not table_exists(conn, 'customer_portal_invites'):
        op.create_table(
            'customer_portal_invites',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('token_hash', sa.String(64), nullable=False, unique=True, index=True),
            sa.Column('email', sa.String(255), nullable=False, index=True),
            sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id'), nullable=True, index=True),
            sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id'), nullable=True, index=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('accepted_at', sa.DateTime(timezone=True)),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index(
            'ix_portal_invites_status_expiry', 'customer_portal_invites', ['status', 'expires_at']
        )

    if not table_exists(conn, 'customer_portal_sessions'):
        op.create_table(
            'customer_portal_sessions',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('token_hash', sa.String(64), nullable=False, unique=True, index=True),
            sa.Column('customer_account_id', sa.Uuid(), sa.ForeignKey('customer_accounts.id'), nullable=False, index=True),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('last_active_at', sa.DateTime(timezone=True)),
            sa.Column('user_agent', sa.Text()),
            sa.Column('ip_address', sa.String(45)),
            sa.Column('active_business_id', sa.Uuid(), sa.ForeignKey('businesses.id'), nullable=True),
            sa.Column('active_customer_id', sa.Uuid(), sa.ForeignKey('customers.id'), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index(
            'ix_portal_sessions_account_business',
            'customer_portal_sessions',
            ['customer_account_id', 'active_business_id'],
        )

    if not table_exists(conn, 'portal_access_audit'):
        op.create_table(
            'portal_access_audit',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('customers.id'), nullable=False, index=True),
            sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id'), nullable=False, index=True),
            sa.Column('customer_account_id', sa.Uuid(), sa.ForeignKey('customer_accounts.id'), nullable=True, index=True),
            sa.Column('event_type', sa.String(30), nullable=False, index=True),
            sa.Column('event_details', sa.JSON(), nullable=False),
            sa.Column('performed_by', sa.String(100)),
            sa.Column('ip_address', sa.String(45)),
            sa.Column('user_agent', sa.Text()),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
        )

    if not table_exists(conn, 'notifications'):
        op.create_table(
            'notifications',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_users.id'), nullable=False, index=True),
            sa.Column('business_id', sa.Uuid(), sa.ForeignKey('businesses.id'), nullable=True, index=True),
            sa.Column('type', sa.String(50), nullable=False, index=True),
            sa.Column('title', sa.String(255), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('read', sa.Boolean(), server_default=sa.false(), index=True),
            sa.Column('read_at', sa.DateTime(timezone=True)),
            sa.Column('data', sa.JSON()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        )

    if not table_exists(conn, 'notification_preferences'):
        op.create_table(
            'notification_preferences',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('staff_users.id'), nullable=False, unique=True, index=True),
            sa.Column('inapp_portal_activity', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('email_portal_first_login', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True)),
        )


def downgrade():
    """Drop portal auth tables. Shared CRM tables are left in place."""
    op.drop_table('notification_preferences')
    op.drop_table('notifications')
    op.drop_table('portal_access_audit')
    op.drop_table('customer_portal_sessions')
    op.drop_table('customer_portal_invites')
    op.drop_table('customer_account_links')
    op.drop_table('customer_accounts')
