"""create request pool tables

Revision ID: create_request_pool
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'create_request_pool'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='TENANT'),
        sa.Column('availability', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('active_contracts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_capacity', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('last_active_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role_availability', 'users', ['role', 'availability'])

    op.create_table(
        'landlord_profiles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('preferred_locations', sa.JSON(), nullable=True),
        sa.Column('min_budget', sa.Float(), nullable=True),
        sa.Column('max_budget', sa.Float(), nullable=True),
        sa.Column('property_types', sa.JSON(), nullable=True),
        sa.Column('amenities', sa.JSON(), nullable=True),
        sa.Column('average_response_time', sa.Float(), nullable=True),
        sa.Column('acceptance_rate', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_landlord_profiles_user_id', 'landlord_profiles', ['user_id'], unique=True)

    op.create_table(
        'rental_requests',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('budget', sa.Float(), nullable=False),
        sa.Column('move_in_date', sa.DateTime(), nullable=True),
        sa.Column('property_type', sa.String(100), nullable=True),
        sa.Column('pool_status', sa.String(20), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_rental_requests_tenant_id', 'rental_requests', ['tenant_id'])
    op.create_index('ix_rental_requests_location', 'rental_requests', ['location'])
    # Sweep: ACTIVE requests by expiry
    op.create_index('ix_rental_requests_pool', 'rental_requests', ['pool_status', 'expires_at'])

    op.create_table(
        'landlord_request_matches',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('landlord_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'rental_request_id', sa.Integer(),
            sa.ForeignKey('rental_requests.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('match_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('match_reason', sa.Text(), nullable=True),
        sa.Column('is_viewed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_responded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('landlord_id', 'rental_request_id', name='uq_landlord_request_match'),
    )
    op.create_index('ix_landlord_request_matches_landlord_id', 'landlord_request_matches', ['landlord_id'])
    op.create_index(
        'ix_landlord_request_matches_rental_request_id', 'landlord_request_matches', ['rental_request_id']
    )
    op.create_index(
        'ix_matches_landlord_listing', 'landlord_request_matches', ['landlord_id', 'is_viewed', 'match_score']
    )
    op.create_index('ix_matches_created', 'landlord_request_matches', ['created_at'])

    op.create_table(
        'pool_analytics',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('total_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('matched_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expired_requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('landlord_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('date', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_pool_analytics_location', 'pool_analytics', ['location'])
    op.create_index('ix_pool_analytics_date', 'pool_analytics', ['date'])


def downgrade():
    op.drop_table('pool_analytics')
    op.drop_table('landlord_request_matches')
    op.drop_table('rental_requests')
    op.drop_table('landlord_profiles')
    op.drop_table('users')
